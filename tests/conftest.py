"""测试共用 fixture。"""

import pytest
from loguru import logger

from chatsync.config.schema import RegistryConfig
from chatsync.registry import MessageRegistry, reset_message_registry


@pytest.fixture
def registry():
    """每个测试一个全新的注册表，结束时销毁。"""
    registry = MessageRegistry(RegistryConfig(cleanup_interval=1000, orphan_timeout=5000))
    yield registry
    registry.destroy()


@pytest.fixture
def make_registry():
    """按需构造带自定义配置的注册表，测试结束统一销毁。"""
    created = []

    def _make(**overrides) -> MessageRegistry:
        instance = MessageRegistry(**overrides)
        created.append(instance)
        return instance

    yield _make
    for instance in created:
        instance.destroy()


@pytest.fixture
def shared_registry_reset():
    yield
    reset_message_registry()


@pytest.fixture
def log_messages():
    """收集 loguru 输出的 (级别, 文本)。"""
    messages = []
    handler_id = logger.add(
        lambda m: messages.append((m.record["level"].name, m.record["message"])),
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)
