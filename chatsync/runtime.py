"""组装入口：按配置创建注册表、事件总线与对账器。"""

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from chatsync.bus.queue import EventBus
from chatsync.bus.reconciler import Reconciler
from chatsync.config.loader import load_config
from chatsync.config.schema import Config
from chatsync.registry.registry import MessageRegistry
from chatsync.utils.logging import setup_logging


@dataclass
class Runtime:
    """类说明：Runtime。"""
    config: Config
    registry: MessageRegistry
    bus: EventBus
    reconciler: Reconciler

    def close(self) -> None:
        """停止事件分发并销毁注册表。"""
        self.bus.stop()
        self.registry.destroy()


def create_runtime(config: Config | None = None, config_path: Path | None = None) -> Runtime:
    """创建一组相互连接的组件；未传 config 时从配置文件加载。"""
    config = config or load_config(config_path)
    setup_logging(config.logging.level, config.logging.file)

    registry = MessageRegistry(config.registry)
    bus = EventBus()
    reconciler = Reconciler(registry, threshold=config.reconciler.threshold)
    reconciler.attach(bus)

    logger.info(
        f"chatsync runtime ready (orphan timeout {config.registry.orphan_timeout}ms, "
        f"match threshold {config.reconciler.threshold})"
    )
    return Runtime(config=config, registry=registry, bus=bus, reconciler=reconciler)
