"""模块说明：loader。"""

import json
from pathlib import Path

from loguru import logger

from chatsync.config.schema import Config
from chatsync.events.casing import to_camel, to_snake
from chatsync.utils.helpers import get_data_path


def get_config_path() -> Path:
    """函数说明：get_config_path。"""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """读取 JSON 配置（键为 camelCase），失败时回退到默认配置。"""
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
            return Config.model_validate(to_snake(data))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            logger.warning("Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> None:
    """函数说明：save_config。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = to_camel(config.model_dump())

    with open(path, "w") as f:
        json.dump(data, f, indent=2)
