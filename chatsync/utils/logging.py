"""日志初始化。

全项目统一使用 loguru 的全局 logger；这里只负责替换默认 sink。
"""

import sys

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """重新配置 loguru：stderr 输出，可选追加文件输出。"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=DEFAULT_FORMAT)
    if log_file:
        logger.add(log_file, level=level.upper(), format=DEFAULT_FORMAT, rotation="10 MB")
