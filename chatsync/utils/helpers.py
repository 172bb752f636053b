"""模块说明：helpers。"""

import time
import uuid
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """函数说明：ensure_dir。"""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """函数说明：get_data_path。"""
    return ensure_dir(Path.home() / ".chatsync")


def now_ms() -> int:
    """当前 Unix 时间（毫秒）。"""
    return int(time.time() * 1000)


def short_hex(length: int = 8) -> str:
    """返回 uuid4 的前 length 位十六进制字符。"""
    return uuid.uuid4().hex[:length]


def prefixed_id(prefix: str) -> str:
    """生成形如 <prefix>_<毫秒时间戳>_<8位十六进制> 的标识。"""
    return f"{prefix}_{now_ms()}_{short_hex()}"


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """函数说明：truncate_string。"""
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix
