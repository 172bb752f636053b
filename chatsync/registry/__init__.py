"""消息注册表：临时 ID 与服务端 ID 的对账。"""

from chatsync.registry.record import MessageRecord, MessageState, RecordMetadata
from chatsync.registry.registry import (
    MessageRegistry,
    get_message_registry,
    reset_message_registry,
)
from chatsync.registry.similarity import calculate_similarity

__all__ = [
    "MessageRecord",
    "MessageRegistry",
    "MessageState",
    "RecordMetadata",
    "calculate_similarity",
    "get_message_registry",
    "reset_message_registry",
]
