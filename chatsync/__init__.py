"""chatsync：聊天消息的事件规范化与临时 ID 对账。"""

__version__ = "0.1.0"
