"""模块说明：record。"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class MessageState(str, Enum):
    """消息在注册表中的生命周期状态。

    PENDING -> SENDING -> RECONCILED；PENDING/SENDING 超时后 -> ORPHANED。
    RECONCILED 与 ORPHANED 为终态。
    """
    PENDING = "pending"
    SENDING = "sending"
    RECONCILED = "reconciled"
    ORPHANED = "orphaned"

    @property
    def is_terminal(self) -> bool:
        return self in (MessageState.RECONCILED, MessageState.ORPHANED)

    @property
    def is_active(self) -> bool:
        return not self.is_terminal


# 正向推进的顺序；ORPHANED 不在此序列中，单独处理
_FORWARD_ORDER = {
    MessageState.PENDING: 0,
    MessageState.SENDING: 1,
    MessageState.RECONCILED: 2,
}


def can_transition(current: MessageState, new: MessageState) -> bool:
    """判断状态迁移是否合法（允许保持原状态）。"""
    if current == new:
        return True
    if current.is_terminal:
        return False
    if new == MessageState.ORPHANED:
        return True
    return _FORWARD_ORDER[new] > _FORWARD_ORDER[current]


@dataclass
class RecordMetadata:
    """类说明：RecordMetadata。"""
    is_temporary: bool = False
    reconciled_with: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)  # 注册选项与状态更新附带的数据


@dataclass
class MessageRecord:
    """注册表中的一条消息记录。

    id 是主键；temp_id 仅在 id 由注册表生成时设置；
    server_id 在对账后设置，此后同一对象也可通过 server_id 查到。
    """
    id: str
    message: dict[str, Any] = field(default_factory=dict)
    state: MessageState = MessageState.PENDING
    timestamp: int = 0
    temp_id: str | None = None
    server_id: str | None = None
    original_id: str | None = None
    send_timestamp: int | None = None
    reconcile_timestamp: int | None = None
    orphan_timestamp: int | None = None
    metadata: RecordMetadata = field(default_factory=RecordMetadata)

    @property
    def content(self) -> Any:
        """函数说明：content。"""
        return self.message.get("content")

    @property
    def keys(self) -> list[str]:
        """可用于查找该记录的全部键。"""
        return [self.id] if self.server_id is None else [self.id, self.server_id]

    def age(self, now: int) -> int:
        """函数说明：age。"""
        return now - self.timestamp

    def to_dict(self) -> dict[str, Any]:
        """导出快照（深拷贝），状态以字符串表示。"""
        data = asdict(self)
        data["state"] = self.state.value
        return data
