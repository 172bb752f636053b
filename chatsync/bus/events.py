"""模块说明：events。"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class InboundEvent:
    """已规范化（camelCase）的进站事件。"""

    type: str
    payload: dict[str, Any]
    received_at: datetime = field(default_factory=datetime.now)

    @property
    def normalized(self) -> bool:
        """函数说明：normalized。"""
        return bool(self.payload.get("__normalized"))

    @property
    def data(self) -> dict[str, Any]:
        """函数说明：data。"""
        data = self.payload.get("data")
        return dict(data) if isinstance(data, Mapping) else {}


@dataclass
class OutboundEvent:
    """已规范化（snake_case）的出站事件，交给外部传输层发送。"""

    type: str
    payload: dict[str, Any]
    created_at: datetime = field(default_factory=datetime.now)

    def to_json(self) -> str:
        """函数说明：to_json。"""
        return json.dumps(self.payload, default=str)
