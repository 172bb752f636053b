"""把服务端确认事件接到消息注册表上。

出站：send_message 先在注册表登记（得到临时 ID），再发出带 tempId 的 chat_message。
进站：确认类事件携带服务端 messageId；若同时回传了 tempId / clientMessageId，
按 ID 对账，否则对 message_received 回执按内容相似度对账。
"""

from collections.abc import Mapping
from typing import Any

from loguru import logger

from chatsync.bus.events import InboundEvent
from chatsync.bus.queue import EventBus
from chatsync.events.casing import camel_to_snake
from chatsync.events.normalizer import GENERATED_ID_KEY, is_normalized
from chatsync.registry.record import MessageRecord, MessageState
from chatsync.registry.registry import MessageRegistry

CONFIRMATION_EVENTS = ("message_received", "chat_response", "response_complete", "ai_response_complete")

# 只有用户消息回执会回显原文，才适合按内容匹配
CONTENT_MATCH_EVENTS = frozenset({"message_received"})

SERVER_ID_KEYS = ("messageId",)
CLIENT_ID_KEYS = ("tempId", "clientMessageId")

# 这些键描述的是事件本身而不是消息，不合并进消息载荷
_EVENT_ONLY_KEYS = frozenset({
    "messageId", "message_id", "tempId", "clientMessageId",
    "eventTs", "event_ts", "type", "eventType",
})


def _lookup(payload: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    """先查顶层，再查 data。"""
    scopes = [payload]
    if isinstance(payload.get("data"), Mapping):
        scopes.append(payload["data"])
    for scope in scopes:
        for key in keys:
            value = scope.get(key)
            if value is not None and value != "":
                return value
    return None


def _content_of(payload: Mapping[str, Any]) -> str | None:
    data = payload.get("data") if isinstance(payload.get("data"), Mapping) else {}
    message = data.get("message")
    for candidate in (
        payload.get("content"),
        data.get("content"),
        message.get("content") if isinstance(message, Mapping) else message,
    ):
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def _server_data(payload: Mapping[str, Any]) -> dict[str, Any]:
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return {}
    source = data.get("message") if isinstance(data.get("message"), Mapping) else data
    return {
        k: v for k, v in source.items()
        if not (isinstance(k, str) and k.startswith("__")) and k not in _EVENT_ONLY_KEYS
    }


class Reconciler:
    """根据进站确认事件驱动 MessageRegistry 的对账。"""

    def __init__(self, registry: MessageRegistry, threshold: float = 1.0):
        self.registry = registry
        self.threshold = threshold

    def attach(self, bus: EventBus) -> None:
        """订阅所有确认类事件。"""
        for event_type in CONFIRMATION_EVENTS:
            bus.subscribe(event_type, self.handle)

    async def handle(self, event: InboundEvent) -> None:
        """异步函数说明：handle。"""
        self.reconcile_event(event.payload)

    def reconcile_event(self, payload: Mapping[str, Any]) -> MessageRecord | None:
        """对一条已规范化的确认事件做对账，返回被对账的记录或 None。"""
        if not is_normalized(payload):
            logger.debug("Skipping unnormalized event")
            return None

        if payload.get(GENERATED_ID_KEY):
            logger.debug(f"Skipping {payload.get('type')} event without a server message id")
            return None

        server_id = _lookup(payload, SERVER_ID_KEYS)
        if server_id is None:
            return None
        server_id = str(server_id)

        existing = self.registry.get_message(server_id)
        if existing is not None and existing.state == MessageState.RECONCILED:
            return existing

        server_data = _server_data(payload)
        client_id = _lookup(payload, CLIENT_ID_KEYS)
        if client_id is not None:
            record = self.registry.reconcile_message(str(client_id), server_id, server_data)
            if record is not None:
                return record

        if camel_to_snake(str(payload.get("type", ""))) not in CONTENT_MATCH_EVENTS:
            return None
        content = _content_of(payload)
        if content is None:
            return None
        return self.registry.reconcile_by_content(content, server_id, server_data, self.threshold)

    def mark_sending(self, message_id: str) -> MessageRecord | None:
        """函数说明：mark_sending。"""
        return self.registry.update_message_state(message_id, MessageState.SENDING)

    async def send_message(self, bus: EventBus, content: str, **fields: Any) -> MessageRecord:
        """登记本地消息并发出 chat_message 出站事件。

        fields 作为消息字段（camelCase）一并写入事件 data 与注册记录。
        """
        record = self.registry.register_message({"content": content, "role": "user", **fields})
        await bus.publish_outbound({
            "type": "chat_message",
            "tempId": record.id,
            "data": {"content": content, **fields},
        })
        self.mark_sending(record.id)
        return record
