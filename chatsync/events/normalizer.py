"""事件规范化。

进站事件（服务端 -> 客户端）：snake_case -> camelCase；
出站事件（客户端 -> 服务端）：camelCase -> snake_case。
两个方向都会为指定类型的事件补齐 message_id 与 event_ts，
且绝不覆盖调用方已经给出的值。规范化失败时返回带 __error 的结果，
不向调用方抛异常，便于逐条处理混杂的事件流。
"""

from collections.abc import Iterable, Mapping
from typing import Any, Callable, Literal

from loguru import logger

from chatsync.events.casing import (
    CAMEL_TO_SNAKE,
    FIELD_MAPPINGS,
    SNAKE_TO_CAMEL,
    Direction,
    camel_to_snake,
    convert,
)
from chatsync.utils.helpers import now_ms, prefixed_id

NORMALIZER_VERSION = "1.0.0"

MESSAGE_ID_REQUIRED_EVENTS = frozenset({
    "chat_message",
    "chat_response",
    "chat_response_streaming",
    "response_start",
    "response_chunk",
    "response_complete",
    "message_received",
    "ai_processing_started",
    "ai_response_complete",
    "processing",
})

TIMESTAMP_REQUIRED_EVENTS = MESSAGE_ID_REQUIRED_EVENTS | {
    "typing_start",
    "typing_stop",
    "connection_established",
    "connection_ready",
}

MESSAGE_ID_KEYS = ("message_id", "messageId")
TIMESTAMP_KEYS = ("event_ts", "eventTs", "timestamp")
TYPE_KEYS = ("type", "event_type", "eventType")

# 保留键：message_id 由本地补齐而非来自上游
GENERATED_ID_KEY = "__messageIdGenerated"

BatchDirection = Literal["incoming", "outgoing"]


class EventValidationError(ValueError):
    """事件结构不合法（非映射或缺少类型字段）。"""


def generate_message_id() -> str:
    """生成 msg_<毫秒时间戳>_<8位十六进制> 形式的消息 ID。"""
    return prefixed_id("msg")


def generate_event_timestamp() -> int:
    """函数说明：generate_event_timestamp。"""
    return now_ms()


def event_type_of(event: Any) -> str | None:
    """依次读取 type / event_type / eventType。"""
    if not isinstance(event, Mapping):
        return None
    for key in TYPE_KEYS:
        value = event.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _canonical_type(event_type: Any) -> str | None:
    # 事件类型名既可能是 snake 也可能是 camel 形式
    if not isinstance(event_type, str):
        return None
    return camel_to_snake(event_type)


def requires_message_id(event_type: Any) -> bool:
    """函数说明：requires_message_id。"""
    return _canonical_type(event_type) in MESSAGE_ID_REQUIRED_EVENTS


def requires_timestamp(event_type: Any) -> bool:
    """函数说明：requires_timestamp。"""
    return _canonical_type(event_type) in TIMESTAMP_REQUIRED_EVENTS


def _has_any(data: Mapping[str, Any], keys: tuple[str, ...]) -> bool:
    return any(data.get(key) is not None for key in keys)


def _split_nested(event: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any] | None]:
    data = dict(event)
    nested = data.get("data")
    if isinstance(nested, Mapping):
        nested = dict(nested)
        data["data"] = nested
        return data, nested
    return data, None


def backfill_message_id(event: Any, event_type: str | None) -> Any:
    """为需要 message_id 的事件补齐 ID（顶层与 data 内都没有时才生成）。

    新 ID 同时写入 message_id 与 messageId；存在 data 映射时也写入其中。
    生成时在顶层打上 GENERATED_ID_KEY 标记。
    返回新的 dict，不修改入参。
    """
    if not isinstance(event, Mapping):
        return event
    if not requires_message_id(event_type):
        return dict(event)

    data, nested = _split_nested(event)
    if _has_any(data, MESSAGE_ID_KEYS) or (nested is not None and _has_any(nested, MESSAGE_ID_KEYS)):
        return data

    message_id = generate_message_id()
    data["message_id"] = message_id
    data["messageId"] = message_id
    data[GENERATED_ID_KEY] = True
    if nested is not None:
        nested["message_id"] = message_id
        nested["messageId"] = message_id
    return data


def backfill_event_timestamp(event: Any, event_type: str | None) -> Any:
    """为需要时间戳的事件补齐 event_ts / eventTs / timestamp。

    顶层与 data 分别判断，各自缺失时才补。返回新的 dict。
    """
    if not isinstance(event, Mapping):
        return event
    if not requires_timestamp(event_type):
        return dict(event)

    data, nested = _split_nested(event)
    ts = generate_event_timestamp()
    for target in (data, nested):
        if target is not None and not _has_any(target, TIMESTAMP_KEYS):
            for key in TIMESTAMP_KEYS:
                target[key] = ts
    return data


def validate_event_structure(event: Any) -> bool:
    """校验事件是映射且带有类型字段，否则抛出 EventValidationError。"""
    if not isinstance(event, Mapping):
        raise EventValidationError("Event data must be a mapping")
    if event_type_of(event) is None:
        raise EventValidationError("Event must have a type field")
    return True


def _error_result(event: Any, error: str) -> dict[str, Any]:
    result = dict(event) if isinstance(event, Mapping) else {}
    result["type"] = event_type_of(event) or "unknown"
    result["__normalized"] = False
    result["__normalizedAt"] = now_ms()
    result["__error"] = error
    return result


def _normalize(event: Any, direction: Direction) -> dict[str, Any]:
    label = "incoming" if direction == SNAKE_TO_CAMEL else "outgoing"
    try:
        validate_event_structure(event)
        event_type = event_type_of(event)

        normalized = convert(direction, event)
        normalized = backfill_message_id(normalized, event_type)
        normalized = backfill_event_timestamp(normalized, event_type)
    except EventValidationError as e:
        logger.warning(f"Failed to normalize {label} event: {e}")
        return _error_result(event, str(e))
    except Exception as e:
        logger.error(f"Unexpected error normalizing {label} event: {e}")
        return _error_result(event, str(e))

    normalized["type"] = event_type
    if direction == SNAKE_TO_CAMEL:
        normalized["eventType"] = event_type
    normalized["__normalized"] = True
    normalized["__normalizedAt"] = now_ms()
    return normalized


def normalize_incoming(event: Any) -> dict[str, Any]:
    """规范化服务端下发的事件（snake_case -> camelCase）。"""
    return _normalize(event, SNAKE_TO_CAMEL)


def normalize_outgoing(event: Any) -> dict[str, Any]:
    """规范化发往服务端的事件（camelCase -> snake_case）。"""
    return _normalize(event, CAMEL_TO_SNAKE)


def normalize_internal(event: Any) -> dict[str, Any]:
    """内部统一使用 camelCase，等同于进站规范化。"""
    return normalize_incoming(event)


_BATCH_NORMALIZERS: dict[str, Callable[[Any], dict[str, Any]]] = {
    "incoming": normalize_incoming,
    "outgoing": normalize_outgoing,
}


def normalize_batch(
    events: Iterable[Any] | None,
    direction: BatchDirection = "incoming",
) -> list[dict[str, Any]]:
    """逐条规范化；单条失败只在对应位置留下带 __index 的错误结果。"""
    normalizer = _BATCH_NORMALIZERS.get(direction)
    if normalizer is None:
        raise ValueError(f"Unknown batch direction: {direction!r}")

    results = []
    for index, event in enumerate(events or []):
        try:
            result = normalizer(event)
        except Exception as e:
            logger.error(f"Failed to normalize event at index {index}: {e}")
            result = _error_result(event, str(e))
        if not result.get("__normalized"):
            result["__index"] = index
        results.append(result)
    return results


def is_normalized(event: Any) -> bool:
    """函数说明：is_normalized。"""
    return isinstance(event, Mapping) and bool(event.get("__normalized"))


def get_normalization_stats() -> dict[str, Any]:
    """调试用：返回映射表与事件类型集合的规模。"""
    return {
        "field_mappings_count": len(FIELD_MAPPINGS),
        "message_id_required_events": len(MESSAGE_ID_REQUIRED_EVENTS),
        "timestamp_required_events": len(TIMESTAMP_REQUIRED_EVENTS),
        "version": NORMALIZER_VERSION,
    }
