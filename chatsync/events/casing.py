"""字段命名风格转换。

线上协议使用 snake_case，客户端内部模型使用 camelCase。
固定词汇表（FIELD_MAPPINGS）优先，未登记的键按规则机械转换。
"""

from collections.abc import Mapping
from typing import Any, Literal

Direction = Literal["snake_to_camel", "camel_to_snake"]

SNAKE_TO_CAMEL: Direction = "snake_to_camel"
CAMEL_TO_SNAKE: Direction = "camel_to_snake"

# 出现在环路位置上的容器会被替换成这个标记
CIRCULAR_MARKER = "[Circular]"

# 以双下划线开头的键是规范化元数据（__normalized 等），不参与转换
RESERVED_PREFIX = "__"

FIELD_MAPPINGS: dict[str, str] = {
    # 事件元数据
    "event_ts": "eventTs",
    "message_id": "messageId",
    "chat_id": "chatId",
    "tenant_id": "tenantId",
    "user_id": "userId",
    "client_id": "clientId",
    "session_id": "sessionId",
    "visitor_id": "visitorId",
    # 消息字段
    "response_time": "responseTime",
    "response_time_ms": "responseTimeMs",
    "total_tokens": "totalTokens",
    "prompt_tokens": "promptTokens",
    "completion_tokens": "completionTokens",
    "cost_estimate": "costEstimate",
    "llm_model": "llmModel",
    "total_chunks": "totalChunks",
    "created_at": "createdAt",
    # 事件类型名
    "typing_start": "typingStart",
    "typing_stop": "typingStop",
    "typing_indicator": "typingIndicator",
    "connection_established": "connectionEstablished",
    "connection_ready": "connectionReady",
    "response_start": "responseStart",
    "response_chunk": "responseChunk",
    "response_complete": "responseComplete",
    "message_received": "messageReceived",
    "ai_processing_started": "aiProcessingStarted",
    "ai_processing_error": "aiProcessingError",
    "ai_response_complete": "aiResponseComplete",
    "rate_limit_error": "rateLimitError",
    "message_validation_error": "messageValidationError",
    "chat_response_streaming": "chatResponseStreaming",
}

REVERSE_FIELD_MAPPINGS: dict[str, str] = {camel: snake for snake, camel in FIELD_MAPPINGS.items()}


def snake_to_camel(name: str) -> str:
    """message_id -> messageId；保留前导下划线，field_999 -> field999。"""
    stripped = name.lstrip("_")
    prefix = name[: len(name) - len(stripped)]
    head, *rest = stripped.split("_")
    return prefix + head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(name: str) -> str:
    """messageId -> message_id；连续大写视为一个缩写词（userID -> user_id）。"""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            prev = name[i - 1]
            nxt = name[i + 1] if i + 1 < len(name) else ""
            if prev != "_" and (prev.islower() or prev.isdigit() or nxt.islower()):
                result.append("_")
        result.append(char.lower())
    return "".join(result)


_KEY_RULES = {
    SNAKE_TO_CAMEL: (FIELD_MAPPINGS, snake_to_camel),
    CAMEL_TO_SNAKE: (REVERSE_FIELD_MAPPINGS, camel_to_snake),
}


def convert_key(key: Any, direction: Direction) -> Any:
    """转换单个键；非字符串键与保留元数据键原样返回。"""
    if not isinstance(key, str) or key.startswith(RESERVED_PREFIX):
        return key
    table, rule = _KEY_RULES[direction]
    return table.get(key) or rule(key)


def convert(direction: Direction, value: Any) -> Any:
    """递归转换任意嵌套数据中的所有映射键。

    映射重建为 dict（保持键顺序），list/tuple 逐元素转换并保持类型，
    其余值（含 None）原样返回。当前递归路径上再次出现的容器
    替换为 CIRCULAR_MARKER；非环路的共享引用照常转换。
    """
    if direction not in _KEY_RULES:
        raise ValueError(f"Unknown conversion direction: {direction!r}")
    return _convert(value, direction, set())


def _convert(value: Any, direction: Direction, path: set[int]) -> Any:
    if isinstance(value, Mapping):
        marker = id(value)
        if marker in path:
            return CIRCULAR_MARKER
        path.add(marker)
        try:
            return {
                convert_key(k, direction): _convert(v, direction, path)
                for k, v in value.items()
            }
        finally:
            path.discard(marker)

    if isinstance(value, (list, tuple)):
        marker = id(value)
        if marker in path:
            return CIRCULAR_MARKER
        path.add(marker)
        try:
            items = [_convert(item, direction, path) for item in value]
        finally:
            path.discard(marker)
        return tuple(items) if isinstance(value, tuple) else items

    return value


def to_camel(value: Any) -> Any:
    """函数说明：to_camel。"""
    return convert(SNAKE_TO_CAMEL, value)


def to_snake(value: Any) -> Any:
    """函数说明：to_snake。"""
    return convert(CAMEL_TO_SNAKE, value)
