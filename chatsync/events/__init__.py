"""事件规范化：命名风格转换与缺失字段补齐。"""

from chatsync.events.casing import (
    CIRCULAR_MARKER,
    FIELD_MAPPINGS,
    REVERSE_FIELD_MAPPINGS,
    camel_to_snake,
    convert,
    snake_to_camel,
    to_camel,
    to_snake,
)
from chatsync.events.normalizer import (
    GENERATED_ID_KEY,
    MESSAGE_ID_REQUIRED_EVENTS,
    TIMESTAMP_REQUIRED_EVENTS,
    EventValidationError,
    backfill_event_timestamp,
    backfill_message_id,
    generate_event_timestamp,
    generate_message_id,
    get_normalization_stats,
    is_normalized,
    normalize_batch,
    normalize_incoming,
    normalize_internal,
    normalize_outgoing,
    validate_event_structure,
)

__all__ = [
    "CIRCULAR_MARKER",
    "FIELD_MAPPINGS",
    "GENERATED_ID_KEY",
    "REVERSE_FIELD_MAPPINGS",
    "MESSAGE_ID_REQUIRED_EVENTS",
    "TIMESTAMP_REQUIRED_EVENTS",
    "EventValidationError",
    "backfill_event_timestamp",
    "backfill_message_id",
    "camel_to_snake",
    "convert",
    "generate_event_timestamp",
    "generate_message_id",
    "get_normalization_stats",
    "is_normalized",
    "normalize_batch",
    "normalize_incoming",
    "normalize_internal",
    "normalize_outgoing",
    "snake_to_camel",
    "to_camel",
    "to_snake",
    "validate_event_structure",
]
