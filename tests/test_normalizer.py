import re

import pytest

from chatsync.events import (
    CIRCULAR_MARKER,
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
from chatsync.utils.helpers import now_ms

MESSAGE_ID_PATTERN = re.compile(r"^msg_\d+_[a-f0-9]{8}$")


class TestMessageIdBackfill:
    def test_generates_id_for_required_events(self):
        result = backfill_message_id({"type": "chat_message", "content": "test"}, "chat_message")
        assert MESSAGE_ID_PATTERN.match(result["message_id"])
        assert result["messageId"] == result["message_id"]
        assert result[GENERATED_ID_KEY] is True

    def test_skips_other_events(self):
        event = {"type": "ping", "timestamp": now_ms()}
        result = backfill_message_id(event, "ping")
        assert "message_id" not in result
        assert result == event

    def test_never_overwrites(self):
        result = backfill_message_id({"message_id": "existing_id"}, "chat_message")
        assert result["message_id"] == "existing_id"
        assert "messageId" not in result
        assert GENERATED_ID_KEY not in result

    def test_existing_nested_id_counts(self):
        result = backfill_message_id({"data": {"messageId": "nested"}}, "chat_message")
        assert "message_id" not in result
        assert result["data"] == {"messageId": "nested"}

    def test_fills_nested_data_without_mutating_input(self):
        event = {"type": "chat_message", "data": {"content": "test"}}
        result = backfill_message_id(event, "chat_message")
        assert result["data"]["message_id"] == result["message_id"]
        assert result["data"]["messageId"] == result["message_id"]
        assert event["data"] == {"content": "test"}

    def test_camel_event_type_accepted(self):
        assert "messageId" in backfill_message_id({}, "chatResponseStreaming")

    def test_required_event_set(self):
        for event_type in [
            "chat_message", "chat_response", "chat_response_streaming",
            "response_start", "response_chunk", "response_complete",
            "message_received", "ai_processing_started", "ai_response_complete",
            "processing",
        ]:
            assert event_type in MESSAGE_ID_REQUIRED_EVENTS


class TestTimestampBackfill:
    def test_generates_timestamp(self):
        before = now_ms()
        result = backfill_event_timestamp({"type": "chat_message"}, "chat_message")
        after = now_ms()
        assert before <= result["event_ts"] <= after
        assert result["eventTs"] == result["event_ts"] == result["timestamp"]

    def test_skips_other_events(self):
        result = backfill_event_timestamp({"type": "ping"}, "ping")
        assert "event_ts" not in result
        assert "timestamp" not in result

    def test_never_overwrites(self):
        result = backfill_event_timestamp({"event_ts": 1234567890}, "chat_message")
        assert result["event_ts"] == 1234567890
        assert "eventTs" not in result

    def test_nested_data_filled_independently(self):
        result = backfill_event_timestamp({"timestamp": 1, "data": {}}, "typing_start")
        assert result["timestamp"] == 1
        assert "event_ts" not in result
        assert result["data"]["event_ts"] == result["data"]["timestamp"]

    def test_required_event_set(self):
        for event_type in [
            "chat_message", "chat_response", "chat_response_streaming",
            "response_start", "response_chunk", "response_complete",
            "message_received", "ai_processing_started", "ai_response_complete",
            "processing", "typing_start", "typing_stop",
            "connection_established", "connection_ready",
        ]:
            assert event_type in TIMESTAMP_REQUIRED_EVENTS


class TestValidation:
    def test_rejects_non_mapping(self):
        with pytest.raises(EventValidationError):
            validate_event_structure(None)
        with pytest.raises(EventValidationError):
            validate_event_structure(["chat_message"])

    def test_requires_type(self):
        with pytest.raises(EventValidationError):
            validate_event_structure({"content": "x"})
        assert validate_event_structure({"eventType": "ping"})


class TestIncoming:
    def test_complete_backend_event(self):
        result = normalize_incoming({
            "type": "chat_response",
            "data": {
                "chat_id": "chat_123",
                "message": {"content": "Hello world", "response_time_ms": 150, "total_tokens": 25},
                "metadata": {"llm_model": "gpt-4", "cost_estimate": 0.001},
            },
        })

        assert result["type"] == "chat_response"
        assert result["eventType"] == "chat_response"
        assert result["__normalized"] is True
        assert isinstance(result["__normalizedAt"], int)

        assert result["data"]["chatId"] == "chat_123"
        assert result["data"]["message"]["responseTimeMs"] == 150
        assert result["data"]["message"]["totalTokens"] == 25
        assert result["data"]["metadata"]["llmModel"] == "gpt-4"
        assert result["data"]["metadata"]["costEstimate"] == 0.001

        assert result["data"]["message_id"] == result["data"]["messageId"]
        assert result["event_ts"] == result["eventTs"] == result["timestamp"]

    def test_minimal_event_is_backfilled(self):
        result = normalize_incoming({"type": "connection_ready"})
        assert result["__normalized"] is True
        assert result["event_ts"] == result["eventTs"] == result["timestamp"]
        assert "messageId" not in result

    def test_null_event_degrades(self):
        result = normalize_incoming(None)
        assert result["__normalized"] is False
        assert result["__error"]
        assert result["type"] == "unknown"

    def test_missing_type_degrades_and_keeps_fields(self):
        result = normalize_incoming({"content": "hi"})
        assert result["__normalized"] is False
        assert result["content"] == "hi"
        assert result["type"] == "unknown"

    def test_preserves_existing_values(self):
        result = normalize_incoming({
            "type": "chat_message",
            "messageId": "existing_123",
            "eventTs": 1234567890,
            "content": "test",
        })
        assert result["messageId"] == "existing_123"
        assert result["eventTs"] == 1234567890
        assert result["__normalized"] is True

    def test_idempotent(self):
        first = normalize_incoming({"type": "chat_message", "data": {"content": "x"}})
        second = normalize_incoming(first)
        assert second["__normalized"] is True
        assert second["messageId"] == first["messageId"]
        assert second["eventTs"] == first["eventTs"]
        assert second["timestamp"] == first["timestamp"]
        assert second["data"]["messageId"] == first["data"]["messageId"]
        assert second[GENERATED_ID_KEY] is True

    def test_deeply_nested(self):
        result = normalize_incoming({
            "type": "test",
            "level1": {"level2": {"level3": {
                "message_id": "deep_test",
                "nested_array": [{"item_field": "value1"}, {"item_field": "value2"}],
            }}},
        })
        level3 = result["level1"]["level2"]["level3"]
        assert level3["messageId"] == "deep_test"
        assert [item["itemField"] for item in level3["nestedArray"]] == ["value1", "value2"]

    def test_circular_reference(self):
        circular = {"type": "test"}
        circular["self"] = circular
        result = normalize_incoming(circular)
        assert result["__normalized"] is True
        assert result["self"] == CIRCULAR_MARKER

    def test_large_object(self):
        event = {"type": "test", "data": {f"field_{i}": f"value_{i}" for i in range(1000)}}
        result = normalize_incoming(event)
        assert result["__normalized"] is True
        assert len(result["data"]) == 1000
        assert result["data"]["field999"] == "value_999"

    def test_internal_uses_camel_case(self):
        assert normalize_internal({"type": "ping", "chat_id": "c"})["chatId"] == "c"


class TestOutgoing:
    def test_complete_frontend_event(self):
        result = normalize_outgoing({
            "type": "chat_message",
            "data": {
                "chatId": "chat_123",
                "message": "Hello world",
                "metadata": {"clientTimestamp": now_ms(), "userAgent": "test-browser"},
            },
        })
        assert result["type"] == "chat_message"
        assert result["__normalized"] is True
        assert result["data"]["chat_id"] == "chat_123"
        assert "client_timestamp" in result["data"]["metadata"]
        assert result["data"]["metadata"]["user_agent"] == "test-browser"
        assert MESSAGE_ID_PATTERN.match(result["message_id"])
        assert result["event_ts"]
        assert "eventType" not in result

    def test_typing_event(self):
        result = normalize_outgoing({"type": "typing_start", "data": {"chatId": "chat_123", "userId": "user_456"}})
        assert result["data"]["chat_id"] == "chat_123"
        assert result["data"]["user_id"] == "user_456"
        assert result["event_ts"]
        assert "message_id" not in result


class TestBatch:
    def test_processes_each_event(self):
        results = normalize_batch([
            {"type": "chat_message", "data": {"chat_id": "chat_1"}},
            {"type": "chat_response", "data": {"chat_id": "chat_2"}},
            {"type": "connection_ready"},
        ])
        assert len(results) == 3
        assert all(r["__normalized"] for r in results)
        assert results[0]["data"]["chatId"] == "chat_1"
        assert results[1]["data"]["chatId"] == "chat_2"

    def test_isolates_failures(self):
        results = normalize_batch([{"type": "valid_event", "data": {}}, None, {"type": "another_valid", "data": {}}])
        assert len(results) == 3
        assert results[0]["__normalized"] is True
        assert results[1]["__normalized"] is False
        assert results[1]["__error"]
        assert results[1]["__index"] == 1
        assert results[2]["__normalized"] is True
        assert "__index" not in results[2]

    def test_outgoing_direction(self):
        results = normalize_batch([{"type": "ping", "chatId": "c"}], "outgoing")
        assert results[0]["chat_id"] == "c"

    def test_unknown_direction(self):
        with pytest.raises(ValueError):
            normalize_batch([], "sideways")


class TestHelpers:
    def test_is_normalized(self):
        assert is_normalized({"__normalized": True, "type": "test"})
        assert not is_normalized({"type": "test"})
        assert not is_normalized(None)

    def test_message_ids_are_unique(self):
        ids = {generate_message_id() for _ in range(10_000)}
        assert len(ids) == 10_000
        assert all(MESSAGE_ID_PATTERN.match(i) for i in list(ids)[:100])

    def test_event_timestamp(self):
        before = now_ms()
        ts = generate_event_timestamp()
        assert isinstance(ts, int)
        assert before <= ts <= now_ms()

    def test_stats(self):
        stats = get_normalization_stats()
        assert stats["message_id_required_events"] == len(MESSAGE_ID_REQUIRED_EVENTS)
        assert stats["version"]
