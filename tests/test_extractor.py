import json
from datetime import datetime, timezone

import pytest
from structlog.testing import capture_logs

from quotatheus.extractor import MalformedLineError, extract_event, extract_events
from quotatheus.models import TokenUsage


class TestExtractEvent:
    def test_parses_assistant_message(self) -> "None":
        line = json.dumps(
            {
                "type": "assistant",
                "uuid": "uuid-1",
                "timestamp": "2026-03-10T08:00:00.000Z",
                "message": {
                    "id": "msg_01",
                    "role": "assistant",
                    "model": "claude-sonnet-4",
                    "usage": {
                        "input_tokens": 12,
                        "output_tokens": 340,
                        "cache_creation_input_tokens": 1000,
                        "cache_read_input_tokens": 5000,
                    },
                },
            }
        )

        event = extract_event(line)

        assert event is not None
        assert event.id == "msg_01"
        assert event.role == "assistant"
        assert event.timestamp == datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
        assert event.usage == TokenUsage(
            input_tokens=12,
            output_tokens=340,
            cache_creation_tokens=1000,
            cache_read_tokens=5000,
        )

    def test_missing_counts_default_to_zero(self) -> "None":
        line = json.dumps(
            {
                "timestamp": "2026-03-10T08:00:00Z",
                "message": {"id": "msg_01", "usage": {"output_tokens": 7}},
            }
        )

        event = extract_event(line)

        assert event is not None
        assert event.usage == TokenUsage(output_tokens=7)

    def test_message_without_usage_is_kept_with_zero_usage(self) -> "None":
        line = json.dumps(
            {
                "type": "user",
                "timestamp": "2026-03-10T08:00:00Z",
                "message": {"role": "user", "content": "hello"},
                "uuid": "uuid-7",
            }
        )

        event = extract_event(line)

        assert event is not None
        assert event.id == "uuid-7"
        assert event.role == "user"
        assert event.usage == TokenUsage()

    def test_invalid_counts_become_zero(self) -> "None":
        line = json.dumps(
            {
                "timestamp": "2026-03-10T08:00:00Z",
                "message": {
                    "id": "msg_01",
                    "usage": {
                        "input_tokens": -5,
                        "output_tokens": "12",
                        "cache_creation_input_tokens": None,
                        "cache_read_input_tokens": True,
                    },
                },
            }
        )

        event = extract_event(line)

        assert event is not None
        assert event.usage == TokenUsage()

    def test_summary_records_are_skipped(self) -> "None":
        line = json.dumps(
            {"type": "summary", "summary": "Refactor", "leafUuid": "uuid-1"}
        )
        assert extract_event(line) is None

    def test_records_without_message_are_skipped(self) -> "None":
        line = json.dumps(
            {"type": "system", "timestamp": "2026-03-10T08:00:00Z", "uuid": "u"}
        )
        assert extract_event(line) is None

    def test_blank_line_is_skipped(self) -> "None":
        assert extract_event("   \n") is None

    def test_invalid_json_raises(self) -> "None":
        with pytest.raises(MalformedLineError):
            extract_event('{"type": "assistant", "message": ')

    def test_non_object_raises(self) -> "None":
        with pytest.raises(MalformedLineError):
            extract_event("[1, 2, 3]")

    def test_missing_timestamp_raises(self) -> "None":
        line = json.dumps({"message": {"id": "msg_01"}})
        with pytest.raises(MalformedLineError):
            extract_event(line)

    def test_unparseable_timestamp_raises(self) -> "None":
        line = json.dumps({"timestamp": "yesterday", "message": {"id": "msg_01"}})
        with pytest.raises(MalformedLineError):
            extract_event(line)

    def test_naive_timestamp_is_utc(self) -> "None":
        line = json.dumps(
            {"timestamp": "2026-03-10T08:00:00", "message": {"id": "msg_01"}}
        )

        event = extract_event(line)

        assert event is not None
        assert event.timestamp.tzinfo is not None
        assert event.timestamp == datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)

    def test_id_falls_back_to_uuid(self) -> "None":
        line = json.dumps(
            {
                "timestamp": "2026-03-10T08:00:00Z",
                "uuid": "uuid-1",
                "message": {"role": "assistant"},
            }
        )

        event = extract_event(line)

        assert event is not None
        assert event.id == "uuid-1"
        assert event.dedup_key == "uuid-1"

    def test_missing_identity_uses_composite_key(self) -> "None":
        line = json.dumps(
            {
                "timestamp": "2026-03-10T08:00:00Z",
                "message": {
                    "role": "assistant",
                    "usage": {"input_tokens": 3, "output_tokens": 4},
                },
            }
        )

        event = extract_event(line)

        assert event is not None
        assert event.id is None
        assert event.dedup_key == "2026-03-10T08:00:00+00:00|assistant|3|4|0|0"

    def test_role_defaults_to_user(self) -> "None":
        line = json.dumps(
            {"timestamp": "2026-03-10T08:00:00Z", "message": {"id": "msg_01"}}
        )

        event = extract_event(line)

        assert event is not None
        assert event.role == "user"


class TestExtractEvents:
    def test_malformed_lines_do_not_abort_batch(self, make_line, base_time) -> "None":
        lines = [
            make_line(base_time, message_id="msg_1", input_tokens=1),
            "not json at all",
            json.dumps({"type": "summary", "summary": "x"}),
            "",
            make_line(base_time, message_id="msg_2", input_tokens=2),
        ]

        with capture_logs() as logs:
            result = extract_events(lines)

        assert [e.id for e in result.events] == ["msg_1", "msg_2"]
        assert result.malformed == 1
        assert result.skipped == 2
        warnings = [log for log in logs if log["event"] == "malformed_log_line"]
        assert len(warnings) == 1
        assert warnings[0]["line"] == 2

    @pytest.mark.parametrize(
        "bad_line",
        [
            # past the int conversion digit limit
            '{"n": ' + "1" * 5000 + "}",
            # deeper than the decoder recursion limit
            "[" * 100_000 + "]" * 100_000,
        ],
    )
    def test_decoder_failures_count_as_malformed(
        self, make_line, base_time, bad_line
    ) -> "None":
        lines = [make_line(base_time, message_id="msg_1", input_tokens=5), bad_line]

        result = extract_events(lines)

        assert [e.id for e in result.events] == ["msg_1"]
        assert result.malformed == 1

    @pytest.mark.parametrize("constant", ["Infinity", "-Infinity", "NaN"])
    def test_non_finite_counts_become_zero(self, constant) -> "None":
        line = (
            '{"timestamp": "2026-03-10T08:00:00Z", "message": {"id": "msg_1",'
            f' "usage": {{"input_tokens": {constant}, "output_tokens": 3}}}}}}'
        )

        result = extract_events([line])

        assert result.malformed == 0
        assert result.events[0].usage == TokenUsage(output_tokens=3)

    def test_empty_batch(self) -> "None":
        result = extract_events([])
        assert result.events == ()
        assert result.malformed == 0
        assert result.skipped == 0
