import json
from datetime import datetime, timezone
from typing import Callable

import pytest
from prometheus_client import CollectorRegistry

from quotatheus.models import TokenUsage, UsageEvent

# a fixed instant well inside a UTC calendar day
BASE_TIME = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def base_time() -> "datetime":
    return BASE_TIME


@pytest.fixture()
def make_event() -> "Callable[..., UsageEvent]":
    """
    builds UsageEvent objects with zero usage unless told otherwise.
    """

    def _make(
        timestamp: "datetime",
        event_id: "str | None" = "msg_1",
        input_tokens: "int" = 0,
        output_tokens: "int" = 0,
        cache_creation_tokens: "int" = 0,
        cache_read_tokens: "int" = 0,
        role: "str" = "assistant",
    ) -> "UsageEvent":
        return UsageEvent(
            id=event_id,
            timestamp=timestamp,
            role=role,
            usage=TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cache_creation_tokens=cache_creation_tokens,
                cache_read_tokens=cache_read_tokens,
            ),
        )

    return _make


@pytest.fixture()
def make_line() -> "Callable[..., str]":
    """
    builds a raw JSONL log line shaped like an assistant message record.
    """

    def _make(
        timestamp: "datetime",
        message_id: "str | None" = "msg_1",
        input_tokens: "int" = 0,
        output_tokens: "int" = 0,
        cache_creation_tokens: "int" = 0,
        cache_read_tokens: "int" = 0,
        role: "str" = "assistant",
        uuid: "str | None" = None,
    ) -> "str":
        message: "dict[str, object]" = {
            "role": role,
            "usage": {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "cache_creation_input_tokens": cache_creation_tokens,
                "cache_read_input_tokens": cache_read_tokens,
            },
        }
        if message_id is not None:
            message["id"] = message_id

        record: "dict[str, object]" = {
            "type": role,
            "timestamp": timestamp.isoformat().replace("+00:00", "Z"),
            "message": message,
        }
        if uuid is not None:
            record["uuid"] = uuid

        return json.dumps(record)

    return _make
