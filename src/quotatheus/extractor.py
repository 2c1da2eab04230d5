import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

import structlog

from quotatheus.models import TokenUsage, UsageEvent

logger = structlog.get_logger()

# record types that never carry a message payload
_NON_MESSAGE_TYPES = frozenset({"summary"})


class MalformedLineError(ValueError):
    """
    raised when a log line cannot be turned into a record.
    """


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    events: "tuple[UsageEvent, ...]"
    # lines that were valid but carried no message payload
    skipped: "int" = 0
    malformed: "int" = 0


def _count(value: "Any") -> "int":
    """
    coerces a raw token count to a non-negative int. Anything that
    is not a finite number counts as 0.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(0, int(value))


def _parse_timestamp(raw: "Any") -> "datetime":
    if not isinstance(raw, str) or not raw:
        raise MalformedLineError("missing timestamp")

    try:
        ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as e:
        raise MalformedLineError(f"invalid timestamp {raw!r}") from e

    # log timestamps without an offset are UTC
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_usage(payload: "Any") -> "TokenUsage":
    if not isinstance(payload, dict):
        return TokenUsage()

    return TokenUsage(
        input_tokens=_count(payload.get("input_tokens")),
        output_tokens=_count(payload.get("output_tokens")),
        cache_creation_tokens=_count(payload.get("cache_creation_input_tokens")),
        cache_read_tokens=_count(payload.get("cache_read_input_tokens")),
    )


def extract_event(line: "str") -> "UsageEvent | None":
    """
    turns one raw log line into a UsageEvent. Returns None for lines
    that carry no message (blank lines, summaries, bookkeeping
    records) and raises MalformedLineError for lines that cannot be
    parsed.
    """
    line = line.strip()
    if not line:
        return None

    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedLineError(f"invalid JSON: {e.msg}") from e
    except (ValueError, RecursionError) as e:
        # oversized integers and deeply nested documents
        raise MalformedLineError(f"invalid JSON: {type(e).__name__}") from e

    if not isinstance(record, dict):
        raise MalformedLineError("record is not a JSON object")

    if record.get("type") in _NON_MESSAGE_TYPES:
        return None

    message = record.get("message")
    if not isinstance(message, dict):
        return None

    event_id = message.get("id") or record.get("uuid") or None
    role = message.get("role") or "user"

    return UsageEvent(
        id=str(event_id) if event_id is not None else None,
        timestamp=_parse_timestamp(record.get("timestamp")),
        role=str(role),
        usage=_parse_usage(message.get("usage")),
    )


def extract_events(lines: "Iterable[str]") -> "ExtractionResult":
    """
    extracts every usage event from a batch of raw lines. Malformed
    lines are logged and counted, never fatal to the batch.
    """
    events: "list[UsageEvent]" = []
    skipped = 0
    malformed = 0

    for lineno, line in enumerate(lines, start=1):
        try:
            event = extract_event(line)
        except MalformedLineError as e:
            malformed += 1
            logger.warning("malformed_log_line", line=lineno, error=str(e))
            continue

        if event is None:
            skipped += 1
            continue

        events.append(event)

    missing_ids = sum(1 for e in events if e.id is None)
    if missing_ids:
        logger.debug("events_without_id", count=missing_ids)

    return ExtractionResult(
        events=tuple(events),
        skipped=skipped,
        malformed=malformed,
    )
