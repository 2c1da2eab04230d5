from datetime import datetime, timedelta
from typing import Sequence

from quotatheus.models import SessionMetrics, SessionWindow, UsageEvent

BURN_WINDOW_DURATION = timedelta(minutes=10)


def calculate_burn_rate(
    events: "Sequence[UsageEvent]",
    now: "datetime",
    burn_window_duration: "timedelta" = BURN_WINDOW_DURATION,
) -> "float":
    """
    returns quota tokens per minute over the trailing burn window.

    The rate is divided by the minutes since the earliest event inside
    the burn window rather than by the full window length, so a burst
    that just started is not diluted.
    """
    window_start = now - burn_window_duration
    recent = [e for e in events if e.timestamp >= window_start]
    if not recent:
        return 0.0

    tokens = sum(e.usage.quota_tokens for e in recent)
    earliest = min(e.timestamp for e in recent)
    elapsed_minutes = (now - earliest).total_seconds() / 60

    if elapsed_minutes <= 0:
        return 0.0

    return tokens / elapsed_minutes


def estimate_time_to_limit(
    current_tokens: "int",
    token_limit: "int",
    burn_rate: "float",
) -> "timedelta | None":
    """
    projects how long until token_limit is reached at burn_rate.
    Returns None when nothing is burning or the limit is already
    reached.
    """
    if burn_rate <= 0 or current_tokens >= token_limit:
        return None

    minutes = (token_limit - current_tokens) / burn_rate
    return timedelta(minutes=minutes)


def aggregate(
    window: "SessionWindow",
    now: "datetime",
    burn_window_duration: "timedelta" = BURN_WINDOW_DURATION,
    token_limit: "int | None" = None,
) -> "SessionMetrics":
    """
    computes SessionMetrics for the active window at now.
    """
    input_tokens = 0
    output_tokens = 0
    cache_creation_tokens = 0
    cache_read_tokens = 0

    for event in window.events:
        input_tokens += event.usage.input_tokens
        output_tokens += event.usage.output_tokens
        cache_creation_tokens += event.usage.cache_creation_tokens
        cache_read_tokens += event.usage.cache_read_tokens

    # cache tokens do not count against the rolling limit
    total_tokens = input_tokens + output_tokens
    burn_rate = calculate_burn_rate(window.events, now, burn_window_duration)

    time_to_limit = None
    if token_limit is not None:
        time_to_limit = estimate_time_to_limit(total_tokens, token_limit, burn_rate)

    return SessionMetrics(
        total_tokens=total_tokens,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cache_creation_tokens=cache_creation_tokens,
        cache_read_tokens=cache_read_tokens,
        event_count=len(window.events),
        start_time=window.start_time,
        last_event_time=window.last_event_time,
        end_time=window.end_time,
        time_remaining=max(timedelta(0), window.end_time - now),
        is_active=window.contains(now),
        burn_rate=burn_rate,
        estimated_time_to_limit=time_to_limit,
    )
