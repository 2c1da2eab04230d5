from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Sequence

import structlog

from quotatheus.dedup import dedupe
from quotatheus.models import SessionWindow, UsageEvent

logger = structlog.get_logger()

WINDOW_DURATION = timedelta(hours=5)


def start_of_day(now: "datetime", tz: "tzinfo | None" = None) -> "datetime":
    """
    returns midnight of the calendar day containing now, in tz. When
    tz is None the system local timezone is used.
    """
    local = now.astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def filter_current_day(
    events: "Iterable[UsageEvent]",
    now: "datetime",
    tz: "tzinfo | None" = None,
) -> "list[UsageEvent]":
    """
    keeps events between local midnight and now, both inclusive.
    """
    day_start = start_of_day(now, tz)
    return [e for e in events if day_start <= e.timestamp <= now]


def build_windows(
    events: "Iterable[UsageEvent]",
    window_duration: "timedelta" = WINDOW_DURATION,
) -> "list[SessionWindow]":
    """
    folds events into consecutive fixed-duration windows.

    The first event opens a window ending window_duration later.
    Following events join it while their timestamp is at or before
    that end; the first event past it opens the next window. Events
    are sorted by timestamp first, equal timestamps keep their input
    order.
    """
    ordered = sorted(events, key=lambda e: e.timestamp)
    windows: "list[SessionWindow]" = []
    current: "list[UsageEvent]" = []

    for event in ordered:
        # the closing boundary is inclusive
        if current and event.timestamp <= current[0].timestamp + window_duration:
            current.append(event)
            continue

        if current:
            windows.append(_close(current, window_duration))
        current = [event]

    if current:
        windows.append(_close(current, window_duration))

    return windows


def _close(
    events: "list[UsageEvent]",
    window_duration: "timedelta",
) -> "SessionWindow":
    start = events[0].timestamp
    return SessionWindow(
        start_time=start,
        end_time=start + window_duration,
        last_event_time=events[-1].timestamp,
        events=tuple(events),
    )


def select_active(
    windows: "Sequence[SessionWindow]",
    now: "datetime",
) -> "SessionWindow | None":
    """
    returns the window whose [start_time, end_time] contains now. If
    several do, the most recently started one wins.
    """
    active = [w for w in windows if w.contains(now)]
    if not active:
        return None

    return active[-1]


def reconstruct_windows(
    events: "Iterable[UsageEvent]",
    now: "datetime",
    window_duration: "timedelta" = WINDOW_DURATION,
    tz: "tzinfo | None" = None,
) -> "list[SessionWindow]":
    """
    deduplicates a raw event stream, drops events outside the current
    calendar day and returns every window built from the rest.
    """
    events = list(events)
    unique = dedupe(events)
    today = filter_current_day(unique, now, tz)

    logger.debug(
        "events_filtered",
        total=len(events),
        unique=len(unique),
        today=len(today),
    )
    return build_windows(today, window_duration)


def partition(
    events: "Iterable[UsageEvent]",
    now: "datetime",
    window_duration: "timedelta" = WINDOW_DURATION,
    tz: "tzinfo | None" = None,
) -> "SessionWindow | None":
    """
    returns the window active at now, or None when there is no
    active session.
    """
    windows = reconstruct_windows(events, now, window_duration, tz)
    active = select_active(windows, now)

    logger.debug(
        "session_windows_built",
        count=len(windows),
        active_start=active.start_time.isoformat() if active else None,
    )
    return active
