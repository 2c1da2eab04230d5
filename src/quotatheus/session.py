from datetime import datetime, timedelta, tzinfo
from typing import Iterable

import structlog

from quotatheus.aggregator import BURN_WINDOW_DURATION, aggregate
from quotatheus.extractor import extract_events
from quotatheus.models import PlanConfig, SessionMetrics, UsageEvent
from quotatheus.windows import WINDOW_DURATION, partition

logger = structlog.get_logger()


def session_metrics_from_events(
    events: "Iterable[UsageEvent]",
    now: "datetime",
    plan: "PlanConfig | None" = None,
    window_duration: "timedelta" = WINDOW_DURATION,
    burn_window_duration: "timedelta" = BURN_WINDOW_DURATION,
    tz: "tzinfo | None" = None,
) -> "SessionMetrics | None":
    """
    same as compute_session_metrics, starting from already
    extracted events. Event timestamps must be timezone-aware, as
    extract_events produces them.
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    events = list(events)
    if any(e.timestamp.tzinfo is None for e in events):
        raise ValueError("event timestamps must be timezone-aware")

    window = partition(events, now, window_duration, tz)
    if window is None:
        logger.debug("no_active_session")
        return None

    return aggregate(
        window,
        now,
        burn_window_duration,
        plan.token_limit if plan is not None else None,
    )


def compute_session_metrics(
    lines: "Iterable[str]",
    now: "datetime",
    plan: "PlanConfig | None" = None,
    window_duration: "timedelta" = WINDOW_DURATION,
    burn_window_duration: "timedelta" = BURN_WINDOW_DURATION,
    tz: "tzinfo | None" = None,
) -> "SessionMetrics | None":
    """
    computes metrics for the session window active at now from a batch
    of raw log lines gathered across every log file.

    Returns None when no window contains now, meaning the quota has
    fully reset. When a plan is given its token limit drives the
    time-to-limit projection. tz sets the calendar day boundary used to
    drop stale events, defaulting to the system local timezone.

    Nothing is kept between calls: the same lines and the same now
    always give the same result.
    """
    extraction = extract_events(lines)
    if extraction.malformed:
        logger.info("malformed_lines_skipped", count=extraction.malformed)

    return session_metrics_from_events(
        extraction.events,
        now,
        plan=plan,
        window_duration=window_duration,
        burn_window_duration=burn_window_duration,
        tz=tz,
    )
