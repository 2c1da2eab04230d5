import asyncio
import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

import structlog

from quotatheus.aggregator import BURN_WINDOW_DURATION
from quotatheus.format import status_level, usage_percent
from quotatheus.metrics import MetricsUpdater
from quotatheus.models import PlanConfig, SessionMetrics
from quotatheus.session import compute_session_metrics
from quotatheus.source.base import LogSource
from quotatheus.windows import WINDOW_DURATION

logger = structlog.get_logger()

# label used for errors raised by the aggregation engine itself
ENGINE_SOURCE = "engine"


def _utcnow() -> "datetime":
    return datetime.now(timezone.utc)


class Collector:
    """
    Collector is responsible for orchestrating the periodic
    recomputation of session metrics. Each cycle it reads every
    line from all log sources, runs the aggregation engine on the
    whole batch and publishes the result. It is the only writer of
    the current metrics slot. The main loop runs until stop() is
    called, sleeping for a configured interval between cycles.
    """

    def __init__(
        self,
        sources: "list[LogSource]",
        metrics_updater: "MetricsUpdater",
        plan: "PlanConfig",
        scrape_interval_seconds: "int" = 5,
        window_duration: "timedelta" = WINDOW_DURATION,
        burn_window_duration: "timedelta" = BURN_WINDOW_DURATION,
        tz: "tzinfo | None" = None,
        clock: "Callable[[], datetime]" = _utcnow,
    ) -> "None":
        self._sources = sources
        self._metrics = metrics_updater
        self._plan = plan
        self._interval = scrape_interval_seconds
        self._window_duration = window_duration
        self._burn_window_duration = burn_window_duration
        self._tz = tz
        self._clock = clock
        self._current: "SessionMetrics | None" = None
        self._status: "str" = "ok"
        self._stop_event: "asyncio.Event" = asyncio.Event()

        self._metrics.set_plan(plan)

    @property
    def current(self) -> "SessionMetrics | None":
        """
        metrics published by the last successful cycle.
        """
        return self._current

    def stop(self) -> "None":
        """
        signals the collector loop to stop after the current cycle.
        """
        self._stop_event.set()

    async def close(self) -> "None":
        """
        closes all log sources.
        """
        for s in self._sources:
            await s.close()

    async def run(self) -> "None":
        """
        runs the main collection loop. Runs until stop() is called.
        """
        while not self._stop_event.is_set():
            await self.collect()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except TimeoutError:
                pass

    async def collect(self) -> "SessionMetrics | None":
        """
        runs a single cycle and returns the metrics it published.
        """
        logger.debug("collection_cycle_start")

        results = await asyncio.gather(
            *(self._read_source(source) for source in self._sources)
        )
        lines = [line for result in results for line in result]

        now = self._clock()
        cycle_start = time.monotonic()
        try:
            metrics = compute_session_metrics(
                lines,
                now,
                plan=self._plan,
                window_duration=self._window_duration,
                burn_window_duration=self._burn_window_duration,
                tz=self._tz,
            )
        except Exception:
            # keep publishing the previous result
            logger.exception("aggregation_error", line_count=len(lines))
            self._metrics.inc_scrape_error(ENGINE_SOURCE, "aggregate")
            return self._current

        self._metrics.observe_scrape_duration(
            ENGINE_SOURCE, time.monotonic() - cycle_start
        )
        self._metrics.set_last_scrape_success(ENGINE_SOURCE, time.time())
        self._publish(metrics)

        logger.debug("collection_cycle_end", line_count=len(lines))
        return metrics

    async def _read_source(self, source: "LogSource") -> "list[str]":
        cycle_start = time.monotonic()
        try:
            lines = list(await source.read_lines())
        except Exception:
            logger.exception("log_read_error", source=source.name)
            self._metrics.inc_scrape_error(source.name, "read")
            return []

        self._metrics.observe_scrape_duration(source.name, time.monotonic() - cycle_start)
        self._metrics.set_last_scrape_success(source.name, time.time())
        return lines

    def _publish(self, metrics: "SessionMetrics | None") -> "None":
        previous = self._current
        self._current = metrics
        self._metrics.update_session(metrics, self._plan)

        if metrics is None:
            if previous is not None:
                logger.info("session_ended", start_time=previous.start_time.isoformat())
            self._status = "ok"
            return

        if previous is None or previous.start_time != metrics.start_time:
            logger.info(
                "session_started",
                start_time=metrics.start_time.isoformat(),
                end_time=metrics.end_time.isoformat(),
            )
            self._status = "ok"

        percent = usage_percent(metrics, self._plan)
        level = status_level(percent)
        if level != self._status and level != "ok":
            logger.warning(
                "usage_threshold_crossed",
                level=level,
                percent=round(percent, 1),
                plan=self._plan.plan_name,
                token_limit=self._plan.token_limit,
            )
        self._status = level

        logger.debug(
            "session_updated",
            total_tokens=metrics.total_tokens,
            events=metrics.event_count,
            burn_rate=round(metrics.burn_rate, 1),
        )
