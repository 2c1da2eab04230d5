from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from quotatheus.models import PlanConfig, SessionMetrics

TOKEN_KINDS: "tuple[str, ...]" = (
    "input",
    "output",
    "cache_creation",
    "cache_read",
    "total",
)


def create_session_metrics(
    registry: "CollectorRegistry" = REGISTRY,
) -> "dict[str, Gauge]":
    """
    creates the gauges describing the active session window.
     - tokens: token subtotals labeled by kind, "total" being
     input + output only.
     - active: 1 while a session window contains now, else 0.
     - time_to_limit_seconds: NaN when no projection exists.
    """

    def gauge(name: "str", doc: "str", labels: "list[str] | None" = None) -> "Gauge":
        return Gauge(
            f"quotatheus_session_{name}",
            doc,
            labels or [],
            registry=registry,
        )

    return {
        "tokens": gauge("tokens", "Tokens used in the active session", ["kind"]),
        "events": gauge("events", "Unique usage events in the active session"),
        "active": gauge("active", "Whether a session window is active"),
        "start": gauge(
            "start_timestamp_seconds",
            "Unix timestamp of the first event of the active session",
        ),
        "end": gauge(
            "end_timestamp_seconds",
            "Unix timestamp at which the active session window closes",
        ),
        "last_event": gauge(
            "last_event_timestamp_seconds",
            "Unix timestamp of the latest event of the active session",
        ),
        "time_remaining": gauge(
            "time_remaining_seconds",
            "Seconds until the active session window closes",
        ),
        "burn_rate": gauge(
            "burn_rate_tokens_per_minute",
            "Quota tokens per minute over the trailing burn window",
        ),
        "time_to_limit": gauge(
            "time_to_limit_seconds",
            "Projected seconds until the plan token limit is reached",
        ),
        "usage_ratio": gauge(
            "usage_ratio",
            "Share of the plan token limit used in the active session",
        ),
    }


class MetricsUpdater:
    """
    publishes SessionMetrics as Prometheus gauges, together
    with the exporter's own scrape metrics.
    """

    def __init__(self, registry: "CollectorRegistry" = REGISTRY) -> "None":
        self._session: "dict[str, Gauge]" = create_session_metrics(registry)
        self._token_limit: "Gauge" = Gauge(
            "quotatheus_plan_token_limit",
            "Token limit of the configured plan",
            ["plan"],
            registry=registry,
        )
        self._scrape_duration: "Histogram" = Histogram(
            "quotatheus_scrape_duration_seconds",
            "Duration of log scan cycles",
            ["source"],
            registry=registry,
        )
        self._scrape_errors: "Counter" = Counter(
            "quotatheus_scrape_errors_total",
            "Total number of scan errors by source and stage",
            ["source", "stage"],
            registry=registry,
        )
        self._last_scrape_success: "Gauge" = Gauge(
            "quotatheus_last_scrape_success_timestamp_seconds",
            "Unix timestamp of last successful scan per source",
            ["source"],
            registry=registry,
        )

    def set_plan(self, plan: "PlanConfig") -> "None":
        self._token_limit.clear()
        self._token_limit.labels(plan=plan.plan_name).set(plan.token_limit)

    def update_session(
        self,
        metrics: "SessionMetrics | None",
        plan: "PlanConfig",
    ) -> "None":
        """
        sets every session gauge from metrics. None means there is
        no active session: counts drop to 0 and times become NaN.
        """
        if metrics is None:
            self.clear_session()
            return

        s = self._session
        for kind, value in (
            ("input", metrics.input_tokens),
            ("output", metrics.output_tokens),
            ("cache_creation", metrics.cache_creation_tokens),
            ("cache_read", metrics.cache_read_tokens),
            ("total", metrics.total_tokens),
        ):
            s["tokens"].labels(kind=kind).set(value)

        s["events"].set(metrics.event_count)
        s["active"].set(1 if metrics.is_active else 0)
        s["start"].set(metrics.start_time.timestamp())
        s["end"].set(metrics.end_time.timestamp())
        s["last_event"].set(metrics.last_event_time.timestamp())
        s["time_remaining"].set(metrics.time_remaining.total_seconds())
        s["burn_rate"].set(metrics.burn_rate)

        if metrics.estimated_time_to_limit is None:
            s["time_to_limit"].set(float("nan"))
        else:
            s["time_to_limit"].set(metrics.estimated_time_to_limit.total_seconds())

        if plan.token_limit > 0:
            s["usage_ratio"].set(metrics.total_tokens / plan.token_limit)
        else:
            s["usage_ratio"].set(float("nan"))

    def clear_session(self) -> "None":
        s = self._session
        for kind in TOKEN_KINDS:
            s["tokens"].labels(kind=kind).set(0)

        s["events"].set(0)
        s["active"].set(0)
        s["time_remaining"].set(0)
        s["burn_rate"].set(0)
        s["usage_ratio"].set(0)
        for name in ("start", "end", "last_event", "time_to_limit"):
            s[name].set(float("nan"))

    def observe_scrape_duration(
        self, source: "str", duration_seconds: "float"
    ) -> "None":
        self._scrape_duration.labels(source=source).observe(duration_seconds)

    def inc_scrape_error(self, source: "str", stage: "str") -> "None":
        self._scrape_errors.labels(source=source, stage=stage).inc()

    def set_last_scrape_success(self, source: "str", timestamp: "float") -> "None":
        self._last_scrape_success.labels(source=source).set(timestamp)
