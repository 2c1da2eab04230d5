from datetime import timedelta

from quotatheus.models import PlanConfig, SessionMetrics

WARNING_PERCENT = 60.0
CRITICAL_PERCENT = 80.0


def format_duration(duration: "timedelta") -> "str":
    """
    renders a duration floored to whole minutes, e.g. "2h 5m" or "45m".
    """
    total_minutes = max(0, int(duration.total_seconds() // 60))
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def usage_percent(metrics: "SessionMetrics", plan: "PlanConfig") -> "float":
    if plan.token_limit <= 0:
        return 0.0
    return metrics.total_tokens / plan.token_limit * 100


def status_level(percent: "float") -> "str":
    if percent >= CRITICAL_PERCENT:
        return "critical"
    if percent >= WARNING_PERCENT:
        return "warning"
    return "ok"


def render_status(metrics: "SessionMetrics | None", plan: "PlanConfig") -> "str":
    """
    renders a one-line session summary, e.g.
    "2h 13m - 45.1% (19,844 / 44,000 tokens, 120 tokens/min, limit in 3h 2m)".
    """
    if metrics is None:
        return "No Session"

    percent = usage_percent(metrics, plan)
    remaining = format_duration(metrics.time_remaining) if metrics.is_active else "Expired"

    details = [
        f"{metrics.total_tokens:,} / {plan.token_limit:,} tokens",
        f"{round(metrics.burn_rate)} tokens/min",
    ]
    if metrics.estimated_time_to_limit is not None:
        details.append(f"limit in {format_duration(metrics.estimated_time_to_limit)}")

    return f"{remaining} - {percent:.1f}% ({', '.join(details)})"
