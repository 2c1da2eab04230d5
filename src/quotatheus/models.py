from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """
    TokenUsage holds the token counts of a single
    usage-bearing log record. Missing counts are 0.
    """

    input_tokens: "int" = 0
    output_tokens: "int" = 0
    cache_creation_tokens: "int" = 0
    cache_read_tokens: "int" = 0

    @property
    def quota_tokens(self) -> "int":
        """
        tokens that count against the rolling limit. Cache
        creation and cache reads are excluded.
        """
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True, slots=True)
class UsageEvent:
    """
    UsageEvent represents one message record extracted
    from a conversation log line.
    """

    # None when the record carries neither a message id nor a uuid
    id: "str | None"
    # always timezone-aware
    timestamp: "datetime"
    role: "str"
    usage: "TokenUsage"

    @property
    def dedup_key(self) -> "str":
        """
        identity used for deduplication. Events without an id fall
        back to a composite key, which collapses distinct events that
        share timestamp, role and every count.
        """
        if self.id:
            return self.id

        u = self.usage
        return (
            f"{self.timestamp.isoformat()}|{self.role}|{u.input_tokens}|"
            f"{u.output_tokens}|{u.cache_creation_tokens}|{u.cache_read_tokens}"
        )


@dataclass(frozen=True, slots=True)
class SessionWindow:
    """
    SessionWindow is a contiguous run of events whose timestamps all
    fall at or before start_time + window duration.
    """

    start_time: "datetime"
    end_time: "datetime"
    last_event_time: "datetime"
    events: "tuple[UsageEvent, ...]"

    def contains(self, instant: "datetime") -> "bool":
        return self.start_time <= instant <= self.end_time


@dataclass(frozen=True, slots=True)
class SessionMetrics:
    """
    SessionMetrics summarizes the currently active window.
    """

    # input + output only
    total_tokens: "int"
    input_tokens: "int"
    output_tokens: "int"
    cache_creation_tokens: "int"
    cache_read_tokens: "int"
    event_count: "int"
    start_time: "datetime"
    last_event_time: "datetime"
    end_time: "datetime"
    time_remaining: "timedelta"
    is_active: "bool"
    # tokens per minute over the trailing burn window
    burn_rate: "float"
    estimated_time_to_limit: "timedelta | None" = None


@dataclass(frozen=True, slots=True)
class PlanConfig:
    plan_name: "str"
    token_limit: "int"
