import os
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from quotatheus.models import PlanConfig

# token limit per 5-hour window for each known plan
PLAN_TOKEN_LIMITS: "dict[str, int]" = {
    "pro": 44_000,
    "max5": 88_000,
    "max20": 220_000,
}

PLAN_CHOICES: "list[str]" = [*PLAN_TOKEN_LIMITS, "custom"]


def resolve_plan(plan: "str", token_limit: "int" = 0) -> "PlanConfig":
    """
    builds a PlanConfig from a plan name. A positive token_limit
    overrides the preset, and is mandatory for the custom plan.
    """
    if plan not in PLAN_CHOICES:
        raise ValueError(f"unknown plan {plan!r}, expected one of {PLAN_CHOICES}")

    if token_limit < 0:
        raise ValueError("token limit must be positive")

    if token_limit:
        return PlanConfig(plan_name=plan, token_limit=token_limit)

    if plan == "custom":
        raise ValueError("the custom plan requires an explicit token limit")

    return PlanConfig(plan_name=plan, token_limit=PLAN_TOKEN_LIMITS[plan])


def resolve_timezone(name: "str") -> "tzinfo | None":
    """
    resolves an IANA timezone name. An empty name returns None, which
    selects the system local timezone.
    """
    if not name:
        return None

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone {name!r}") from e


def _env_int(name: "str", default: "int" = 0) -> "int":
    raw = os.environ.get(name, "")
    if not raw:
        return default

    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class Config:
    # listen_address: format ":9186" or
    # "0.0.0.0:9186"
    listen_address: "str" = ":9186"
    # collection interval in seconds
    scrape_interval: "int" = 5
    log_level: "str" = "info"
    log_format: "str" = "console"
    # print a single status line and exit
    once: "bool" = False

    # extra data root, its projects/ subdir is scanned first
    claude_config_dir: "str" = ""

    plan: "str" = "pro"
    # 0 means the plan's preset limit
    token_limit: "int" = 0

    window_hours: "float" = 5.0
    burn_window_minutes: "float" = 10.0
    # IANA name for the calendar day boundary, empty for system local
    timezone: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            claude_config_dir=os.environ.get("CLAUDE_CONFIG_DIR", ""),
            plan=os.environ.get("QUOTATHEUS_PLAN", "pro"),
            token_limit=_env_int("QUOTATHEUS_TOKEN_LIMIT"),
            timezone=os.environ.get("QUOTATHEUS_TIMEZONE", ""),
        )

    @property
    def plan_config(self) -> "PlanConfig":
        return resolve_plan(self.plan, self.token_limit)

    @property
    def window_duration(self) -> "timedelta":
        return timedelta(hours=self.window_hours)

    @property
    def burn_window_duration(self) -> "timedelta":
        return timedelta(minutes=self.burn_window_minutes)

    @property
    def tzinfo(self) -> "tzinfo | None":
        return resolve_timezone(self.timezone)

    def validate(self) -> "None":
        """
        raises ValueError when the plan or timezone settings
        cannot be resolved.
        """
        resolve_plan(self.plan, self.token_limit)
        resolve_timezone(self.timezone)
