import argparse

from quotatheus.config import PLAN_CHOICES, Config
from quotatheus.logging import LOG_FORMATS


def _positive_float(value: "str") -> "float":
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def _positive_int(value: "str") -> "int":
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return number


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="quotatheus",
        description="Rolling session quota exporter for local conversation logs",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default=":9186",
        help="Address to listen on (default: :9186)",
    )
    parser.add_argument(
        "--scrape.interval",
        dest="scrape_interval",
        type=_positive_int,
        default=5,
        help="Log scan interval in seconds (default: 5)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument(
        "--log.format",
        dest="log_format",
        default="console",
        choices=LOG_FORMATS,
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--claude.config-dir",
        dest="claude_config_dir",
        default=None,
        help="Data root to scan before the standard locations "
        "(default: $CLAUDE_CONFIG_DIR)",
    )
    parser.add_argument(
        "--plan",
        dest="plan",
        default=None,
        choices=PLAN_CHOICES,
        help="Plan whose token limit is tracked (default: $QUOTATHEUS_PLAN or pro)",
    )
    parser.add_argument(
        "--plan.token-limit",
        dest="token_limit",
        type=int,
        default=None,
        help="Token limit override, required for the custom plan",
    )
    parser.add_argument(
        "--session.window-hours",
        dest="window_hours",
        type=_positive_float,
        default=5.0,
        help="Rolling session window length in hours (default: 5)",
    )
    parser.add_argument(
        "--session.burn-window-minutes",
        dest="burn_window_minutes",
        type=_positive_float,
        default=10.0,
        help="Trailing window used for the burn rate in minutes (default: 10)",
    )
    parser.add_argument(
        "--timezone",
        dest="timezone",
        default=None,
        help="IANA timezone for the daily reset boundary (default: system local)",
    )
    parser.add_argument(
        "--once",
        dest="once",
        action="store_true",
        help="Print the current session status and exit",
    )

    args = parser.parse_args(argv)
    try:
        config = Config.from_env()
    except ValueError as e:
        parser.error(str(e))

    config.listen_address = args.listen_address
    config.scrape_interval = args.scrape_interval
    config.log_level = args.log_level
    config.log_format = args.log_format
    config.window_hours = args.window_hours
    config.burn_window_minutes = args.burn_window_minutes
    config.once = args.once

    # flags only override the environment when given
    if args.claude_config_dir is not None:
        config.claude_config_dir = args.claude_config_dir
    if args.plan is not None:
        config.plan = args.plan
    if args.token_limit is not None:
        config.token_limit = args.token_limit
    if args.timezone is not None:
        config.timezone = args.timezone

    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    return config
