import asyncio
import signal
from datetime import datetime, timezone

import structlog
from prometheus_client import start_http_server

from quotatheus.cli import parse_args
from quotatheus.collector import Collector
from quotatheus.config import Config
from quotatheus.format import render_status
from quotatheus.logging import setup_logging
from quotatheus.metrics import MetricsUpdater
from quotatheus.session import compute_session_metrics
from quotatheus.source.base import LogSource
from quotatheus.source.jsonl import JsonlDirectorySource, discover_data_paths

logger = structlog.get_logger()


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


async def _print_status(config: "Config", source: "LogSource") -> "None":
    lines = await source.read_lines()
    plan = config.plan_config
    metrics = compute_session_metrics(
        lines,
        datetime.now(timezone.utc),
        plan=plan,
        window_duration=config.window_duration,
        burn_window_duration=config.burn_window_duration,
        tz=config.tzinfo,
    )
    print(render_status(metrics, plan))


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_format)

    data_paths = discover_data_paths(config.claude_config_dir)
    if not data_paths:
        raise SystemExit(
            "No conversation log directory found. Set CLAUDE_CONFIG_DIR "
            "or use the client at least once."
        )
    logger.info("data_paths_found", paths=[str(p) for p in data_paths])

    source = JsonlDirectorySource(data_paths)

    if config.once:
        asyncio.run(_print_status(config, source))
        return

    metrics_updater = MetricsUpdater()
    plan = config.plan_config
    logger.info("plan_configured", plan=plan.plan_name, token_limit=plan.token_limit)

    host, port = _parse_listen_address(config.listen_address)
    start_http_server(port, addr=host)
    logger.info("metrics_server_started", host=host, port=port)

    async def _run() -> "None":
        collector = Collector(
            [source],
            metrics_updater,
            plan,
            scrape_interval_seconds=config.scrape_interval,
            window_duration=config.window_duration,
            burn_window_duration=config.burn_window_duration,
            tz=config.tzinfo,
        )

        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the collector
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, collector.stop)

        try:
            await collector.run()
        finally:
            logger.info("shutting_down")
            await collector.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
