"""
Main entry point for the stats dashboard.

Usage:
    python -m maxhash_stats [--config config.toml]
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

import structlog

from .config import DashboardConfig
from .stats import FilesystemStatsService
from .web import StatsHTTPAPI, create_server, run_server

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "config.toml"


def configure_logging(level: str = "info") -> None:
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelNamesMapping()[level.upper()]),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ckpool statistics dashboard")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(DEFAULT_CONFIG_PATH),
        help="path to the TOML config file (written with defaults if missing)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging()

    try:
        config = DashboardConfig.load(args.config)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load config", config_path=str(args.config), error=str(exc))
        return 1

    configure_logging(config.log_level)
    logger.info(
        "Starting dashboard",
        addr=config.http.addr,
        log_dir=config.ckpool.log_dir,
        rate_limiter=config.http.rate_limiter.enabled,
        cache=config.http.cache.enabled,
        proxy=config.http.proxy.enabled,
    )

    stats_service = FilesystemStatsService(config.ckpool.log_dir_path)
    try:
        api = StatsHTTPAPI.from_config(config, stats_service)
    except (OSError, ValueError) as exc:
        logger.error("Failed to initialize HTTP API", error=str(exc))
        return 1

    try:
        server = create_server(api, config.http.addr)
    except (OSError, ValueError) as exc:
        logger.error("Failed to start HTTP server", addr=config.http.addr, error=str(exc))
        api.close()
        return 1

    stop_event = threading.Event()

    def _request_stop(signum, frame):
        logger.info("Received signal, stopping", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    run_server(server, stop_event, shutdown_grace=config.http.shutdown_grace)
    return 0


if __name__ == "__main__":
    sys.exit(main())
