import asyncio
import shutil
import signal
import sys
from datetime import datetime, timezone
from typing import Callable

import structlog
from prometheus_client import start_http_server

from usagewatch.aggregator import filter_by_days
from usagewatch.cli import parse_args
from usagewatch.config import Config
from usagewatch.coordinator import (
    QuotaEntry,
    RecordLogEntry,
    RefreshCoordinator,
    RefreshEntry,
    WatchContext,
)
from usagewatch.dashboard.layout import render
from usagewatch.loader import IncrementalLoader
from usagewatch.logging import setup_logging
from usagewatch.metrics import MetricsUpdater
from usagewatch.quota.anthropic import AnthropicQuotaSource
from usagewatch.quota.antigravity import AntigravityQuotaSource
from usagewatch.quota.codex import CodexQuotaSource
from usagewatch.store.factory import open_record_store

logger = structlog.get_logger()

# clear screen and move the cursor home before each frame
_CLEAR = "\033[2J\033[H"


def _parse_listen_address(addr: "str") -> "tuple[str, int]":
    """
    parses listen address in format ':9186' or '0.0.0.0:9186'.
    """
    if addr.startswith(":"):
        return ("0.0.0.0", int(addr[1:]))

    host, port = addr.rsplit(":", 1)
    return (host, int(port))


def build_entries(
    config: "Config", metrics: "MetricsUpdater"
) -> "list[RefreshEntry]":
    store = open_record_store(config.data_dir)
    logger.info("record_store_selected", store=store.name, path=str(config.data_dir))

    loader = IncrementalLoader(
        store,
        provider_filter=config.provider_filter or None,
        default_provider=config.default_provider,
    )
    return [
        RecordLogEntry(
            loader,
            interval=config.log_interval,
            default_provider=config.default_provider,
            metrics=metrics,
        ),
        QuotaEntry(
            AnthropicQuotaSource(config.anthropic_cache),
            interval=config.anthropic_interval,
        ),
        QuotaEntry(
            AntigravityQuotaSource(config.antigravity_cache),
            interval=config.antigravity_interval,
        ),
        QuotaEntry(
            CodexQuotaSource(config.codex_token, timeout=config.codex_timeout),
            interval=config.codex_interval,
            timeout=config.codex_timeout,
        ),
    ]


def make_painter(config: "Config") -> "Callable[[WatchContext], None]":
    def paint(context: "WatchContext") -> "None":
        # width is sampled once per frame
        width = shutil.get_terminal_size((config.fallback_cols, 40)).columns
        now = datetime.now(timezone.utc)
        frame = render(
            filter_by_days(context.aggregate, config.days, now.date()),
            context.snapshots,
            width,
            now=now,
            stale=context.stale_sources(),
            wide_cols=config.wide_cols,
        )
        sys.stdout.write(_CLEAR)
        sys.stdout.write(f"Usage dashboard  updated {now:%H:%M:%S} UTC\n\n")
        sys.stdout.write(frame + "\n")
        sys.stdout.flush()

    return paint


def main() -> "None":
    config = parse_args()
    setup_logging(config.log_level, config.log_file)

    if config.days < 0:
        raise SystemExit("--days must not be negative")

    metrics = MetricsUpdater()
    if config.listen_address:
        host, port = _parse_listen_address(config.listen_address)
        start_http_server(port, addr=host)
        logger.info("metrics_server_started", host=host, port=port)

    async def _run() -> "None":
        coordinator = RefreshCoordinator(
            build_entries(config, metrics),
            metrics,
            tick_seconds=config.tick_seconds,
        )
        context = coordinator.new_context()

        loop = asyncio.get_running_loop()
        # for SIGINT and SIGTERM, signal the coordinator
        # to stop gracefully
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, coordinator.stop)

        try:
            await coordinator.run(context, make_painter(config))
        finally:
            logger.info("shutting_down")
            await coordinator.close()
            logger.info("shutdown_complete")

    asyncio.run(_run())


if __name__ == "__main__":
    main()
