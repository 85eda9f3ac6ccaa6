import argparse
from pathlib import Path

from usagewatch.config import Config


def parse_args(argv: "list[str] | None" = None) -> "Config":
    parser = argparse.ArgumentParser(
        prog="usagewatch",
        description="Live terminal dashboard of token usage and provider quotas",
    )
    parser.add_argument(
        "--data-dir",
        dest="data_dir",
        type=Path,
        default=None,
        help="Directory holding opencode.db or storage/ (default: XDG data dir)",
    )
    parser.add_argument(
        "--provider",
        dest="provider",
        default=None,
        help="Only count messages from this provider id (case-insensitive)",
    )
    parser.add_argument(
        "--days",
        dest="days",
        type=int,
        default=7,
        help="Number of past days to show besides today (default: 7)",
    )
    parser.add_argument(
        "--codex-token",
        dest="codex_token",
        default=None,
        help="Session token for the Codex rate-limit API",
    )
    parser.add_argument(
        "--refresh.interval",
        dest="log_interval",
        type=float,
        default=10,
        help="Message log refresh interval in seconds (default: 10)",
    )
    parser.add_argument(
        "--web.listen-address",
        dest="listen_address",
        default="",
        help="Expose Prometheus metrics on this address, e.g. :9186 (default: off)",
    )
    parser.add_argument(
        "--log.level",
        dest="log_level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: warning)",
    )
    parser.add_argument(
        "--log.file",
        dest="log_file",
        default="",
        help="Write logs to this file instead of stderr",
    )

    args = parser.parse_args(argv)
    config = Config.from_env()
    if args.data_dir is not None:
        config.data_dir = args.data_dir
    if args.provider is not None:
        config.provider_filter = args.provider
    if args.codex_token is not None:
        config.codex_token = args.codex_token
    config.days = args.days
    config.log_interval = args.log_interval
    config.listen_address = args.listen_address
    config.log_level = args.log_level
    config.log_file = args.log_file
    return config
