import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from usagewatch.models import QuotaSnapshot
from usagewatch.quota.base import clamp_fraction

logger = structlog.get_logger()

# each tuple is (cache_key, label)
ANTHROPIC_WINDOWS: "list[tuple[str, str]]" = [
    ("five_hour", "5h session"),
    ("seven_day", "7d weekly"),
    ("seven_day_opus", "7d opus"),
]


def _parse_iso(value: "Any") -> "datetime | None":
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AnthropicQuotaSource:
    """
    AnthropicQuotaSource reads the usage cache file written by the
    Claude tooling. Each window reports utilization on a 0-100
    scale and resets_at as an ISO-8601 string.
    """

    def __init__(self, cache_path: "Path") -> "None":
        self._cache_path = Path(cache_path)

    @property
    def name(self) -> "str":
        return "anthropic"

    @property
    def label(self) -> "str":
        return "Anthropic"

    async def close(self) -> "None":
        pass

    async def fetch(self) -> "list[QuotaSnapshot] | None":
        return await asyncio.to_thread(self._read)

    def _read(self) -> "list[QuotaSnapshot] | None":
        if not self._cache_path.is_file():
            return None

        try:
            data = json.loads(self._cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("anthropic_cache_unreadable", path=str(self._cache_path))
            return [
                QuotaSnapshot(
                    source=self.name,
                    label=self.label,
                    error=f"Cache unreadable: {e.__class__.__name__}",
                )
            ]

        snapshots: "list[QuotaSnapshot]" = []
        for key, label in ANTHROPIC_WINDOWS:
            window = data.get(key) if isinstance(data, dict) else None
            if not isinstance(window, dict):
                continue

            utilization = window.get("utilization")
            if not isinstance(utilization, (int, float)):
                continue

            snapshots.append(
                QuotaSnapshot(
                    source=self.name,
                    label=label,
                    used=clamp_fraction(utilization / 100),
                    reset_at=_parse_iso(window.get("resets_at")),
                )
            )

        if not snapshots:
            return [
                QuotaSnapshot(
                    source=self.name, label=self.label, error="No quota windows"
                )
            ]
        return snapshots
