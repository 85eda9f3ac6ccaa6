import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from usagewatch.models import QuotaSnapshot
from usagewatch.quota.base import clamp_fraction, from_epoch

logger = structlog.get_logger()


def _reset_at(reset_ms: "Any") -> "datetime | None":
    if isinstance(reset_ms, bool) or not isinstance(reset_ms, (int, float)):
        return None
    try:
        return from_epoch(reset_ms / 1000)
    except OverflowError:
        return None


class AntigravityQuotaSource:
    """
    AntigravityQuotaSource reads the per-model quota cache. The
    cache stores the *remaining* fraction (0-1) and resetTime in
    unix milliseconds, so used = 1 - remainingFraction.
    """

    def __init__(self, cache_path: "Path") -> "None":
        self._cache_path = Path(cache_path)

    @property
    def name(self) -> "str":
        return "antigravity"

    @property
    def label(self) -> "str":
        return "Antigravity"

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
            logger.warning("antigravity_cache_unreadable", path=str(self._cache_path))
            return [
                QuotaSnapshot(
                    source=self.name,
                    label=self.label,
                    error=f"Cache unreadable: {e.__class__.__name__}",
                )
            ]

        models = data.get("models") if isinstance(data, dict) else None
        snapshots: "list[QuotaSnapshot]" = []

        for entry in models or []:
            if not isinstance(entry, dict):
                continue
            remaining = entry.get("remainingFraction")
            if not isinstance(remaining, (int, float)):
                continue

            snapshots.append(
                QuotaSnapshot(
                    source=self.name,
                    label=str(entry.get("label") or entry.get("model") or "model"),
                    used=clamp_fraction(1 - remaining),
                    reset_at=_reset_at(entry.get("resetTime")),
                )
            )

        if not snapshots:
            return [
                QuotaSnapshot(
                    source=self.name, label=self.label, error="No model quotas"
                )
            ]
        return snapshots
