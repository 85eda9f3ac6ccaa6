import math
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from usagewatch.models import QuotaSnapshot


class QuotaSource(Protocol):
    """
    QuotaSource stands as a common protocol that all
    quota providers must satisfy.

    fetch() normalizes the source's own conventions into
    QuotaSnapshot and never raises: failures come back as
    snapshots with error set, and None means the source is
    not configured on this machine.
    """

    @property
    def name(self) -> "str": ...

    @property
    def label(self) -> "str": ...

    async def fetch(self) -> "Sequence[QuotaSnapshot] | None": ...

    async def close(self) -> "None": ...


def clamp_fraction(value: "float") -> "float":
    return min(1.0, max(0.0, float(value)))


def from_epoch(seconds: "Any") -> "datetime | None":
    """
    converts unix seconds to an aware UTC datetime. Non-numeric
    and unrepresentable values yield None.
    """
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    if isinstance(seconds, float) and not math.isfinite(seconds):
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None
