import math
from datetime import datetime, timezone
from typing import Collection, Mapping, Sequence

from usagewatch.models import QuotaSnapshot

BAR_WIDTH = 20
LABEL_WIDTH = 16
RESETTING = "resetting…"
NOT_CONFIGURED = "not configured"


def format_duration(seconds: "float") -> "str":
    """
    formats a duration with its two most significant units,
    e.g. "2d 4h", "3h 12m" or "45m". Remainders are floored.
    """
    if seconds <= 0:
        return RESETTING

    total_minutes = int(seconds // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)

    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _half_up(value: "float") -> "int":
    return math.floor(value + 0.5)


def render_bar(used: "float", width: "int" = BAR_WIDTH) -> "str":
    filled = min(width, max(0, _half_up(used * width)))
    return "█" * filled + "░" * (width - filled)


def _snapshot_line(snapshot: "QuotaSnapshot", now: "datetime") -> "str":
    label = snapshot.label[:LABEL_WIDTH].ljust(LABEL_WIDTH)
    if snapshot.error:
        return f"  {label} {snapshot.error}"

    percent = _half_up(snapshot.used * 100)
    line = f"  {label} {render_bar(snapshot.used)} {percent:>3}%"
    if snapshot.reset_at is None:
        return line

    duration = format_duration((snapshot.reset_at - now).total_seconds())
    if duration == RESETTING:
        return f"{line}  {duration}"
    return f"{line}  resets in {duration}"


def render_quota_panel(
    snapshots_by_source: "Mapping[str, Sequence[QuotaSnapshot] | None]",
    width: "int",
    now: "datetime | None" = None,
    stale: "Collection[str]" = (),
) -> "str":
    """
    renders the quota panel: one heading per source (sorted by
    name) followed by a bar line per snapshot. Sources without
    snapshots are shown as not configured.
    """
    now = now or datetime.now(timezone.utc)
    lines = ["QUOTAS"]

    for source in sorted(snapshots_by_source):
        heading = source.upper()
        if source in stale:
            heading += " (stale)"
        lines.append("")
        lines.append(heading)

        snapshots = snapshots_by_source[source]
        if not snapshots:
            lines.append(f"  {NOT_CONFIGURED}")
            continue
        for snapshot in snapshots:
            lines.append(_snapshot_line(snapshot, now))

    return "\n".join(line[:width] for line in lines)
