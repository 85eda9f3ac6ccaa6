import enum
from datetime import datetime
from typing import Collection, Mapping, Sequence

from usagewatch.dashboard.quota_panel import render_quota_panel
from usagewatch.dashboard.usage_table import render_usage_table
from usagewatch.models import Aggregate, QuotaSnapshot

WIDE_LAYOUT_COLS = 140
GUTTER = "  "


class LayoutTier(str, enum.Enum):
    NARROW = "narrow"
    WIDE = "wide"


def layout_tier(width: "int", wide_cols: "int" = WIDE_LAYOUT_COLS) -> "LayoutTier":
    return LayoutTier.WIDE if width >= wide_cols else LayoutTier.NARROW


def render(
    aggregate: "Aggregate",
    snapshots_by_source: "Mapping[str, Sequence[QuotaSnapshot] | None]",
    width: "int",
    now: "datetime | None" = None,
    stale: "Collection[str]" = (),
    wide_cols: "int" = WIDE_LAYOUT_COLS,
) -> "str":
    """
    renders the dashboard as plain text for the given width.

    Wide layouts put the usage table on the left and the quota
    panel on the right, row by row. Narrow layouts stack the
    table above the panel, both at full width.
    """
    table = render_usage_table(aggregate, width)

    if layout_tier(width, wide_cols) is LayoutTier.NARROW:
        panel = render_quota_panel(snapshots_by_source, width, now, stale)
        return f"{table}\n\n{panel}"

    left = table.split("\n")
    left_width = max(len(line) for line in left)
    panel_width = max(1, width - left_width - len(GUTTER))
    right = render_quota_panel(snapshots_by_source, panel_width, now, stale).split(
        "\n"
    )

    rows = []
    for i in range(max(len(left), len(right))):
        left_line = left[i] if i < len(left) else ""
        right_line = right[i] if i < len(right) else ""
        rows.append((left_line.ljust(left_width) + GUTTER + right_line).rstrip())

    return "\n".join(rows)
