import enum

from usagewatch.aggregator import totals
from usagewatch.models import Aggregate

# below this width only date and cost are shown
MEDIUM_TABLE_COLS = 105
# from this width the models column is added
WIDE_TABLE_COLS = 140

COL_DATE = 12
COL_MODELS = 30
COL_TOKENS = 12
COL_COST = 10


class TableTier(str, enum.Enum):
    NARROW = "narrow"
    MEDIUM = "medium"
    WIDE = "wide"


def table_tier(width: "int") -> "TableTier":
    if width < MEDIUM_TABLE_COLS:
        return TableTier.NARROW
    if width < WIDE_TABLE_COLS:
        return TableTier.MEDIUM
    return TableTier.WIDE


def format_tokens(count: "int") -> "str":
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def format_cost(cost: "float") -> "str":
    return f"${cost:.2f}"


def _truncate(text: "str", width: "int") -> "str":
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"


def render_usage_table(aggregate: "Aggregate", width: "int") -> "str":
    """
    renders the per-day usage table. Columns drop out as the
    width shrinks: models first, then tokens. Date and cost
    are always shown.
    """
    if not aggregate:
        return "No usage data"

    tier = table_tier(width)
    widths = [COL_DATE]
    if tier is TableTier.WIDE:
        widths.append(COL_MODELS)
    if tier is not TableTier.NARROW:
        widths.append(COL_TOKENS)
    widths.append(COL_COST)

    def border(left: "str", mid: "str", right: "str") -> "str":
        return left + mid.join("─" * w for w in widths) + right

    def row(date: "str", models: "str", tokens: "str", cost: "str") -> "str":
        cells = [f" {date}".ljust(COL_DATE)]
        if tier is TableTier.WIDE:
            cells.append(f" {_truncate(models, COL_MODELS - 2)}".ljust(COL_MODELS))
        if tier is not TableTier.NARROW:
            cells.append(f"{tokens} ".rjust(COL_TOKENS))
        cells.append(f"{cost} ".rjust(COL_COST))
        return "│" + "│".join(cells) + "│"

    lines = [
        border("┌", "┬", "┐"),
        row("Date", "Models", "Tokens", "Cost"),
        border("├", "┼", "┤"),
    ]

    for date in sorted(aggregate):
        stats = aggregate[date]
        lines.append(
            row(
                date,
                ", ".join(sorted(stats.models)),
                format_tokens(stats.totals.total_tokens),
                format_cost(stats.totals.cost),
            )
        )

    grand = totals(aggregate)
    lines.append(border("├", "┼", "┤"))
    lines.append(
        row("Total", "", format_tokens(grand.total_tokens), format_cost(grand.cost))
    )
    lines.append(border("└", "┴", "┘"))

    return "\n".join(lines)
