from datetime import date, datetime, timedelta, timezone
from typing import Iterable

from usagewatch.models import Aggregate, DailyStats, ProviderStats, Record, TokenTotals
from usagewatch.pricing import calculate_cost


def record_date(record: "Record") -> "str | None":
    """
    returns the UTC calendar date (YYYY-MM-DD) of a record, or
    None when it has no creation time. UTC keeps full and
    incremental loads bucketing identically on every machine.
    """
    if record.created is None:
        return None
    created = datetime.fromtimestamp(record.created / 1000, tz=timezone.utc)
    return created.date().isoformat()


def merge(
    aggregate: "Aggregate",
    records: "Iterable[Record]",
    default_provider: "str" = "unknown",
) -> "Aggregate":
    """
    folds a batch of new records into the aggregate and returns
    the updated aggregate. The input mapping is left untouched:
    days touched by the batch are copied before being added to,
    untouched days are shared with the input.
    """
    merged: "Aggregate" = dict(aggregate)
    copied: "set[str]" = set()

    for record in records:
        day = record_date(record)
        if day is None or record.tokens is None:
            continue

        if day not in copied:
            existing = merged.get(day)
            merged[day] = existing.copy() if existing else DailyStats(date=day)
            copied.add(day)
        stats = merged[day]

        provider = record.provider_id or default_provider
        cost = calculate_cost(record.tokens, record.model_id)

        stats.totals.add(record.tokens, cost)
        stats.models.add(record.model_id)
        stats.providers.add(provider)

        provider_stats = stats.provider_stats.setdefault(provider, ProviderStats())
        provider_stats.totals.add(record.tokens, cost)
        provider_stats.models.add(record.model_id)

    return merged


def aggregate_by_date(
    records: "Iterable[Record]",
    default_provider: "str" = "unknown",
) -> "Aggregate":
    return merge({}, records, default_provider)


def filter_by_days(
    aggregate: "Aggregate",
    days: "int",
    today: "date | None" = None,
) -> "Aggregate":
    """
    keeps the entries from the last `days` days up to today
    (UTC). days=0 keeps today only.
    """
    today = today or datetime.now(timezone.utc).date()
    cutoff = (today - timedelta(days=days)).isoformat()
    return {day: stats for day, stats in aggregate.items() if day >= cutoff}


def totals(aggregate: "Aggregate") -> "TokenTotals":
    result = TokenTotals()
    for stats in aggregate.values():
        t = stats.totals
        result.input += t.input
        result.output += t.output
        result.reasoning += t.reasoning
        result.cache_read += t.cache_read
        result.cache_write += t.cache_write
        result.cost += t.cost
    return result
