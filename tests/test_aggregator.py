from datetime import date, datetime, timezone

import pytest

from usagewatch.aggregator import (
    aggregate_by_date,
    filter_by_days,
    merge,
    record_date,
    totals,
)
from usagewatch.loader import Cursor, IncrementalLoader
from usagewatch.models import Aggregate, DailyStats, Record, TokenUsage
from usagewatch.store.files import FileTreeRecordStore


def _ms(year: "int", month: "int", day: "int", hour: "int" = 12) -> "int":
    moment = datetime(year, month, day, hour, tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _record(
    record_id: "str",
    created: "int | None",
    model_id: "str" = "claude-opus-4-5",
    provider_id: "str | None" = "anthropic",
    input_tokens: "int" = 1000,
    output_tokens: "int" = 500,
) -> "Record":
    return Record(
        id=record_id,
        session_id="session-1",
        role="assistant",
        model_id=model_id,
        provider_id=provider_id,
        tokens=TokenUsage(input=input_tokens, output=output_tokens),
        created=created,
    )


def _assert_same(left: "Aggregate", right: "Aggregate") -> "None":
    """
    compares aggregates field by field, costs up to float rounding.
    """
    assert left.keys() == right.keys()
    for day in left:
        a, b = left[day], right[day]
        assert a.models == b.models
        assert a.providers == b.providers
        assert a.totals.total_tokens == b.totals.total_tokens
        assert a.totals.input == b.totals.input
        assert a.totals.output == b.totals.output
        assert a.totals.cost == pytest.approx(b.totals.cost)
        assert a.provider_stats.keys() == b.provider_stats.keys()
        for provider in a.provider_stats:
            pa, pb = a.provider_stats[provider], b.provider_stats[provider]
            assert pa.models == pb.models
            assert pa.totals.input == pb.totals.input
            assert pa.totals.cost == pytest.approx(pb.totals.cost)


class TestRecordDate:
    def test_uses_utc_calendar_day(self) -> "None":
        # 23:00 UTC stays on the same UTC day whatever the local zone
        assert record_date(_record("a", _ms(2025, 12, 15, 23))) == "2025-12-15"

    def test_missing_timestamp(self) -> "None":
        assert record_date(_record("a", None)) is None


class TestMerge:
    def test_single_record(self) -> "None":
        result = merge({}, [_record("a", _ms(2025, 12, 15))])

        stats = result["2025-12-15"]
        assert stats.totals.input == 1000
        assert stats.totals.output == 500
        assert stats.models == {"claude-opus-4-5"}
        assert stats.providers == {"anthropic"}

    def test_same_day_records_are_summed(self) -> "None":
        result = merge(
            {},
            [
                _record("a", _ms(2025, 12, 15), input_tokens=1000),
                _record("b", _ms(2025, 12, 15), "claude-sonnet-4-5", input_tokens=2000),
            ],
        )

        stats = result["2025-12-15"]
        assert stats.totals.input == 3000
        assert stats.models == {"claude-opus-4-5", "claude-sonnet-4-5"}
        assert stats.providers == {"anthropic"}

    def test_separates_days(self) -> "None":
        result = merge(
            {},
            [_record("a", _ms(2025, 12, 15)), _record("b", _ms(2025, 12, 16))],
        )
        assert sorted(result) == ["2025-12-15", "2025-12-16"]

    def test_provider_breakdown(self) -> "None":
        result = merge(
            {},
            [
                _record("a", _ms(2025, 12, 15), input_tokens=1000),
                _record("b", _ms(2025, 12, 15), "gpt-4o", "openai", input_tokens=2000),
            ],
        )

        stats = result["2025-12-15"]
        assert stats.provider_stats["anthropic"].totals.input == 1000
        assert stats.provider_stats["openai"].totals.input == 2000
        assert stats.provider_stats["openai"].models == {"gpt-4o"}

    def test_missing_provider_uses_default(self) -> "None":
        result = merge(
            {}, [_record("a", _ms(2025, 12, 15), provider_id=None)], "opencode"
        )
        assert result["2025-12-15"].providers == {"opencode"}

    def test_records_without_timestamp_are_ignored(self) -> "None":
        assert merge({}, [_record("a", None)]) == {}

    def test_cost_of_one_million_input_tokens(self) -> "None":
        result = merge(
            {},
            [_record("a", _ms(2025, 12, 15), input_tokens=1_000_000, output_tokens=0)],
        )
        assert result["2025-12-15"].totals.cost == 5.0
        assert result["2025-12-15"].provider_stats["anthropic"].totals.cost == 5.0

    def test_does_not_mutate_input(self) -> "None":
        first = merge({}, [_record("a", _ms(2025, 12, 15))])
        before = first["2025-12-15"].copy()

        second = merge(first, [_record("b", _ms(2025, 12, 15))])

        assert first["2025-12-15"] == before
        assert second["2025-12-15"].totals.input == 2000

    def test_is_associative_over_ordered_batches(self) -> "None":
        records = [
            _record("a", _ms(2025, 12, 14), input_tokens=10),
            _record("b", _ms(2025, 12, 15), "gpt-4o", "openai", input_tokens=20),
            _record("c", _ms(2025, 12, 15), input_tokens=30),
            _record("d", _ms(2025, 12, 16), "claude-sonnet-4-5", input_tokens=40),
        ]

        for split in range(len(records) + 1):
            stepwise = merge(merge({}, records[:split]), records[split:])
            assert stepwise == merge({}, records)


class TestFullEqualsIncremental:
    def test_batches_match_single_load(
        self, storage_dir, write_message, make_message
    ) -> "None":
        loader = IncrementalLoader(FileTreeRecordStore(storage_dir))
        aggregate: "Aggregate" = {}
        cursor = Cursor()

        # session-2 talks to openai, the others to anthropic
        batches = [
            [
                ("msg-1", "session-1", _ms(2025, 12, 14)),
                ("msg-2", "session-2", _ms(2025, 12, 14, 13)),
            ],
            [("msg-3", "session-1", _ms(2025, 12, 15))],
            [
                ("msg-4", "session-3", _ms(2025, 12, 15, 18)),
                ("msg-5", "session-2", _ms(2025, 12, 16)),
            ],
        ]
        for batch in batches:
            for msg_id, session_id, created in batch:
                openai = session_id == "session-2"
                write_message(
                    make_message(
                        msg_id,
                        session_id,
                        created=created,
                        model_id="gpt-4o" if openai else "claude-sonnet-4-5",
                        provider_id="openai" if openai else "anthropic",
                    )
                )
            result = loader.load(cursor)
            aggregate = merge(aggregate, result.records)
            cursor = result.cursor

        full = aggregate_by_date(loader.load(Cursor()).records)

        _assert_same(aggregate, full)
        assert cursor.last_timestamp == _ms(2025, 12, 16)


class TestFilterByDays:
    def test_keeps_recent_days(self) -> "None":
        aggregate = {
            day: DailyStats(date=day)
            for day in ["2025-12-13", "2025-12-14", "2025-12-15"]
        }

        assert list(filter_by_days(aggregate, 0, date(2025, 12, 15))) == [
            "2025-12-15"
        ]
        assert sorted(filter_by_days(aggregate, 1, date(2025, 12, 15))) == [
            "2025-12-14",
            "2025-12-15",
        ]


class TestTotals:
    def test_sums_all_days(self) -> "None":
        aggregate = merge(
            {},
            [
                _record("a", _ms(2025, 12, 14), input_tokens=1000, output_tokens=500),
                _record("b", _ms(2025, 12, 15), input_tokens=2000, output_tokens=1000),
            ],
        )

        grand = totals(aggregate)
        assert grand.input == 3000
        assert grand.output == 1500
        assert grand.cost == pytest.approx(
            aggregate["2025-12-14"].totals.cost + aggregate["2025-12-15"].totals.cost
        )
