import copy
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """
    TokenUsage is the token breakdown of a single message.
    All counts are non-negative integers.
    """

    input: "int" = 0
    output: "int" = 0
    reasoning: "int" = 0
    cache_read: "int" = 0
    cache_write: "int" = 0


@dataclass(frozen=True, slots=True)
class Record:
    """
    Record represents a single usage event read from
    the message log.
    """

    id: "str"
    session_id: "str"
    # "assistant" for producer records, "user" for consumer records
    role: "str"
    model_id: "str"
    # note - None when the message carries no provider id
    provider_id: "str | None"
    # None when the message carries no token breakdown
    tokens: "TokenUsage | None"
    # unix timestamp in milliseconds, None when absent
    created: "int | None"


@dataclass(frozen=True, slots=True)
class QuotaSnapshot:
    """
    QuotaSnapshot is one normalized observation of a quota
    window. used is always a fraction in [0, 1], whatever
    convention the source reports in.
    """

    source: "str"
    label: "str"
    used: "float" = 0.0
    reset_at: "datetime | None" = None
    # takes rendering precedence over used when set
    error: "str | None" = None


@dataclass(slots=True)
class TokenTotals:
    input: "int" = 0
    output: "int" = 0
    reasoning: "int" = 0
    cache_read: "int" = 0
    cache_write: "int" = 0
    cost: "float" = 0.0

    def add(self, tokens: "TokenUsage", cost: "float") -> "None":
        self.input += tokens.input
        self.output += tokens.output
        self.reasoning += tokens.reasoning
        self.cache_read += tokens.cache_read
        self.cache_write += tokens.cache_write
        self.cost += cost

    @property
    def total_tokens(self) -> "int":
        return (
            self.input
            + self.output
            + self.reasoning
            + self.cache_read
            + self.cache_write
        )


@dataclass(slots=True)
class ProviderStats:
    totals: "TokenTotals" = field(default_factory=TokenTotals)
    models: "set[str]" = field(default_factory=set)


@dataclass(slots=True)
class DailyStats:
    """
    DailyStats is the running aggregate for one UTC calendar day.
    """

    date: "str"
    totals: "TokenTotals" = field(default_factory=TokenTotals)
    models: "set[str]" = field(default_factory=set)
    providers: "set[str]" = field(default_factory=set)
    provider_stats: "dict[str, ProviderStats]" = field(default_factory=dict)

    def copy(self) -> "DailyStats":
        return copy.deepcopy(self)


# date string (YYYY-MM-DD) -> stats for that day
Aggregate = dict[str, DailyStats]
