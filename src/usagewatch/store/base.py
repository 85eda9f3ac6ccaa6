import math
from typing import Any, Iterable, Protocol

import structlog

from usagewatch.models import Record, TokenUsage

logger = structlog.get_logger()

# 9999-12-31T23:59:59.999Z, the last instant datetime can represent
MAX_CREATED_MS = 253_402_300_799_999


class StoreUnavailableError(Exception):
    """
    raised when the record store as a whole cannot be read.
    Individual malformed records never raise this.
    """


class RecordStore(Protocol):
    """
    RecordStore stands as the common protocol for the
    message log backends.

    Both queries return parsed but unfiltered records; role
    and provider filtering is left to the loader.
    """

    @property
    def name(self) -> "str": ...

    def read_all(self) -> "Iterable[Record]": ...

    def read_after(self, timestamp: "int") -> "Iterable[Record]":
        """
        returns records whose creation time is strictly
        greater than timestamp (milliseconds).
        """
        ...


def _token_count(value: "Any") -> "int":
    # bool is an int subclass but never a valid count
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"invalid token count: {value!r}")
    return value


def _parse_tokens(raw: "Any") -> "TokenUsage | None":
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("tokens is not an object")

    cache = raw.get("cache") or {}
    if not isinstance(cache, dict):
        raise ValueError("tokens.cache is not an object")
    return TokenUsage(
        input=_token_count(raw.get("input", 0)),
        output=_token_count(raw.get("output", 0)),
        reasoning=_token_count(raw.get("reasoning", 0)),
        cache_read=_token_count(cache.get("read", 0)),
        cache_write=_token_count(cache.get("write", 0)),
    )


def _created_ms(value: "Any") -> "int | None":
    # NaN, Infinity and out-of-range times are treated as missing
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if not 0 <= value <= MAX_CREATED_MS:
        return None
    return int(value)


def parse_record(
    payload: "Any",
    *,
    record_id: "str | None" = None,
    session_id: "str | None" = None,
    created: "int | None" = None,
) -> "Record | None":
    """
    builds a Record from a message JSON payload. Values passed
    as keyword arguments (e.g. table columns) take precedence
    over the payload's own fields. Returns None for malformed
    payloads so one bad message never aborts a batch.
    """
    if not isinstance(payload, dict):
        logger.debug("record_malformed", record_id=record_id, reason="not an object")
        return None

    try:
        return _build_record(payload, record_id, session_id, created)
    except (TypeError, AttributeError, ValueError, OverflowError) as e:
        logger.debug("record_malformed", record_id=record_id, reason=str(e))
        return None


def _build_record(
    payload: "dict[str, Any]",
    record_id: "str | None",
    session_id: "str | None",
    created: "int | None",
) -> "Record":
    model = payload.get("model") or {}
    if not isinstance(model, dict):
        model = {}

    if created is None:
        time_info = payload.get("time") or {}
        if isinstance(time_info, dict):
            created = time_info.get("created")

    provider_id = model.get("providerID") or payload.get("providerID")

    return Record(
        id=str(record_id or payload.get("id") or ""),
        session_id=str(session_id or payload.get("sessionID") or ""),
        role=str(payload.get("role") or ""),
        model_id=str(model.get("modelID") or payload.get("modelID") or "unknown"),
        provider_id=str(provider_id) if provider_id else None,
        tokens=_parse_tokens(payload.get("tokens")),
        created=_created_ms(created),
    )
