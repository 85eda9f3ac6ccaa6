from dataclasses import dataclass, field

import structlog

from usagewatch.models import Record
from usagewatch.store.base import RecordStore, StoreUnavailableError

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class Cursor:
    """
    Cursor is the loader's resume point: the maximum creation
    timestamp (ms) over all accepted records so far. Zero means
    nothing has been loaded yet.
    """

    last_timestamp: "int" = 0


@dataclass(frozen=True, slots=True)
class LoadResult:
    records: "list[Record]" = field(default_factory=list)
    cursor: "Cursor" = field(default_factory=Cursor)
    # set when the store could not be read; cursor is unchanged then
    error: "str | None" = None


class IncrementalLoader:
    """
    IncrementalLoader turns a growing record store into batches
    of records that are new since the given cursor.

    Loading with a zero cursor reads everything; any other cursor
    issues a single "created after" query, so loading again with
    the returned cursor and no new writes yields an empty batch.
    """

    def __init__(
        self,
        store: "RecordStore",
        provider_filter: "str | None" = None,
        default_provider: "str" = "unknown",
    ) -> "None":
        self._store = store
        self._provider_filter = provider_filter.lower() if provider_filter else None
        self._default_provider = default_provider

    def close(self) -> "None":
        close = getattr(self._store, "close", None)
        if close is not None:
            close()

    def accepts(self, record: "Record") -> "bool":
        """
        applies the validity filter: assistant records with a token
        breakdown, optionally restricted to one provider.
        """
        if record.role != "assistant":
            return False
        if record.tokens is None:
            return False
        if self._provider_filter is not None:
            provider = record.provider_id or self._default_provider
            if provider.lower() != self._provider_filter:
                return False
        return True

    def load(self, cursor: "Cursor | None" = None) -> "LoadResult":
        cursor = cursor or Cursor()

        try:
            if cursor.last_timestamp:
                raw = self._store.read_after(cursor.last_timestamp)
            else:
                raw = self._store.read_all()
            records = [r for r in raw if self.accepts(r)]
        except StoreUnavailableError as e:
            # never advance the cursor past records we could not read
            logger.warning(
                "record_store_unavailable",
                store=self._store.name,
                error=str(e),
            )
            return LoadResult(records=[], cursor=cursor, error=str(e))

        latest = max(
            (r.created for r in records if r.created is not None),
            default=0,
        )
        new_cursor = Cursor(last_timestamp=max(cursor.last_timestamp, latest))

        logger.debug(
            "records_loaded",
            store=self._store.name,
            count=len(records),
            since=cursor.last_timestamp,
            cursor=new_cursor.last_timestamp,
        )
        return LoadResult(records=records, cursor=new_cursor)
