import json
from pathlib import Path

import sqlalchemy as sa
import structlog

from usagewatch.models import Record
from usagewatch.store.base import StoreUnavailableError, parse_record

logger = structlog.get_logger()

_SELECT_ALL = sa.text(
    "SELECT id, session_id, time_created, data FROM message "
    "ORDER BY time_created, id"
)
# served by the time_created ordering; an index on
# message(time_created) keeps recent reads cheap
_SELECT_AFTER = sa.text(
    "SELECT id, session_id, time_created, data FROM message "
    "WHERE time_created > :after ORDER BY time_created, id"
)


class SqlRecordStore:
    """
    SqlRecordStore reads messages from the SQLite database's
    message table. The time_created column is the record's
    creation time and the data column holds the message JSON.
    """

    def __init__(self, db_path: "Path") -> "None":
        self._db_path = Path(db_path)
        self._engine: "sa.Engine | None" = None

    @property
    def name(self) -> "str":
        return "sqlite"

    def _get_engine(self) -> "sa.Engine":
        if not self._db_path.is_file():
            raise StoreUnavailableError(f"database not found: {self._db_path}")

        if self._engine is None:
            # read-only so a live writer is never blocked by us
            self._engine = sa.create_engine(
                f"sqlite:///file:{self._db_path}?mode=ro&uri=true",
            )
        return self._engine

    def close(self) -> "None":
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

    def read_all(self) -> "list[Record]":
        return self._query(_SELECT_ALL, {})

    def read_after(self, timestamp: "int") -> "list[Record]":
        return self._query(_SELECT_AFTER, {"after": timestamp})

    def _query(self, statement: "sa.TextClause", params: "dict") -> "list[Record]":
        try:
            with self._get_engine().connect() as conn:
                rows = conn.execute(statement, params).all()
        except sa.exc.SQLAlchemyError as e:
            raise StoreUnavailableError(f"cannot query {self._db_path}: {e}") from e

        records: "list[Record]" = []
        for row in rows:
            try:
                payload = json.loads(row.data)
            except (TypeError, ValueError):
                logger.debug("message_row_skipped", record_id=row.id)
                continue

            record = parse_record(
                payload,
                record_id=row.id,
                session_id=row.session_id,
                created=row.time_created,
            )
            if record is not None:
                records.append(record)

        return records
