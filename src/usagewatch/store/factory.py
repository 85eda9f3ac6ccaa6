from pathlib import Path

from usagewatch.store.base import RecordStore
from usagewatch.store.files import FileTreeRecordStore
from usagewatch.store.sql import SqlRecordStore

DB_FILENAME = "opencode.db"


def open_record_store(data_dir: "Path") -> "RecordStore":
    """
    picks the SQLite backend when the database exists, the
    per-message file tree under storage/ otherwise.
    """
    data_dir = Path(data_dir)
    db_path = data_dir / DB_FILENAME
    if db_path.is_file():
        return SqlRecordStore(db_path)
    return FileTreeRecordStore(data_dir / "storage")
