import json
import os
from pathlib import Path
from typing import Iterator

import structlog

from usagewatch.models import Record
from usagewatch.store.base import StoreUnavailableError, parse_record

logger = structlog.get_logger()


# how far a file mtime may trail its message creation time (1 s
# filesystem resolution plus clock skew)
MTIME_SLACK_MS = 2000


def _is_older(entry: "os.DirEntry[str]", after: "int") -> "bool":
    return _mtime_ms(entry) < after - MTIME_SLACK_MS


def _mtime_ms(entry: "os.DirEntry[str]") -> "int":
    return entry.stat().st_mtime_ns // 1_000_000


class FileTreeRecordStore:
    """
    FileTreeRecordStore reads one JSON file per message laid out
    as <root>/message/<session_id>/<message_id>.json.

    read_after() skips session directories and message files
    whose modification time is well before the checkpoint.
    A message is written no earlier than it is created, so an
    old mtime rules out a newer creation time without opening
    the file.
    """

    def __init__(self, root: "Path") -> "None":
        self._messages_dir = Path(root) / "message"

    @property
    def name(self) -> "str":
        return "files"

    def read_all(self) -> "list[Record]":
        return list(self._scan(after=None))

    def read_after(self, timestamp: "int") -> "list[Record]":
        return [
            record
            for record in self._scan(after=timestamp)
            if record.created is not None and record.created > timestamp
        ]

    def _scan(self, after: "int | None") -> "Iterator[Record]":
        try:
            sessions = sorted(os.scandir(self._messages_dir), key=lambda e: e.name)
        except OSError as e:
            raise StoreUnavailableError(
                f"cannot read {self._messages_dir}: {e}"
            ) from e

        for session in sessions:
            try:
                if not session.is_dir():
                    continue
                # a new message file bumps its directory's mtime
                if after is not None and _is_older(session, after):
                    continue
                files = sorted(
                    (
                        f
                        for f in os.scandir(session.path)
                        if f.name.endswith(".json") and f.is_file()
                    ),
                    key=lambda e: e.name,
                )
            except OSError:
                logger.warning("session_dir_unreadable", session=session.name)
                continue

            for message_file in files:
                try:
                    if after is not None and _is_older(message_file, after):
                        continue
                    with open(message_file.path, encoding="utf-8") as f:
                        payload = json.load(f)
                except (OSError, ValueError):
                    # skip unreadable or invalid JSON files
                    logger.debug("message_file_skipped", path=message_file.path)
                    continue

                record = parse_record(payload, session_id=session.name)
                if record is not None:
                    yield record
