import json
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest
import sqlalchemy as sa
from prometheus_client import CollectorRegistry


@pytest.fixture()
def registry() -> "CollectorRegistry":
    """
    fresh Prometheus registry to avoid cross-test state.
    """
    return CollectorRegistry()


@pytest.fixture()
def make_message() -> "Callable[..., dict[str, Any]]":
    """
    factory for message JSON payloads as the message log stores them.
    """

    def _make(
        msg_id: "str",
        session_id: "str" = "session-1",
        provider_id: "str" = "anthropic",
        created: "int | None" = 1000,
        role: "str" = "assistant",
        model_id: "str" = "claude-sonnet-4-5",
        input_tokens: "int" = 100,
        output_tokens: "int" = 50,
        with_tokens: "bool" = True,
    ) -> "dict[str, Any]":
        message: "dict[str, Any]" = {
            "id": msg_id,
            "sessionID": session_id,
            "role": role,
            "model": {"providerID": provider_id, "modelID": model_id},
        }
        if with_tokens:
            message["tokens"] = {
                "input": input_tokens,
                "output": output_tokens,
                "reasoning": 0,
                "cache": {"read": 0, "write": 0},
            }
        if created is not None:
            message["time"] = {"created": created, "completed": created + 1000}
        return message

    return _make


@pytest.fixture()
def storage_dir(tmp_path: "Path") -> "Path":
    """
    an empty file-tree store root (with its message/ directory).
    """
    root = tmp_path / "storage"
    (root / "message").mkdir(parents=True)
    return root


@pytest.fixture()
def write_message(storage_dir: "Path") -> "Callable[[dict[str, Any]], Path]":
    """
    writes a message payload to <storage>/message/<session>/<id>.json.
    """

    def _write(message: "dict[str, Any]") -> "Path":
        session_dir = storage_dir / "message" / message["sessionID"]
        session_dir.mkdir(parents=True, exist_ok=True)
        path = session_dir / f"{message['id']}.json"
        path.write_text(json.dumps(message), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def message_db(
    tmp_path: "Path",
) -> "Iterator[Callable[[list[dict[str, Any]]], Path]]":
    """
    creates <tmp>/opencode.db with the message table and inserts the
    given payloads. Returns a callable so tests can append later.
    """
    db_path = tmp_path / "opencode.db"
    engine = sa.create_engine(f"sqlite:///{db_path}")
    with engine.begin() as conn:
        conn.execute(
            sa.text(
                "CREATE TABLE message ("
                " id TEXT PRIMARY KEY,"
                " session_id TEXT NOT NULL,"
                " time_created INTEGER NOT NULL,"
                " time_updated INTEGER NOT NULL,"
                " data TEXT NOT NULL)"
            )
        )

    def _insert(messages: "list[dict[str, Any]]") -> "Path":
        with engine.begin() as conn:
            for message in messages:
                created = message.get("time", {}).get("created", 0)
                conn.execute(
                    sa.text(
                        "INSERT INTO message VALUES "
                        "(:id, :session_id, :created, :created, :data)"
                    ),
                    {
                        "id": message["id"],
                        "session_id": message["sessionID"],
                        "created": created,
                        "data": json.dumps(message),
                    },
                )
        return db_path

    yield _insert
    engine.dispose()
