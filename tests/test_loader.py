from pathlib import Path

from usagewatch.loader import Cursor, IncrementalLoader
from usagewatch.store.factory import open_record_store
from usagewatch.store.files import FileTreeRecordStore


class TestIncrementalLoaderFullLoad:
    def test_empty_cursor_loads_everything(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", created=1000))
        write_message(make_message("msg-2", created=2000))

        result = IncrementalLoader(FileTreeRecordStore(storage_dir)).load(Cursor())

        assert [r.id for r in result.records] == ["msg-1", "msg-2"]
        assert result.cursor == Cursor(last_timestamp=2000)
        assert result.error is None

    def test_empty_store_keeps_zero_cursor(self, storage_dir) -> "None":
        result = IncrementalLoader(FileTreeRecordStore(storage_dir)).load()
        assert result.records == []
        assert result.cursor.last_timestamp == 0

    def test_skips_user_messages(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", role="user", created=1000))
        write_message(make_message("msg-2", created=2000))

        result = IncrementalLoader(FileTreeRecordStore(storage_dir)).load()
        assert [r.id for r in result.records] == ["msg-2"]

    def test_skips_messages_without_tokens(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", with_tokens=False, created=3000))
        write_message(make_message("msg-2", created=2000))

        result = IncrementalLoader(FileTreeRecordStore(storage_dir)).load()
        assert [r.id for r in result.records] == ["msg-2"]
        # rejected records never move the cursor
        assert result.cursor.last_timestamp == 2000

    def test_provider_filter_is_case_insensitive(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", provider_id="Anthropic", created=1000))
        write_message(make_message("msg-2", provider_id="openai", created=2000))

        loader = IncrementalLoader(
            FileTreeRecordStore(storage_dir), provider_filter="ANTHROPIC"
        )
        assert [r.id for r in loader.load().records] == ["msg-1"]

    def test_provider_filter_uses_default_provider(
        self, storage_dir, write_message, make_message
    ) -> "None":
        message = make_message("msg-1", created=1000)
        del message["model"]
        write_message(message)

        loader = IncrementalLoader(
            FileTreeRecordStore(storage_dir),
            provider_filter="opencode",
            default_provider="opencode",
        )
        assert [r.id for r in loader.load().records] == ["msg-1"]

    def test_unreadable_store_returns_empty_and_keeps_cursor(
        self, tmp_path: "Path"
    ) -> "None":
        loader = IncrementalLoader(FileTreeRecordStore(tmp_path / "missing"))

        result = loader.load(Cursor(last_timestamp=4000))

        assert result.records == []
        assert result.cursor == Cursor(last_timestamp=4000)
        assert result.error is not None


class TestIncrementalLoaderCheckpoint:
    def test_second_call_returns_only_new_records(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", created=1000))
        write_message(make_message("msg-2", created=2000))
        loader = IncrementalLoader(FileTreeRecordStore(storage_dir))
        first = loader.load()

        write_message(make_message("msg-3", created=3000))
        second = loader.load(first.cursor)

        assert [r.id for r in second.records] == ["msg-3"]
        assert second.cursor.last_timestamp == 3000

    def test_reload_without_writes_is_empty(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", created=1000))
        write_message(make_message("msg-2", session_id="session-2", created=2000))
        loader = IncrementalLoader(FileTreeRecordStore(storage_dir))

        first = loader.load()
        second = loader.load(first.cursor)

        assert second.records == []
        assert second.cursor == first.cursor

    def test_records_sharing_max_timestamp_arrive_together(
        self, message_db, make_message, tmp_path: "Path"
    ) -> "None":
        message_db([make_message("msg-1", created=1000)])
        loader = IncrementalLoader(open_record_store(tmp_path))
        first = loader.load()

        message_db(
            [
                make_message("msg-2", created=2000),
                make_message("msg-3", created=2000),
            ]
        )
        second = loader.load(first.cursor)
        third = loader.load(second.cursor)

        assert sorted(r.id for r in second.records) == ["msg-2", "msg-3"]
        assert second.cursor.last_timestamp == 2000
        assert third.records == []
        assert third.cursor == second.cursor

    def test_cursor_never_moves_backwards(
        self, storage_dir, write_message, make_message
    ) -> "None":
        write_message(make_message("msg-1", created=1000))
        loader = IncrementalLoader(FileTreeRecordStore(storage_dir))

        result = loader.load(Cursor(last_timestamp=5000))

        assert result.records == []
        assert result.cursor.last_timestamp == 5000

    def test_filters_apply_on_incremental_path(
        self, message_db, make_message, tmp_path: "Path"
    ) -> "None":
        message_db([make_message("msg-1", created=1000)])
        loader = IncrementalLoader(open_record_store(tmp_path))
        first = loader.load()

        message_db(
            [
                make_message("msg-2", role="user", created=2000),
                make_message("msg-3", with_tokens=False, created=2500),
                make_message("msg-4", created=3000),
            ]
        )
        second = loader.load(first.cursor)

        assert [r.id for r in second.records] == ["msg-4"]
