import asyncio
import threading

import pytest

from sutra_reader.reading import BackendError, InMemoryRowStore, RemoteSync, SqlAlchemyRowStore


def test_sqlalchemy_row_store_upserts_by_primary_key(tmp_path):
    rows = SqlAlchemyRowStore(f"sqlite+pysqlite:///{tmp_path / 'remote.db'}")

    asyncio.run(rows.upsert("progress", [{"id": "s1:0", "user_id": "u-1", "read": True, "updated_at": "t1"}]))
    asyncio.run(rows.upsert("progress", [{"id": "s1:0", "user_id": "u-1", "read": True, "updated_at": "t2"}]))
    asyncio.run(rows.upsert("progress", [{"id": "s1:0", "user_id": "u-2", "read": True, "updated_at": "t3"}]))

    mine = asyncio.run(rows.select("progress", {"user_id": "u-1"}))
    assert mine == [{"id": "s1:0", "user_id": "u-1", "read": True, "updated_at": "t2"}]
    assert len(asyncio.run(rows.select("progress"))) == 2

    annotation = {
        "id": "a1",
        "paragraph_key": "s1:0",
        "user_id": "u-1",
        "content": "note",
        "created_at": "2024-01-01T00:00:00+00:00",
    }
    asyncio.run(rows.upsert("annotations", [annotation]))
    assert asyncio.run(rows.select("annotations", {"paragraph_key": "s1:0"})) == [annotation]


def test_sqlalchemy_row_store_rejects_unknown_tables_and_columns(tmp_path):
    rows = SqlAlchemyRowStore(f"sqlite+pysqlite:///{tmp_path / 'remote.db'}")
    with pytest.raises(BackendError):
        asyncio.run(rows.upsert("bookmarks", [{"id": "x"}]))
    with pytest.raises(BackendError):
        asyncio.run(rows.upsert("progress", [{"id": "s1:0", "user_id": "u", "colour": "red"}]))


def test_remote_sync_swallows_failures(tmp_path):
    unprovisioned = SqlAlchemyRowStore(f"sqlite+pysqlite:///{tmp_path / 'empty.db'}", create_tables=False)
    sync = RemoteSync(unprovisioned)
    assert asyncio.run(sync.upsert("progress", {"id": "s1:0", "user_id": "u-1", "read": True})) is False

    missing = RemoteSync(InMemoryRowStore(tables={}))
    assert asyncio.run(missing.upsert("annotations", [{"id": "a1"}])) is False


def test_remote_sync_accepts_single_record_or_list():
    rows = InMemoryRowStore()
    sync = RemoteSync(rows)
    assert asyncio.run(sync.upsert("progress", {"id": "s1:0", "user_id": "u-1", "read": True}))
    assert asyncio.run(
        sync.upsert(
            "progress",
            [
                {"id": "s1:1", "user_id": "u-1", "read": True},
                {"id": "s1:0", "user_id": "u-1", "read": True, "updated_at": "later"},
            ],
        )
    )
    assert asyncio.run(sync.upsert("progress", []))

    stored = sorted(asyncio.run(rows.select("progress")), key=lambda r: r["id"])
    assert [r["id"] for r in stored] == ["s1:0", "s1:1"]
    assert stored[0]["updated_at"] == "later"


def test_in_memory_row_store_requires_primary_key():
    rows = InMemoryRowStore()
    with pytest.raises(BackendError):
        asyncio.run(rows.upsert("progress", [{"id": "s1:0"}]))


def test_sqlalchemy_upsert_leaves_the_event_loop_free(tmp_path, monkeypatch):
    rows = SqlAlchemyRowStore(f"sqlite+pysqlite:///{tmp_path / 'remote.db'}")
    released = threading.Event()
    write = rows._upsert_sync

    def held_write(table, batch):
        assert released.wait(5), "event loop was blocked during the write"
        write(table, batch)

    monkeypatch.setattr(rows, "_upsert_sync", held_write)

    async def scenario():
        pending = asyncio.create_task(
            rows.upsert("progress", [{"id": "s1:0", "user_id": "u-1", "read": True, "updated_at": "t1"}])
        )
        await asyncio.sleep(0)
        released.set()
        await pending
        return await rows.select("progress")

    assert [r["id"] for r in asyncio.run(scenario())] == ["s1:0"]


def test_sqlalchemy_in_memory_database_is_shared_across_threads():
    rows = SqlAlchemyRowStore("sqlite+pysqlite:///:memory:")
    asyncio.run(rows.upsert("progress", [{"id": "s1:0", "user_id": "u-1", "read": True, "updated_at": "t1"}]))
    assert len(asyncio.run(rows.select("progress"))) == 1
