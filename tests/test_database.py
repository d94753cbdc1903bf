"""
Tests for queue database setup - discord_notify/db/database.py
"""
import pytest
from sqlalchemy import inspect, text

from discord_notify.db.database import build_database_url, build_engine, init_database


class TestBuildDatabaseUrl:

    @pytest.mark.unit
    def test_memory(self):
        assert build_database_url(":memory:") == "sqlite+aiosqlite:///:memory:"

    @pytest.mark.unit
    def test_file(self):
        assert build_database_url("/tmp/q.db") == "sqlite+aiosqlite:////tmp/q.db"


class TestFileDatabase:

    @pytest.mark.asyncio
    async def test_creates_parent_directory_and_uses_wal(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "queue.db"
        engine = build_engine(str(db_path))
        try:
            await init_database(engine)

            assert db_path.parent.is_dir()
            async with engine.connect() as conn:
                mode = (await conn.execute(text("PRAGMA journal_mode"))).scalar_one()
            assert mode.lower() == "wal"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_init_database_is_idempotent(self, tmp_path):
        engine = build_engine(str(tmp_path / "queue.db"))
        try:
            await init_database(engine)
            await init_database(engine)

            async with engine.connect() as conn:
                tables, indexes = await conn.run_sync(
                    lambda sync_conn: (
                        inspect(sync_conn).get_table_names(),
                        [i["name"] for i in inspect(sync_conn).get_indexes("discord_queue")],
                    )
                )
            assert "discord_queue" in tables
            assert "idx_session_created" in indexes
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_rows_survive_engine_restart(self, tmp_path):
        from discord_notify.db.database import build_session_maker
        from discord_notify.domain.services.persistent_queue import PersistentQueue

        db_path = str(tmp_path / "queue.db")

        engine = build_engine(db_path)
        await init_database(engine)
        await PersistentQueue(build_session_maker(engine)).enqueue("s1", None, {"content": "x"})
        await engine.dispose()

        engine = build_engine(db_path)
        try:
            await init_database(engine)
            messages = await PersistentQueue(build_session_maker(engine)).dequeue(10)
            assert [m.webhook_body for m in messages] == [{"content": "x"}]
        finally:
            await engine.dispose()
