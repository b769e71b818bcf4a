"""Tests for the SQLite settings store and batch ledger."""
import time

import aiosqlite
import pytest

from throttlegate.config_store import ConfigStore
from throttlegate.db import (
    SqliteBatchLedger,
    SqliteSettingsStore,
    cleanup_old_batches,
    get_system_config,
    init_db,
    set_system_config,
)
from throttlegate.maintenance import MaintenanceGate
from throttlegate.models import SamplingMethod, ThrottleConfig


@pytest.fixture
async def db_path(tmp_path):
    path = str(tmp_path / "throttlegate.db")
    await init_db(path)
    return path


class TestSystemConfig:

    async def test_missing_key_returns_none(self, db_path):
        assert await get_system_config("nope", db_path=db_path) is None

    async def test_upsert_overwrites(self, db_path):
        assert await set_system_config("k", "one", "first", db_path=db_path)
        assert await set_system_config("k", "two", "second", db_path=db_path)

        assert await get_system_config("k", db_path=db_path) == "two"

    async def test_write_without_schema_returns_false(self, tmp_path):
        path = str(tmp_path / "empty.db")

        assert await set_system_config("k", "v", db_path=path) is False

    async def test_read_without_schema_raises(self, tmp_path):
        path = str(tmp_path / "empty.db")

        with pytest.raises(aiosqlite.Error):
            await get_system_config("k", db_path=path)


class TestSqliteSettingsStore:

    async def test_policy_survives_new_instance(self, db_path, clock):
        writer = ConfigStore(SqliteSettingsStore(db_path), clock=clock)
        assert await writer.save(ThrottleConfig(process_ratio=0.4, sampling_method=SamplingMethod.FIRST))

        reader = ConfigStore(SqliteSettingsStore(db_path), clock=clock)
        config = await reader.load()

        assert config.process_ratio == 0.4
        assert config.sampling_method == SamplingMethod.FIRST
        assert reader.is_loaded

    async def test_maintenance_last_writer_wins(self, db_path, clock):
        a = MaintenanceGate(SqliteSettingsStore(db_path), clock=clock)
        b = MaintenanceGate(SqliteSettingsStore(db_path), clock=clock)

        await a.enable("purge", "node-a")
        await b.disable("node-b")
        await a.load()

        assert not a.is_active()
        assert a.get_cached().enabled_by == "node-b"

    async def test_unreadable_database_keeps_cache(self, tmp_path, clock):
        store = ConfigStore(SqliteSettingsStore(str(tmp_path / "empty.db")), clock=clock)

        await store.load()

        assert not store.is_loaded


class TestBatchLedger:

    async def test_aggregate_sums_batches(self, db_path):
        ledger = SqliteBatchLedger(db_path)
        await ledger.record_batch(10, 3, 7)
        await ledger.record_batch(5, 5, 0)

        assert await ledger.aggregate() == {
            "totalReceived": 15,
            "totalProcessed": 8,
            "totalSkipped": 7,
            "batches": 2,
        }

    async def test_empty_ledger_aggregates_to_zero(self, db_path):
        totals = await SqliteBatchLedger(db_path).aggregate()

        assert totals["totalReceived"] == 0
        assert totals["batches"] == 0

    async def test_cleanup_drops_expired_rows(self, db_path):
        ledger = SqliteBatchLedger(db_path)
        await ledger.record_batch(1, 1, 0)
        async with aiosqlite.connect(db_path) as db:
            await db.execute(
                "INSERT INTO throttle_batches (received, processed, skipped, created_at) VALUES (?, ?, ?, ?)",
                (9, 0, 9, time.time() - 400 * 86400),
            )
            await db.commit()

        deleted = await cleanup_old_batches(db_path)

        assert deleted == 1
        assert (await ledger.aggregate())["totalReceived"] == 1
