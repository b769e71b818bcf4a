"""
Script: db.py
Created: 2026-10-18
Purpose: SQLite settings store and batch ledger for ThrottleGate
Keywords: database, sqlite, storage, system_config, throttlegate
Status: active
Prerequisites:
  - aiosqlite
Changelog:
  - 2026-10-18: Key/value system_config table plus durable batch totals
See-Also: config_store.py, maintenance.py, controller.py
"""

import asyncio
import json
import time
from typing import Any, Dict, Optional, Protocol

import aiosqlite
from loguru import logger

from .config import THROTTLEGATE_DB, THROTTLEGATE_RETENTION_DAYS
from .models import SCHEMA_VERSION


# =============================================================================
# Collaborator contracts
# =============================================================================

class SettingsStore(Protocol):
    """Key/value persistence. get() raises on read failure, None means absent."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, description: str = "") -> bool: ...


class BatchLedger(Protocol):
    """Durable per-batch admission totals."""

    async def record_batch(self, received: int, processed: int, skipped: int) -> None: ...

    async def aggregate(self) -> Dict[str, int]: ...


async def read_record(store: SettingsStore, key: str, timeout: float) -> Optional[Dict[str, Any]]:
    """Fetch and decode a JSON record. Raises on I/O, timeout or a non-object payload."""
    raw = await asyncio.wait_for(store.get(key), timeout=timeout)
    if raw is None:
        return None
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"record {key!r} is not a JSON object")
    return data


async def write_record(
    store: SettingsStore,
    key: str,
    record: Dict[str, Any],
    description: str,
    timeout: float,
) -> bool:
    """Encode a record with its schema version and write it."""
    payload = json.dumps({"schemaVersion": SCHEMA_VERSION, **record})
    return bool(await asyncio.wait_for(store.set(key, payload, description), timeout=timeout))


# =============================================================================
# SQLite schema
# =============================================================================

async def init_db(db_path: str = THROTTLEGATE_DB):
    """Initialize SQLite database with system_config and throttle_batches tables."""
    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS system_config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                description TEXT,
                updated_at REAL NOT NULL
            )
        """)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS throttle_batches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                received INTEGER NOT NULL,
                processed INTEGER NOT NULL,
                skipped INTEGER NOT NULL,
                created_at REAL NOT NULL
            )
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_batches_created_at ON throttle_batches(created_at)
        """)
        await db.commit()


# =============================================================================
# system_config
# =============================================================================

async def get_system_config(key: str, db_path: str = THROTTLEGATE_DB) -> Optional[str]:
    """Return the stored value for key, or None if absent."""
    async with aiosqlite.connect(db_path) as db:
        async with db.execute(
            "SELECT value FROM system_config WHERE key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
            return row[0] if row else None


async def set_system_config(
    key: str,
    value: str,
    description: str = "",
    db_path: str = THROTTLEGATE_DB,
) -> bool:
    """Upsert a value. Returns False if the write failed."""
    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                INSERT INTO system_config (key, value, description, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    description = excluded.description,
                    updated_at = excluded.updated_at
            """, (key, value, description, time.time()))
            await db.commit()
            return True
    except aiosqlite.Error as e:
        logger.error(f"[db] system_config write failed for {key}: {e}")
        return False


# =============================================================================
# throttle_batches
# =============================================================================

async def insert_batch(
    received: int,
    processed: int,
    skipped: int,
    db_path: str = THROTTLEGATE_DB,
):
    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            INSERT INTO throttle_batches (received, processed, skipped, created_at)
            VALUES (?, ?, ?, ?)
        """, (received, processed, skipped, time.time()))
        await db.commit()


async def aggregate_batches(db_path: str = THROTTLEGATE_DB) -> Dict[str, int]:
    """Sum all retained batch totals."""
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        async with db.execute("""
            SELECT COALESCE(SUM(received), 0) AS received,
                   COALESCE(SUM(processed), 0) AS processed,
                   COALESCE(SUM(skipped), 0) AS skipped,
                   COUNT(*) AS batches
            FROM throttle_batches
        """) as cursor:
            row = await cursor.fetchone()
            return {
                "totalReceived": row["received"],
                "totalProcessed": row["processed"],
                "totalSkipped": row["skipped"],
                "batches": row["batches"],
            }


async def cleanup_old_batches(db_path: str = THROTTLEGATE_DB) -> int:
    """Remove batch rows older than the retention period."""
    cutoff = time.time() - (THROTTLEGATE_RETENTION_DAYS * 86400)
    async with aiosqlite.connect(db_path) as db:
        result = await db.execute(
            "DELETE FROM throttle_batches WHERE created_at < ?",
            (cutoff,)
        )
        await db.commit()
        return result.rowcount


# =============================================================================
# Adapters bound to one database file
# =============================================================================

class SqliteSettingsStore:
    """SettingsStore backed by the system_config table."""

    def __init__(self, db_path: str = THROTTLEGATE_DB):
        self.db_path = db_path

    async def get(self, key: str) -> Optional[str]:
        return await get_system_config(key, db_path=self.db_path)

    async def set(self, key: str, value: str, description: str = "") -> bool:
        return await set_system_config(key, value, description, db_path=self.db_path)


class SqliteBatchLedger:
    """BatchLedger backed by the throttle_batches table."""

    def __init__(self, db_path: str = THROTTLEGATE_DB):
        self.db_path = db_path

    async def record_batch(self, received: int, processed: int, skipped: int) -> None:
        await insert_batch(received, processed, skipped, db_path=self.db_path)

    async def aggregate(self) -> Dict[str, int]:
        return await aggregate_batches(db_path=self.db_path)
