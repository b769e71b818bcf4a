"""
Script: maintenance.py
Created: 2026-10-18
Purpose: Global maintenance switch (Normal <-> Suspended), persisted like the policy
Keywords: maintenance, suspend, state-machine, purge
Status: active
Prerequisites:
  - loguru
Changelog:
  - 2026-10-18: Initial version
See-Also: config_store.py, controller.py
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Mapping

from loguru import logger

from .cache import CachedValue
from .config import MAINTENANCE_MODE_KEY, THROTTLEGATE_STORE_TIMEOUT
from .config_store import parse_timestamp
from .db import SettingsStore, read_record, write_record
from .models import MaintenanceMode, utcnow


def merge_maintenance(raw: Mapping[str, Any]) -> MaintenanceMode:
    """Merge a persisted record over the Normal default, field by field."""
    fields = {}
    if isinstance(raw.get("enabled"), bool):
        fields["enabled"] = raw["enabled"]
    if isinstance(raw.get("reason"), str):
        fields["reason"] = raw["reason"]
    if isinstance(raw.get("enabledBy"), str):
        fields["enabled_by"] = raw["enabledBy"]
    enabled_at = parse_timestamp(raw.get("enabledAt"))
    if enabled_at is not None:
        fields["enabled_at"] = enabled_at
    return MaintenanceMode(**fields)


class MaintenanceGate:
    """
    Two states:
        Normal    - enabled=False, reason/enabled_at cleared
        Suspended - enabled=True, reason/enabled_at/enabled_by stamped

    Each transition writes the full record once. The cache only moves to
    the new state when that write succeeds.
    """

    def __init__(
        self,
        store: SettingsStore,
        clock: Callable[[], datetime] = utcnow,
        timeout: float = THROTTLEGATE_STORE_TIMEOUT,
        key: str = MAINTENANCE_MODE_KEY,
    ):
        self._store = store
        self._clock = clock
        self._timeout = timeout
        self._key = key
        self._cache: CachedValue[MaintenanceMode] = CachedValue("MaintenanceGate", MaintenanceMode())
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._cache.is_loaded

    async def load(self) -> MaintenanceMode:
        """Refresh from the store. Never raises."""
        try:
            raw = await read_record(self._store, self._key, self._timeout)
        except Exception as e:
            logger.error(
                f"[MaintenanceGate] Load failed, keeping cached state: {type(e).__name__}: {e}"
            )
            return self._cache.peek()

        mode = MaintenanceMode() if raw is None else merge_maintenance(raw)
        self._cache.confirm(mode, self._clock())
        return mode

    async def enable(self, reason: str, actor: str) -> bool:
        mode = MaintenanceMode(
            enabled=True,
            reason=reason,
            enabled_at=self._clock(),
            enabled_by=actor,
        )
        return await self._transition(mode, f"enabled by {actor}: {reason}")

    async def disable(self, actor: str) -> bool:
        mode = MaintenanceMode(enabled=False, reason="", enabled_at=None, enabled_by=actor)
        return await self._transition(mode, f"disabled by {actor}")

    async def _transition(self, mode: MaintenanceMode, summary: str) -> bool:
        async with self._lock:
            try:
                ok = await write_record(
                    self._store,
                    self._key,
                    mode.to_wire(),
                    "Maintenance mode (suspends event processing)",
                    self._timeout,
                )
            except Exception as e:
                logger.error(f"[MaintenanceGate] Persist failed: {type(e).__name__}: {e}")
                return False
            if not ok:
                logger.error("[MaintenanceGate] Persist rejected by settings store")
                return False
            self._cache.confirm(mode, self._clock())
        logger.info(f"[MaintenanceGate] Maintenance mode {summary}")
        return True

    def is_active(self) -> bool:
        return self._cache.get().enabled

    def get_cached(self) -> MaintenanceMode:
        return self._cache.get()

    def begin_context(self) -> None:
        self._cache.begin_context()
