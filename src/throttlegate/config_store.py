"""
Script: config_store.py
Created: 2026-10-18
Purpose: Load, merge and save the throttle policy against the settings store
Keywords: config, throttle, persistence, merge, cache
Status: active
Prerequisites:
  - pydantic, loguru
Changelog:
  - 2026-10-18: Initial version
See-Also: db.py, cache.py, models.py
"""

import asyncio
import math
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Tuple

from loguru import logger

from .cache import CachedValue
from .config import THROTTLE_CONFIG_KEY, THROTTLEGATE_STORE_TIMEOUT
from .db import SettingsStore, read_record, write_record
from .models import (
    SamplingMethod,
    ThrottleConfig,
    default_config,
    normalize_config,
    utcnow,
)


def _is_number(value: Any) -> bool:
    # bool is an int subclass; a JSON true is not a ratio
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def parse_timestamp(value: Any):
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def coerce_policy_fields(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the well-typed policy fields out of a camelCase mapping.

    Each field is checked on its own; anything missing or of the wrong
    type is left out so the caller's base value wins.
    """
    fields: Dict[str, Any] = {}
    if isinstance(raw.get("enabled"), bool):
        fields["enabled"] = raw["enabled"]
    if _is_number(raw.get("processRatio")):
        fields["process_ratio"] = min(1.0, max(0.0, float(raw["processRatio"])))
    if _is_number(raw.get("maxPerHour")):
        fields["max_per_hour"] = max(1, math.floor(raw["maxPerHour"]))
    method = raw.get("samplingMethod")
    if isinstance(method, str) and method in {m.value for m in SamplingMethod}:
        fields["sampling_method"] = SamplingMethod(method)
    return fields


def merge_config(raw: Mapping[str, Any], default: ThrottleConfig) -> ThrottleConfig:
    """Merge a persisted record field-by-field over the default policy."""
    fields = coerce_policy_fields(raw)
    last_updated = parse_timestamp(raw.get("lastUpdated"))
    if last_updated is not None:
        fields["last_updated"] = last_updated
    return normalize_config(default.model_copy(update=fields))


def apply_update(current: ThrottleConfig, body: Mapping[str, Any], now: datetime) -> ThrottleConfig:
    """Apply a partial update request; malformed fields are ignored."""
    fields = coerce_policy_fields(body)
    fields["last_updated"] = now
    return normalize_config(current.model_copy(update=fields))


class ConfigStore:
    """Cached throttle policy backed by a settings store.

    The decision path only ever calls get_cached(); load() and save() are
    the I/O-bearing operations and run at batch boundaries.
    """

    def __init__(
        self,
        store: SettingsStore,
        clock: Callable[[], datetime] = utcnow,
        timeout: float = THROTTLEGATE_STORE_TIMEOUT,
        key: str = THROTTLE_CONFIG_KEY,
    ):
        self._store = store
        self._clock = clock
        self._timeout = timeout
        self._key = key
        self._cache: CachedValue[ThrottleConfig] = CachedValue("ConfigStore", default_config(clock()))
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._cache.is_loaded

    async def load(self) -> ThrottleConfig:
        """Refresh the cache from the store. Never raises."""
        try:
            raw = await read_record(self._store, self._key, self._timeout)
        except Exception as e:
            logger.error(
                f"[ConfigStore] Load failed, keeping cached policy: {type(e).__name__}: {e}"
            )
            return self._cache.peek()

        now = self._clock()
        if raw is None:
            config = default_config(now)
        else:
            config = merge_config(raw, default_config(now))
        self._cache.confirm(config, now)
        return config

    async def save(self, config: ThrottleConfig) -> bool:
        """Normalize and persist; the cache changes only if the write succeeds."""
        async with self._lock:
            return await self._save_locked(config)

    async def _save_locked(self, config: ThrottleConfig) -> bool:
        config = normalize_config(config)
        try:
            ok = await write_record(
                self._store,
                self._key,
                config.to_wire(),
                "Image processing throttle configuration",
                self._timeout,
            )
        except Exception as e:
            logger.error(f"[ConfigStore] Save failed: {type(e).__name__}: {e}")
            return False
        if not ok:
            logger.error("[ConfigStore] Save rejected by settings store")
            return False
        self._cache.confirm(config, self._clock())
        logger.info(f"[ConfigStore] Policy saved: {config.description}")
        return True

    async def update(self, changes: Mapping[str, Any]) -> Tuple[ThrottleConfig, bool]:
        """Apply a partial update over the freshest policy.

        The reload, merge and write run under one lock, so concurrent
        updates in this process apply one after the other.

        Returns (config, persisted). When the write fails the new policy
        still takes effect in this process.
        """
        async with self._lock:
            await self.load()
            config = apply_update(self._cache.peek(), changes, self._clock())
            if await self._save_locked(config):
                return config, True
            return self.apply_in_memory(config), False

    def apply_in_memory(self, config: ThrottleConfig) -> ThrottleConfig:
        """Install a policy without persisting it."""
        config = normalize_config(config)
        self._cache.replace_unconfirmed(config)
        logger.warning(f"[ConfigStore] Policy applied in memory only: {config.description}")
        return config

    def get_cached(self) -> ThrottleConfig:
        return self._cache.get()

    def begin_context(self) -> None:
        self._cache.begin_context()
