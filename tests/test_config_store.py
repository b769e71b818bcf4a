"""Tests for policy load/merge/save against the settings store."""
import asyncio

import pytest

from throttlegate.cache import Loaded, StaleStateWarning, Uninitialized
from throttlegate.config import THROTTLE_CONFIG_KEY
from throttlegate.config_store import ConfigStore, apply_update, merge_config
from throttlegate.models import SamplingMethod, ThrottleConfig, default_config, describe


class TestMerge:

    def test_missing_field_takes_default(self, clock):
        merged = merge_config(
            {"schemaVersion": 1, "enabled": False, "processRatio": 0.5, "samplingMethod": "interval"},
            default_config(clock()),
        )

        assert merged.enabled is False
        assert merged.process_ratio == 0.5
        assert merged.sampling_method == SamplingMethod.INTERVAL
        assert merged.max_per_hour == 100

    def test_wrong_types_and_unknown_fields_ignored(self, clock):
        merged = merge_config(
            {
                "enabled": "yes",
                "processRatio": "0.5",
                "maxPerHour": True,
                "samplingMethod": "weighted",
                "lastUpdated": 12345,
                "extraField": {"nested": 1},
            },
            default_config(clock()),
        )

        assert merged == default_config(clock())

    def test_out_of_range_values_clamped(self, clock):
        merged = merge_config({"processRatio": 3.5, "maxPerHour": -4}, default_config(clock()))

        assert merged.process_ratio == 1.0
        assert merged.max_per_hour == 1

    def test_persisted_description_is_recomputed(self, clock):
        merged = merge_config(
            {"processRatio": 0.01, "description": "hand written"},
            default_config(clock()),
        )

        assert merged.description == "Throttle active: Processing ~1000 images per 100,000 incoming (1.00%)"

    def test_last_updated_parsed(self, clock):
        merged = merge_config({"lastUpdated": "2026-01-02T03:04:05Z"}, default_config(clock()))

        assert merged.last_updated.isoformat() == "2026-01-02T03:04:05+00:00"


class TestDescription:

    def test_default_description(self, clock):
        assert default_config(clock()).description == (
            "Throttle active: Processing ~250 images per 100,000 incoming (0.25%)"
        )

    def test_disabled_description(self):
        assert describe(ThrottleConfig(enabled=False)) == (
            "Throttle disabled: Processing all images (Production mode)"
        )


class TestApplyUpdate:

    def test_each_field_validated_independently(self, clock):
        current = default_config(clock())
        clock.advance(minutes=5)

        updated = apply_update(
            current,
            {"processRatio": 0.1, "maxPerHour": "lots", "samplingMethod": "first", "enabled": 1},
            clock(),
        )

        assert updated.process_ratio == 0.1
        assert updated.max_per_hour == current.max_per_hour
        assert updated.sampling_method == SamplingMethod.FIRST
        assert updated.enabled is True
        assert updated.last_updated == clock.now

    def test_max_per_hour_floored(self, clock):
        updated = apply_update(default_config(clock()), {"maxPerHour": 250.9}, clock())

        assert updated.max_per_hour == 250


class TestLoad:

    async def test_load_without_record_confirms_defaults(self, config_store):
        config = await config_store.load()

        assert config_store.is_loaded
        assert config.process_ratio == 0.0025
        assert config.sampling_method == SamplingMethod.RANDOM

    async def test_load_merges_persisted_record(self, config_store, store):
        store.put_json(THROTTLE_CONFIG_KEY, {"schemaVersion": 1, "maxPerHour": 42})

        config = await config_store.load()

        assert config.max_per_hour == 42
        assert config.process_ratio == 0.0025
        assert config_store.get_cached() == config

    async def test_read_failure_keeps_previous_value(self, config_store, store):
        assert await config_store.save(ThrottleConfig(process_ratio=0.2))
        store.fail_reads = True

        config = await config_store.load()

        assert config.process_ratio == 0.2
        assert config_store.get_cached().process_ratio == 0.2

    async def test_read_timeout_keeps_previous_value(self, store, clock):
        config_store = ConfigStore(store, clock=clock, timeout=0.01)
        store.read_delay = 0.5

        config = await config_store.load()

        assert not config_store.is_loaded
        assert config == default_config(clock())

    async def test_corrupt_record_is_a_read_failure(self, config_store, store):
        store.values[THROTTLE_CONFIG_KEY] = "not json"

        await config_store.load()

        assert not config_store.is_loaded


class TestSave:

    async def test_save_clamps_and_persists_schema_versioned_record(self, config_store, store):
        ok = await config_store.save(
            ThrottleConfig(process_ratio=2.0, max_per_hour=0, description="ignored")
        )

        assert ok
        key, _, description = store.writes[-1]
        record = store.written()
        assert key == THROTTLE_CONFIG_KEY
        assert description
        assert record["schemaVersion"] == 1
        assert record["processRatio"] == 1.0
        assert record["maxPerHour"] == 1
        assert record["description"].startswith("Throttle active: Processing ~100000 images")
        assert config_store.get_cached().process_ratio == 1.0

    async def test_failed_write_leaves_cache_unchanged(self, config_store, store):
        await config_store.load()
        store.fail_writes = True

        ok = await config_store.save(ThrottleConfig(process_ratio=0.9))

        assert not ok
        assert config_store.get_cached().process_ratio == 0.0025

    async def test_store_exception_reported_as_failure(self, config_store, store):
        async def broken_set(key, value, description=""):
            raise ConnectionError("down")

        store.set = broken_set

        assert await config_store.save(ThrottleConfig()) is False


class TestUpdate:

    async def test_partial_update_persists(self, config_store, store):
        config, persisted = await config_store.update({"samplingMethod": "interval"})

        assert persisted
        assert config.sampling_method == SamplingMethod.INTERVAL
        assert store.written()["samplingMethod"] == "interval"

    async def test_update_applies_in_memory_when_write_fails(self, config_store, store):
        store.fail_writes = True

        config, persisted = await config_store.update({"enabled": False})

        assert not persisted
        assert config.enabled is False
        assert config_store.get_cached().enabled is False
        assert store.writes == []

    async def test_concurrent_updates_both_survive(self, config_store, store):
        store.read_delay = 0.05

        await asyncio.gather(
            config_store.update({"processRatio": 0.5}),
            config_store.update({"samplingMethod": "first"}),
        )

        reloaded = await config_store.load()
        assert reloaded.process_ratio == 0.5
        assert reloaded.sampling_method == SamplingMethod.FIRST
        assert len(store.writes) == 2


class TestCacheState:

    def test_starts_uninitialized(self, config_store):
        assert isinstance(config_store._cache.state, Uninitialized)

    def test_get_cached_before_load_warns(self, config_store):
        with pytest.warns(StaleStateWarning):
            config = config_store.get_cached()

        assert config.enabled is True

    async def test_begin_context_requires_a_fresh_load(self, config_store):
        await config_store.load()
        assert isinstance(config_store._cache.state, Loaded)

        config_store.begin_context()

        with pytest.warns(StaleStateWarning):
            config_store.get_cached()
        await config_store.load()
        config_store.get_cached()
