"""
Pytest configuration and fixtures.
"""
import asyncio
import json
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from throttlegate.config_store import ConfigStore
from throttlegate.controller import AdmissionController
from throttlegate.decider import AdmissionDecider
from throttlegate.maintenance import MaintenanceGate
from throttlegate.stats import HourlyStatsTracker


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemorySettingsStore:
    """In-memory settings store recording every write."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.writes: List[Tuple[str, str, str]] = []
        self.fail_reads = False
        self.fail_writes = False
        self.read_delay = 0.0

    async def get(self, key: str) -> Optional[str]:
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if self.fail_reads:
            raise ConnectionError("settings store unavailable")
        return self.values.get(key)

    async def set(self, key: str, value: str, description: str = "") -> bool:
        if self.fail_writes:
            return False
        self.values[key] = value
        self.writes.append((key, value, description))
        return True

    def put_json(self, key: str, record: dict) -> None:
        self.values[key] = json.dumps(record)

    def written(self, index: int = -1) -> dict:
        return json.loads(self.writes[index][1])


class MemoryLedger:
    def __init__(self):
        self.batches: List[Tuple[int, int, int]] = []
        self.fail = False

    async def record_batch(self, received: int, processed: int, skipped: int) -> None:
        if self.fail:
            raise ConnectionError("ledger unavailable")
        self.batches.append((received, processed, skipped))

    async def aggregate(self) -> Dict[str, int]:
        if self.fail:
            raise ConnectionError("ledger unavailable")
        return {
            "totalReceived": sum(b[0] for b in self.batches),
            "totalProcessed": sum(b[1] for b in self.batches),
            "totalSkipped": sum(b[2] for b in self.batches),
            "batches": len(self.batches),
        }


class RecordingSink:
    def __init__(self, configured: bool = True, error: Optional[Exception] = None):
        self._configured = configured
        self.error = error
        self.calls: List[List[str]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def write(self, lines: List[str]) -> None:
        self.calls.append(list(lines))
        if self.error is not None:
            raise self.error


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def ledger() -> MemoryLedger:
    return MemoryLedger()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def config_store(store, clock) -> ConfigStore:
    return ConfigStore(store, clock=clock, timeout=0.5)


@pytest.fixture
def tracker(clock) -> HourlyStatsTracker:
    return HourlyStatsTracker(clock=clock)


@pytest.fixture
def decider(config_store, tracker) -> AdmissionDecider:
    return AdmissionDecider(config_store, tracker, rng=random.Random(1234))


@pytest.fixture
def maintenance(store, clock) -> MaintenanceGate:
    return MaintenanceGate(store, clock=clock, timeout=0.5)


@pytest.fixture
def controller(store, sink, ledger, clock) -> AdmissionController:
    return AdmissionController.create(
        store=store,
        sink=sink,
        ledger=ledger,
        clock=clock,
        rng=random.Random(1234),
        timeout=0.5,
    )
