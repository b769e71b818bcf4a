"""
Script: controller.py
Created: 2026-10-18
Purpose: Per-batch admission flow: maintenance check, policy refresh, decisions, accounting
Keywords: admission, batch, controller, maintenance, throttle
Status: active
Prerequisites:
  - loguru
Changelog:
  - 2026-10-18: Initial version
See-Also: decider.py, maintenance.py, config_store.py, metrics.py
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from .config import THROTTLEGATE_STORE_TIMEOUT
from .config_store import ConfigStore
from .db import BatchLedger, SettingsStore
from .decider import AdmissionDecider
from .maintenance import MaintenanceGate
from .metrics import MetricsReporter, MetricsSink
from .models import utcnow
from .stats import HourlyStatsTracker


@dataclass
class BatchResult:
    """Outcome of one batch. `admitted` holds indices cleared for analysis."""
    received: int
    suspended: bool = False
    admitted: List[int] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        if self.suspended:
            return 0
        return self.received - len(self.admitted)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suspended": self.suspended,
            "received": self.received,
            "admitted": self.admitted,
            "skipped": self.skipped,
        }


class AdmissionController:
    """
    Owns one instance of every admission component.

    Flow per batch:
        maintenance.load() -> suspended? stop
        config_store.load()
        for each item: decider.should_process() -> tracker.record_decision()
        ledger.record_batch()  (durable totals, best-effort)
    """

    def __init__(
        self,
        config_store: ConfigStore,
        maintenance: MaintenanceGate,
        tracker: HourlyStatsTracker,
        decider: AdmissionDecider,
        reporter: MetricsReporter,
        ledger: Optional[BatchLedger] = None,
        timeout: float = THROTTLEGATE_STORE_TIMEOUT,
    ):
        self.config_store = config_store
        self.maintenance = maintenance
        self.tracker = tracker
        self.decider = decider
        self.reporter = reporter
        self.ledger = ledger
        self._timeout = timeout

    @classmethod
    def create(
        cls,
        store: SettingsStore,
        sink: MetricsSink,
        ledger: Optional[BatchLedger] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
        timeout: float = THROTTLEGATE_STORE_TIMEOUT,
    ) -> "AdmissionController":
        """Wire the components around shared collaborators."""
        config_store = ConfigStore(store, clock=clock, timeout=timeout)
        maintenance = MaintenanceGate(store, clock=clock, timeout=timeout)
        tracker = HourlyStatsTracker(clock=clock)
        decider = AdmissionDecider(config_store, tracker, rng=rng)
        reporter = MetricsReporter(tracker, sink, clock=clock)
        return cls(config_store, maintenance, tracker, decider, reporter, ledger, timeout)

    async def begin_batch(self) -> bool:
        """Refresh persisted state for a new batch. False means suspended."""
        self.maintenance.begin_context()
        self.config_store.begin_context()

        await self.maintenance.load()
        if self.maintenance.is_active():
            mode = self.maintenance.get_cached()
            logger.info(f"[Admission] Maintenance mode active ({mode.reason}), batch skipped")
            return False

        await self.config_store.load()
        return True

    def admit(self, batch_size: int) -> List[int]:
        """Run the decision for every index of a batch and record each outcome."""
        admitted = []
        for index in range(batch_size):
            processed = self.decider.should_process(index, batch_size)
            self.tracker.record_decision(processed)
            if processed:
                admitted.append(index)
        return admitted

    async def process_batch(self, batch_size: int) -> BatchResult:
        if not await self.begin_batch():
            return BatchResult(received=batch_size, suspended=True)

        result = BatchResult(received=batch_size, admitted=self.admit(batch_size))
        await self._record_ledger(result)
        return result

    async def _record_ledger(self, result: BatchResult) -> None:
        if self.ledger is None or result.received == 0:
            return
        try:
            await asyncio.wait_for(
                self.ledger.record_batch(result.received, len(result.admitted), result.skipped),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.error(f"[Admission] Batch ledger write failed: {type(e).__name__}: {e}")

    async def aggregate_stats(self) -> Dict[str, Any]:
        """Authoritative totals from the ledger, or in-memory counters with the reason why."""
        totals = None
        fallback_reason = None
        if self.ledger is None:
            fallback_reason = "batch ledger not configured"
        else:
            try:
                totals = await asyncio.wait_for(self.ledger.aggregate(), timeout=self._timeout)
            except Exception as e:
                fallback_reason = f"{type(e).__name__}: {e}"
                logger.warning(f"[Admission] Durable aggregation unavailable, using memory: {fallback_reason}")

        if totals is None:
            stats = self.tracker.snapshot()
            totals = {
                "totalReceived": stats.total_received,
                "totalProcessed": stats.total_processed,
                "totalSkipped": stats.total_skipped,
            }
            source = "memory"
        else:
            source = "database"

        received = totals["totalReceived"]
        aggregate = dict(totals)
        aggregate["effectiveRatio"] = totals["totalProcessed"] / received if received else 0.0
        aggregate["source"] = source
        if fallback_reason is not None:
            aggregate["fallbackReason"] = fallback_reason
        return aggregate
