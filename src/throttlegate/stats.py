"""
Script: stats.py
Created: 2026-10-18
Purpose: Rolling per-hour admission counters with 24h eviction
Keywords: stats, hourly, ring-buffer, rolling-window, throttle
Status: active
Prerequisites:
  - pydantic (snapshot models)
Changelog:
  - 2026-10-18: Initial version, 24-slot ring keyed by hour epoch
See-Also: decider.py, metrics.py, models.py
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .config import STATS_RETENTION_HOURS
from .models import HourBucket, ProcessingStats, utcnow


def hour_epoch(ts: datetime) -> int:
    """Whole hours since the Unix epoch (UTC)."""
    return int(ts.timestamp() // 3600)


def hour_key(hour: int) -> str:
    """Sortable hour identifier, e.g. 2026-10-18T09."""
    return datetime.fromtimestamp(hour * 3600, tz=timezone.utc).strftime("%Y-%m-%dT%H")


@dataclass
class _Slot:
    hour: int
    received: int = 0
    processed: int = 0
    skipped: int = 0


class HourlyStatsTracker:
    """
    Received/processed/skipped counters per UTC hour plus global totals.

    Buckets live in a fixed ring of `retention_hours` slots indexed by
    hour % retention_hours, so lookup and eviction never scan more than
    the ring. A slot is live only while its hour is within the window.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        retention_hours: int = STATS_RETENTION_HOURS,
    ):
        self._clock = clock
        self._retention = retention_hours
        self.reset()

    def reset(self) -> None:
        """Clear counters and buckets. Persisted policy is untouched."""
        self._slots: List[Optional[_Slot]] = [None] * self._retention
        self._total_received = 0
        self._total_processed = 0
        self._total_skipped = 0
        self._last_hour = _Slot(hour=0)
        self._last_event_at: Optional[datetime] = None
        self._hourly_stats: List[HourBucket] = []

    def _live_slot(self, hour: int) -> Optional[_Slot]:
        slot = self._slots[hour % self._retention]
        if slot is not None and slot.hour == hour:
            return slot
        return None

    def current_hour_processed(self) -> int:
        slot = self._live_slot(hour_epoch(self._clock()))
        return slot.processed if slot else 0

    def record_decision(self, processed: bool) -> None:
        now = self._clock()
        hour = hour_epoch(now)
        self._last_event_at = now

        slot = self._live_slot(hour)
        if slot is None:
            slot = _Slot(hour=hour)
            self._slots[hour % self._retention] = slot

        slot.received += 1
        self._total_received += 1
        if processed:
            slot.processed += 1
            self._total_processed += 1
        else:
            slot.skipped += 1
            self._total_skipped += 1

        self._last_hour = _Slot(slot.hour, slot.received, slot.processed, slot.skipped)
        self._evict(hour)
        self._hourly_stats = [
            HourBucket(
                hour=hour_key(s.hour),
                received=s.received,
                processed=s.processed,
                skipped=s.skipped,
            )
            for s in sorted(
                (s for s in self._slots if s is not None), key=lambda s: s.hour
            )
        ][-self._retention:]

    def _evict(self, current_hour: int) -> None:
        cutoff = current_hour - self._retention
        for i, slot in enumerate(self._slots):
            if slot is not None and slot.hour <= cutoff:
                self._slots[i] = None

    def snapshot(self) -> ProcessingStats:
        return ProcessingStats(
            total_received=self._total_received,
            total_processed=self._total_processed,
            total_skipped=self._total_skipped,
            last_hour_received=self._last_hour.received,
            last_hour_processed=self._last_hour.processed,
            last_hour_skipped=self._last_hour.skipped,
            projected_if_no_throttle=self._total_received,
            last_event_at=self._last_event_at,
            hourly_stats=[b.model_copy() for b in self._hourly_stats],
        )
