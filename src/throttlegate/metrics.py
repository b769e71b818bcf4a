"""
Script: metrics.py
Created: 2026-10-18
Purpose: Best-effort export of throttle counters to InfluxDB (line protocol)
Keywords: metrics, influxdb, line-protocol, httpx, fire-and-forget
Status: active
Prerequisites:
  - httpx (sync HTTP client, run off the event loop)
Changelog:
  - 2026-10-18: Initial version, sender loop reduced to a single retried POST
See-Also: stats.py, app.py
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Set

import httpx
from loguru import logger

from .config import (
    INFLUXDB_BUCKET,
    INFLUXDB_HOST,
    INFLUXDB_ORG,
    INFLUXDB_ORG_ID,
    INFLUXDB_TOKEN,
    THROTTLEGATE_METRICS_TIMEOUT,
)
from .models import utcnow
from .stats import HourlyStatsTracker


MEASUREMENT = "image_throttle"


class MetricsSink(Protocol):
    @property
    def configured(self) -> bool: ...

    def write(self, lines: List[str]) -> None: ...


# =============================================================================
# InfluxDB sink
# =============================================================================

class InfluxLineSink:
    """
    Writes line-protocol records to the InfluxDB v2 write API.

    write() raises on failure; MetricsReporter is the layer that swallows.
    Transport errors are retried, HTTP error statuses are not.
    """

    def __init__(
        self,
        host: str = INFLUXDB_HOST,
        org: str = INFLUXDB_ORG,
        org_id: str = INFLUXDB_ORG_ID,
        token: str = INFLUXDB_TOKEN,
        bucket: str = INFLUXDB_BUCKET,
        timeout: float = THROTTLEGATE_METRICS_TIMEOUT,
        retry_count: int = 1,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.host = host.rstrip("/")
        self.org = org
        self.org_id = org_id
        self.token = token
        self.bucket = bucket
        self.timeout = timeout
        self.retry_count = retry_count
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.token and self.org_id)

    def write(self, lines: List[str]) -> None:
        body = "\n".join(lines)
        for attempt in range(self.retry_count + 1):
            try:
                with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                    response = client.post(
                        f"{self.host}/api/v2/write",
                        params={"org": self.org, "bucket": self.bucket, "precision": "ms"},
                        headers={
                            "Authorization": f"Token {self.token}",
                            "Content-Type": "text/plain; charset=utf-8",
                        },
                        content=body,
                    )
                response.raise_for_status()
                return
            except httpx.TransportError:
                if attempt == self.retry_count:
                    raise
                time.sleep(0.1 * (attempt + 1))


# =============================================================================
# Reporter
# =============================================================================

class MetricsReporter:
    """Serializes tracker counters and pushes them to a sink without ever raising."""

    def __init__(
        self,
        tracker: HourlyStatsTracker,
        sink: MetricsSink,
        clock: Callable[[], datetime] = utcnow,
        timeout: float = THROTTLEGATE_METRICS_TIMEOUT,
    ):
        self._tracker = tracker
        self._sink = sink
        self._clock = clock
        self._timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    @property
    def configured(self) -> bool:
        return self._sink.configured

    def build_lines(self) -> List[str]:
        stats = self._tracker.snapshot()
        timestamp = int(self._clock().timestamp() * 1000)
        return [
            f"{MEASUREMENT},type=processing "
            f"received={stats.last_hour_received}i,"
            f"processed={stats.last_hour_processed}i,"
            f"skipped={stats.last_hour_skipped}i,"
            f"projected={stats.projected_if_no_throttle}i {timestamp}",
            f"{MEASUREMENT},type=totals "
            f"total_received={stats.total_received}i,"
            f"total_processed={stats.total_processed}i,"
            f"total_skipped={stats.total_skipped}i {timestamp}",
        ]

    def flush(self) -> bool:
        """Send current counters. Returns True if the sink accepted them."""
        if not self._sink.configured:
            return False
        return self._send(self.build_lines())

    def _send(self, lines: List[str]) -> bool:
        try:
            self._sink.write(lines)
            return True
        except Exception as e:
            logger.warning(f"[Metrics] Failed to record throttle metrics (dropped): {type(e).__name__}: {e}")
            return False

    def schedule_flush(self) -> Optional[asyncio.Task]:
        """Snapshot the counters now and send them from a worker thread.

        Must be called from a running event loop; the tracker is only read
        on the loop thread. The caller never awaits the result; sink
        latency and errors stay inside the task.
        """
        if not self._sink.configured:
            return None
        lines = self.build_lines()
        task = asyncio.create_task(self._flush_detached(lines))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _flush_detached(self, lines: List[str]) -> bool:
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._send, lines), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[Metrics] Flush exceeded {self._timeout}s, abandoned")
            return False
