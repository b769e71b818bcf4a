"""
Script: models.py
Created: 2026-10-18
Purpose: Pydantic models for throttle policy, processing stats and maintenance mode
Keywords: models, pydantic, throttle, maintenance, stats
Status: active
Prerequisites:
  - pydantic
Changelog:
  - 2026-10-18: Initial version
See-Also: config_store.py, stats.py, maintenance.py
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


SCHEMA_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys (wire and persisted format)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# Throttle policy
# =============================================================================

class SamplingMethod(str, Enum):
    RANDOM = "random"
    INTERVAL = "interval"
    FIRST = "first"


class ThrottleConfig(CamelModel):
    """Admission policy. Defaults are the safe demo-mode policy."""
    enabled: bool = True
    # 250 per 100,000 = 0.25%
    process_ratio: float = 0.0025
    max_per_hour: int = 100
    sampling_method: SamplingMethod = SamplingMethod.RANDOM
    last_updated: datetime = Field(default_factory=utcnow)
    description: str = ""


def describe(config: ThrottleConfig) -> str:
    """Human-readable summary, always derived from the other fields."""
    if not config.enabled:
        return "Throttle disabled: Processing all images (Production mode)"
    per_hundred_k = round(config.process_ratio * 100000)
    return (
        f"Throttle active: Processing ~{per_hundred_k} images per 100,000 incoming "
        f"({config.process_ratio * 100:.2f}%)"
    )


def normalize_config(config: ThrottleConfig) -> ThrottleConfig:
    """Clamp ratio to [0, 1] and max_per_hour to >= 1, then recompute description."""
    ratio = min(1.0, max(0.0, float(config.process_ratio)))
    max_per_hour = max(1, int(config.max_per_hour))
    clamped = config.model_copy(update={
        "process_ratio": ratio,
        "max_per_hour": max_per_hour,
    })
    return clamped.model_copy(update={"description": describe(clamped)})


def default_config(now: Optional[datetime] = None) -> ThrottleConfig:
    return normalize_config(ThrottleConfig(last_updated=now or utcnow()))


# =============================================================================
# Processing statistics
# =============================================================================

class HourBucket(CamelModel):
    """Counters for one UTC hour, keyed as YYYY-MM-DDTHH."""
    hour: str
    received: int = 0
    processed: int = 0
    skipped: int = 0


class ProcessingStats(CamelModel):
    total_received: int = 0
    total_processed: int = 0
    total_skipped: int = 0
    last_hour_received: int = 0
    last_hour_processed: int = 0
    last_hour_skipped: int = 0
    projected_if_no_throttle: int = 0
    last_event_at: Optional[datetime] = None
    hourly_stats: List[HourBucket] = Field(default_factory=list)

    @property
    def effective_ratio(self) -> float:
        if self.total_received == 0:
            return 0.0
        return self.total_processed / self.total_received


# =============================================================================
# Maintenance mode
# =============================================================================

class MaintenanceMode(CamelModel):
    enabled: bool = False
    reason: str = ""
    enabled_at: Optional[datetime] = None
    enabled_by: str = ""
