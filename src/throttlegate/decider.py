"""
Script: decider.py
Created: 2026-10-18
Purpose: Admission decision (enabled, hourly hard cap, sampling method)
Keywords: throttle, sampling, admission, random, interval, first
Status: active
Prerequisites:
  - None
Changelog:
  - 2026-10-18: Initial version
See-Also: config_store.py, stats.py, controller.py
"""

import math
import random
from typing import Optional

from .config_store import ConfigStore
from .models import SamplingMethod
from .stats import HourlyStatsTracker


class AdmissionDecider:
    """Decides whether one item of a batch goes on to image analysis.

    Reads only the cached policy and in-memory counters: no I/O, no awaits.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        tracker: HourlyStatsTracker,
        rng: Optional[random.Random] = None,
    ):
        self._config_store = config_store
        self._tracker = tracker
        self._rng = rng or random.Random()

    def should_process(self, index: int, batch_size: int) -> bool:
        config = self._config_store.get_cached()

        if not config.enabled:
            return True

        # Hard cap wins over any sampling method
        if self._tracker.current_hour_processed() >= config.max_per_hour:
            return False

        ratio = config.process_ratio
        method = config.sampling_method

        if method == SamplingMethod.INTERVAL:
            # ratio 0 gives stride 1, which admits every index
            if ratio <= 0:
                return True
            stride = 1 / ratio
            if not math.isfinite(stride):
                # Subnormal ratio: the stride is wider than any batch
                return index == 0
            return index % max(1, math.floor(stride)) == 0

        if method == SamplingMethod.FIRST:
            cutoff = max(1, math.ceil(batch_size * ratio))
            return index < cutoff

        # RANDOM, and the fallback for anything unrecognized
        return self._rng.random() < ratio
