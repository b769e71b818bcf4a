"""
ThrottleGate - Admission control for camera events bound for image analysis

Apache License 2.0
"""

__version__ = "0.1.0"

# Core exports (no server extras needed)
from throttlegate.cache import StaleStateWarning
from throttlegate.config_store import ConfigStore
from throttlegate.controller import AdmissionController, BatchResult
from throttlegate.decider import AdmissionDecider
from throttlegate.maintenance import MaintenanceGate
from throttlegate.metrics import InfluxLineSink, MetricsReporter
from throttlegate.models import (
    HourBucket,
    MaintenanceMode,
    ProcessingStats,
    SamplingMethod,
    ThrottleConfig,
)
from throttlegate.stats import HourlyStatsTracker

__all__ = [
    # Version
    "__version__",
    # Components
    "AdmissionController",
    "AdmissionDecider",
    "ConfigStore",
    "HourlyStatsTracker",
    "MaintenanceGate",
    "MetricsReporter",
    "InfluxLineSink",
    # Models
    "BatchResult",
    "HourBucket",
    "MaintenanceMode",
    "ProcessingStats",
    "SamplingMethod",
    "ThrottleConfig",
    "StaleStateWarning",
]


def get_app():
    """
    Get FastAPI app instance (requires server extras).

    Install with: pip install throttlegate[server]
    """
    from .app import app
    return app
