"""
Script: config.py
Created: 2026-10-18
Purpose: ThrottleGate server configuration (environment driven)
Keywords: config, environment, influxdb, throttlegate
Status: active
Prerequisites:
  - None
Changelog:
  - 2026-10-18: Initial version, settings for store, metrics sink and server
See-Also: db.py, metrics.py, cli.py
"""

import os


# =============================================================================
# Server / persistence
# =============================================================================

THROTTLEGATE_DB = os.getenv("THROTTLEGATE_DB", "/tmp/throttlegate.db")
THROTTLEGATE_PORT = int(os.getenv("THROTTLEGATE_PORT", "8098"))
THROTTLEGATE_STORE_TIMEOUT = float(os.getenv("THROTTLEGATE_STORE_TIMEOUT", "2.0"))
THROTTLEGATE_RETENTION_DAYS = int(os.getenv("THROTTLEGATE_RETENTION_DAYS", "30"))

# Keys in the system_config table
THROTTLE_CONFIG_KEY = "throttle_config"
MAINTENANCE_MODE_KEY = "maintenance_mode"

# Rolling window for hour buckets
STATS_RETENTION_HOURS = 24


# =============================================================================
# Metrics sink (InfluxDB v2 line protocol)
# =============================================================================

THROTTLEGATE_METRICS_INTERVAL = int(os.getenv("THROTTLEGATE_METRICS_INTERVAL", "300"))
THROTTLEGATE_METRICS_TIMEOUT = float(os.getenv("THROTTLEGATE_METRICS_TIMEOUT", "5.0"))

INFLUXDB_HOST = os.getenv("INFLUXDB_HOST", "https://us-east-1-1.aws.cloud2.influxdata.com")
INFLUXDB_ORG = os.getenv("INFLUXDB_ORG", "ELI")
INFLUXDB_ORG_ID = os.getenv("INFLUXDB_ORG_ID", "")
INFLUXDB_TOKEN = os.getenv("INFLUXDB_TOKEN", "")  # Empty = sink disabled
INFLUXDB_BUCKET = os.getenv("INFLUXDB_BUCKET", "cloudinary_metrics")
