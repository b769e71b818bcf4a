"""
Script: cli.py
Created: 2026-10-18
Purpose: CLI entry point for the ThrottleGate server
Keywords: cli, argparse, uvicorn, entrypoint, throttlegate
Status: active
Prerequisites:
  - uvicorn
Changelog:
  - 2026-10-18: Initial version
See-Also: app.py, config.py
"""

from . import __version__
from .config import THROTTLEGATE_DB, THROTTLEGATE_PORT, INFLUXDB_ORG_ID, INFLUXDB_TOKEN


def main():
    """CLI entry point for throttlegate-server command."""
    import uvicorn
    import argparse

    parser = argparse.ArgumentParser(
        description="ThrottleGate - admission control for camera event analysis"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=THROTTLEGATE_PORT, help=f"Port to bind (default: {THROTTLEGATE_PORT})")
    parser.add_argument("--db", default=None, help=f"SQLite database path (default: {THROTTLEGATE_DB})")

    args = parser.parse_args()
    db_path = args.db or THROTTLEGATE_DB

    print(f"ThrottleGate v{__version__}")
    print(f"Starting on {args.host}:{args.port}")
    print(f"Database: {db_path}")
    print(f"Metrics sink: {'InfluxDB' if INFLUXDB_TOKEN and INFLUXDB_ORG_ID else 'disabled'}")

    from .app import create_app
    uvicorn.run(create_app(db_path=db_path), host=args.host, port=args.port)
