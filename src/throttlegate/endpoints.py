"""
Script: endpoints.py
Created: 2026-10-18
Purpose: HTTP route handlers for throttle policy, stats, maintenance and event intake
Keywords: endpoints, routes, api, fastapi, throttle, maintenance
Status: active
Prerequisites:
  - fastapi
Changelog:
  - 2026-10-18: Initial version
See-Also: controller.py, app.py
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from loguru import logger

from .controller import AdmissionController


router = APIRouter()


def get_controller(request: Request) -> AdmissionController:
    return request.app.state.controller


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Throttle policy / stats
# =============================================================================

@router.get("/throttle", tags=["throttle"])
async def get_throttle(
    action: Optional[str] = Query(None, description="'stats' for full processing statistics"),
    controller: AdmissionController = Depends(get_controller),
):
    """Current throttle policy plus processing counters."""
    config = await controller.config_store.load()
    stats = controller.tracker.snapshot()

    if action == "stats":
        return {
            "success": True,
            "config": config.to_wire(),
            "stats": stats.to_wire(),
            "aggregate": await controller.aggregate_stats(),
            "timestamp": _timestamp(),
        }

    return {
        "success": True,
        "config": config.to_wire(),
        "stats": {
            "totalReceived": stats.total_received,
            "totalProcessed": stats.total_processed,
            "totalSkipped": stats.total_skipped,
            "effectiveRatio": stats.effective_ratio,
        },
        "timestamp": _timestamp(),
    }


@router.post("/throttle", tags=["throttle"])
async def update_throttle(
    body: Any = Body(...),
    controller: AdmissionController = Depends(get_controller),
):
    """
    Partially update the throttle policy.

    Accepts any subset of enabled, processRatio, maxPerHour, samplingMethod.
    Each field is validated on its own; malformed fields are ignored.
    """
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")

    config, persisted = await controller.config_store.update(body)
    controller.reporter.schedule_flush()
    logger.info(f"[Throttle] Configuration updated (persisted={persisted}): {config.description}")

    return {
        "success": True,
        "config": config.to_wire(),
        "persistedToDb": persisted,
        "message": "Throttle configuration updated",
    }


@router.post("/throttle/reset", tags=["throttle"])
async def reset_stats(controller: AdmissionController = Depends(get_controller)):
    """Clear in-memory counters. Persisted policy and maintenance state are untouched."""
    controller.tracker.reset()
    return {
        "success": True,
        "message": "Statistics reset",
        "stats": controller.tracker.snapshot().to_wire(),
    }


# =============================================================================
# Maintenance mode
# =============================================================================

@router.get("/maintenance", tags=["maintenance"])
async def get_maintenance(controller: AdmissionController = Depends(get_controller)):
    mode = await controller.maintenance.load()
    return mode.to_wire()


@router.post("/maintenance", tags=["maintenance"])
async def toggle_maintenance(
    body: Any = Body(...),
    x_actor: Optional[str] = Header(None, alias="X-Actor"),
    controller: AdmissionController = Depends(get_controller),
):
    """Enable or disable maintenance mode. `enabled` must be a boolean."""
    if not isinstance(body, dict) or not isinstance(body.get("enabled"), bool):
        raise HTTPException(status_code=400, detail="'enabled' (boolean) is required")

    actor = x_actor or "api"
    if body["enabled"]:
        reason = body.get("reason")
        if not isinstance(reason, str) or not reason:
            reason = "No reason provided"
        ok = await controller.maintenance.enable(reason, actor)
    else:
        ok = await controller.maintenance.disable(actor)

    if not ok:
        current = await controller.maintenance.load()
        return JSONResponse(
            status_code=503,
            content={"success": False, "maintenance": current.to_wire()},
        )
    return {
        "success": True,
        "maintenance": controller.maintenance.get_cached().to_wire(),
    }


# =============================================================================
# Event intake
# =============================================================================

@router.post("/events", tags=["events"])
async def ingest_events(
    body: Any = Body(...),
    controller: AdmissionController = Depends(get_controller),
):
    """
    Run one admission batch over incoming camera events.

    Accepts a JSON array of events or a single event object. Returns the
    indices admitted for image analysis; nothing is forwarded from here.
    """
    events = body if isinstance(body, list) else [body]
    if not events:
        raise HTTPException(status_code=400, detail="Empty payload")

    result = await controller.process_batch(len(events))
    return result.to_dict()


# =============================================================================
# Metrics / health
# =============================================================================

@router.post("/metrics/flush", tags=["admin"])
async def flush_metrics(controller: AdmissionController = Depends(get_controller)):
    """Push current counters to the metrics sink now."""
    if not controller.reporter.configured:
        return {"status": "skipped", "reason": "metrics sink not configured"}
    task = controller.reporter.schedule_flush()
    sent = await task if task is not None else False
    return {"status": "success" if sent else "error"}


@router.get("/health", tags=["health"])
async def health(controller: AdmissionController = Depends(get_controller)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "throttlegate",
        "config_loaded": controller.config_store.is_loaded,
        "maintenance_loaded": controller.maintenance.is_loaded,
        "metrics_configured": controller.reporter.configured,
    }
