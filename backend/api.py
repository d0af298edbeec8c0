"""
NightWarm API Endpoints
"""

import os
import secrets
import sys
from datetime import datetime, timezone

from fastapi import APIRouter, Header, Query
from fastapi.responses import PlainTextResponse
from loguru import logger

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.nightwarm.controller import TemperatureController
from core.nightwarm.eight_client import EightSleepClient
from core.nightwarm.history import run_history
from core.nightwarm.profile_store import ProfileStore
from core.nightwarm.settings import load_settings

router = APIRouter()

settings = load_settings()

store = ProfileStore(settings.database_path)
eight_client = EightSleepClient(
    api_url=settings.eight_api_url,
    auth_url=settings.eight_auth_url,
    client_id=settings.eight_client_id,
    client_secret=settings.eight_client_secret,
    timeout=settings.request_timeout_seconds,
)
controller = TemperatureController(store, eight_client, settings, history=run_history)

if not settings.cron_secret:
    logger.warning("CRON_SECRET not set - the cron endpoint will reject every request")


def _authorized(authorization: str | None) -> bool:
    if not settings.cron_secret or authorization is None:
        return False
    return secrets.compare_digest(
        authorization.encode(), f"Bearer {settings.cron_secret}".encode()
    )


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "NightWarm",
        "version": "0.1.0",
    }


@router.get("/api/temperature-cron")
async def temperature_cron(
    authorization: str | None = Header(None),
    test_time: int | None = Query(None, alias="testTime"),  # Unix seconds, enables dry-run
):
    """Run the controller once (called by the periodic cron trigger).

    Returns success whenever the run completed, even if individual
    profiles failed. Only a profile fetch failure or a crash is an error.
    """
    if not _authorized(authorization):
        return PlainTextResponse("Unauthorized", status_code=401)

    try:
        test_instant = (
            datetime.fromtimestamp(test_time, tz=timezone.utc) if test_time is not None else None
        )
        report = await controller.run_cycle(test_instant)
    except Exception as e:
        logger.error(f"Critical error: {e}")
        return PlainTextResponse("Internal error", status_code=500)

    return {"success": True, **report.as_dict()}


@router.get("/api/status")
async def get_status():
    """Get controller configuration and the last run."""
    return {
        "system": "operational",
        "trigger_mode": settings.trigger_mode,
        "lead_time_hours": settings.lead_time_hours,
        "warming_enabled": settings.warming_enabled,
        "poll_interval_minutes": settings.poll_interval_minutes,
        "last_run": run_history.last_run(),
    }


@router.get("/api/runs")
async def get_runs(limit: int = Query(20, ge=1, le=200)):
    """Get recent run reports, newest first."""
    return {"runs": run_history.get_runs(limit=limit)}


@router.get("/api/evaluations")
async def get_evaluations(email: str | None = None, hours: int | None = None):
    """Get per-profile evaluations, optionally for one user."""
    return {"evaluations": run_history.get_evaluations(email=email, hours=hours)}
