"""
routes_system.py

Purpose:
  The query surface of the dashboard for the box itself: telemetry,
  api version, the reboot schedule and immediate reboot.

Contract:
  - Every response is an `ApiResult` envelope with a `success` flag.
  - Upstream failures come back as `success=false` plus an error descriptor,
    they are not raised as HTTP errors.
"""
from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from routerdash.deps import get_freebox_client, get_reboot_scheduler, get_telemetry_hub
from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import (
    ApiResult,
    HistoryResponse,
    RebootScheduleUpdate,
    SchedulerStatus,
)
from routerdash.services.normalizer import detect_api_capabilities
from routerdash.services.reboot_scheduler import RebootScheduler
from routerdash.services.telemetry_hub import TelemetryHub

logger = get_service_logger("api.system")

router = APIRouter()


@router.get("", response_model=ApiResult)
async def system_info(hub: TelemetryHub = Depends(get_telemetry_hub)) -> ApiResult:
    """Fresh system info with model fields, normalized for every firmware generation."""
    return await hub.fetch_system_status()


@router.get("/version", response_model=ApiResult)
async def system_version(client: Any = Depends(get_freebox_client)) -> ApiResult:
    return await client.get_api_version()


@router.get("/capabilities", response_model=ApiResult)
async def system_capabilities(client: Any = Depends(get_freebox_client)) -> ApiResult:
    version = await client.get_api_version()
    if not version.success:
        return version
    api_version = version.result.get("api_version") if isinstance(version.result, dict) else None
    return ApiResult.ok(detect_api_capabilities(api_version).model_dump())


@router.get("/history", response_model=HistoryResponse)
async def system_history(hub: TelemetryHub = Depends(get_telemetry_hub)) -> HistoryResponse:
    """Last points of the temperature and connection windows kept by the hub."""
    return hub.history()


async def event_stream(hub: TelemetryHub) -> AsyncIterator[Dict[str, str]]:
    """One subscriber for the lifetime of the generator; closing it detaches."""
    subscriber = hub.subscribe()
    try:
        while True:
            message = await subscriber.get()
            yield {"event": message["type"], "data": json.dumps(message)}
    finally:
        hub.unsubscribe(subscriber)


@router.get("/stream", response_class=EventSourceResponse)
async def system_stream(hub: TelemetryHub = Depends(get_telemetry_hub)) -> EventSourceResponse:
    """
    Same feed as /ws/connection, as Server-Sent Events.
    Each event is named after the message type and carries the full message.
    """
    return EventSourceResponse(event_stream(hub))


# ============================================================
# REBOOT
# ============================================================

@router.get("/reboot/schedule", response_model=ApiResult)
async def get_reboot_schedule(scheduler: RebootScheduler = Depends(get_reboot_scheduler)) -> ApiResult:
    return ApiResult.ok(scheduler.get_schedule().model_dump())


@router.post("/reboot/schedule", response_model=ApiResult)
async def update_reboot_schedule(
    update: RebootScheduleUpdate,
    scheduler: RebootScheduler = Depends(get_reboot_scheduler),
) -> ApiResult:
    schedule = await scheduler.update_schedule(update)
    return ApiResult.ok(schedule.model_dump())


@router.get("/reboot/schedule/status", response_model=SchedulerStatus)
async def reboot_schedule_status(scheduler: RebootScheduler = Depends(get_reboot_scheduler)) -> SchedulerStatus:
    return scheduler.status()


@router.post("/reboot", response_model=ApiResult)
async def reboot_now(client: Any = Depends(get_freebox_client)) -> ApiResult:
    logger.warning("Immediate reboot requested")
    return await client.reboot()
