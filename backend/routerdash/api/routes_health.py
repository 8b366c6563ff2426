from __future__ import annotations

from datetime import datetime
from fastapi import APIRouter, Depends

from routerdash.deps import get_reboot_scheduler, get_telemetry_hub
from routerdash.models.domain import HealthResponse
from routerdash.services.reboot_scheduler import RebootScheduler
from routerdash.services.telemetry_hub import TelemetryHub

router = APIRouter()

@router.get("/health", response_model=HealthResponse)
async def health(
    hub: TelemetryHub = Depends(get_telemetry_hub),
    scheduler: RebootScheduler = Depends(get_reboot_scheduler),
) -> HealthResponse:
    """Liveness plus a glance at the push channel and the reboot trigger."""
    return HealthResponse(
        status="ok",
        ts=datetime.now().isoformat(),
        subscribers=hub.subscriber_count,
        reboot_scheduled=scheduler.status().active,
    )
