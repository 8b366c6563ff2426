# backend/routerdash/main.py
"""
routerdash backend

FastAPI application that sits between the browser dashboard and the box:
- polls the box and pushes normalized telemetry (WebSocket + SSE)
- exposes system info / version / capabilities / history
- owns the persisted weekly reboot schedule

Run:
  uvicorn routerdash.main:app --port 8000   (from the backend/ directory)
"""
from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routerdash.api import routes_health, routes_system, routes_ws
from routerdash.config import Settings
from routerdash.deps import get_settings
from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import ApiResult
from routerdash.services.freebox_client import FreeboxClient
from routerdash.services.reboot_scheduler import RebootScheduler
from routerdash.services.schedule_store import ScheduleStore
from routerdash.services.telemetry_hub import TelemetryHub

logger = get_service_logger("api")


def create_app(settings: Optional[Settings] = None, client: Optional[Any] = None) -> FastAPI:
    """
    Build the application. `client` replaces the real box client (tests,
    simulators); it must offer the same async methods as FreeboxClient.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        freebox = client if client is not None else FreeboxClient.from_settings(settings)
        hub = TelemetryHub(
            freebox,
            poll_interval_s=settings.telemetry_poll_interval_s,
            queue_size=settings.subscriber_queue_size,
        )
        scheduler = RebootScheduler(ScheduleStore(settings.schedule_path), action=freebox.reboot)

        app.state.freebox_client = freebox
        app.state.telemetry_hub = hub
        app.state.reboot_scheduler = scheduler

        await scheduler.start()
        if settings.telemetry_poll_enabled:
            await hub.start()
        logger.info(
            "routerdash started",
            extra={"freebox_url": settings.freebox_url, "poll": settings.telemetry_poll_enabled},
        )

        yield

        await hub.stop()
        await scheduler.stop()
        if client is None:
            await freebox.aclose()
        logger.info("routerdash stopped")

    app = FastAPI(
        title="routerdash",
        version="0.1.0",
        description="Normalized telemetry, live push and reboot scheduling for a home router dashboard.",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.debug(
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={"request_id": request_id, "duration_ms": round((time.perf_counter() - start) * 1000, 1)},
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        body = ApiResult.fail("validation_error", message or "Invalid request")
        return JSONResponse(status_code=422, content=body.model_dump())

    app.include_router(routes_health.router, tags=["Health"])
    app.include_router(routes_system.router, prefix="/api/system", tags=["System"])
    app.include_router(routes_ws.router, tags=["Realtime"])

    return app


app = create_app()
