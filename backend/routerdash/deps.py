# backend/routerdash/deps.py
"""
deps.py

Purpose:
  Dependency providers for the routes.

Services Managed:
  - `Settings` (environment configuration, cached once per process)
  - `TelemetryHub` (upstream poll loop + subscriber fan-out)
  - `RebootScheduler` (persisted schedule + its single trigger)
  - `FreeboxClient` (upstream API, shared by both)

Pattern:
  - Services are built in the app lifespan and kept on `app.state`, so each
    app instance (and each test client) gets its own set.
  - Routes take them through `Depends(...)`; tests may still swap them with
    `app.dependency_overrides`.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from starlette.requests import HTTPConnection

from routerdash.config import Settings
from routerdash.services.reboot_scheduler import RebootScheduler
from routerdash.services.telemetry_hub import TelemetryHub


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


def get_telemetry_hub(conn: HTTPConnection) -> TelemetryHub:
    return conn.app.state.telemetry_hub


def get_reboot_scheduler(conn: HTTPConnection) -> RebootScheduler:
    return conn.app.state.reboot_scheduler


def get_freebox_client(conn: HTTPConnection) -> Any:
    return conn.app.state.freebox_client
