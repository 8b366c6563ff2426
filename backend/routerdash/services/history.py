"""
Derived history points, shared by the server-side hub window and the
client-side reducer so both compute exactly the same series.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from routerdash.models.domain import ConnectionPoint, TemperaturePoint
from routerdash.services.normalizer import CORE_FIELDS, MAIN_CPU_FIELD, is_number, mean_rounded, round_half_up

# 60 points = 30 minutes at the dashboard's 30s cadence
HISTORY_CAPACITY = 60


def display_time(at: Optional[datetime] = None) -> str:
    return (at or datetime.now()).strftime("%H:%M:%S")


def _number(value: Any) -> Optional[float]:
    return value if is_number(value) else None


def main_cpu_temperature(record: Mapping[str, Any]) -> Optional[float]:
    """Explicit aggregate when reported, else the rounded mean of the per-core readings."""
    explicit = record.get(MAIN_CPU_FIELD)
    if is_number(explicit):
        return explicit
    return mean_rounded([record.get(f) for f in CORE_FIELDS])


def temperature_point(record: Mapping[str, Any], at: Optional[datetime] = None) -> TemperaturePoint:
    return TemperaturePoint(
        time=display_time(at),
        cpuMain=main_cpu_temperature(record),
        cpuBox=_number(record.get("temp_cpub")),
        switchTemp=_number(record.get("temp_sw")),
    )


def connection_point(status: Mapping[str, Any], at: Optional[datetime] = None) -> ConnectionPoint:
    down = status.get("rate_down")
    up = status.get("rate_up")
    return ConnectionPoint(
        time=display_time(at),
        downloadRateKBs=round_half_up(down / 1024) if is_number(down) else 0,
        uploadRateKBs=round_half_up(up / 1024) if is_number(up) else 0,
    )
