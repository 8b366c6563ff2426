from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field


# ============================================================
# 0) ENUMS
# ============================================================

class MessageType(str, Enum):
    SYSTEM_STATUS = "system_status"
    CONNECTION_STATUS = "connection_status"


# ============================================================
# 1) TELEMETRY
# ============================================================

class SensorReading(BaseModel):
    id: str                 # vendor id, the identity key ("temp_cpu0", "fan0_speed")
    name: str               # display only, never used for matching
    value: Any = None


class ApiCapabilities(BaseModel):
    version: str
    has_sensors_array: bool
    has_fans_array: bool
    supports_pagination: bool


class TemperaturePoint(BaseModel):
    time: str               # "HH:MM:SS"
    cpuMain: Optional[float] = None
    cpuBox: Optional[float] = None
    switchTemp: Optional[float] = None


class ConnectionPoint(BaseModel):
    time: str
    downloadRateKBs: int
    uploadRateKBs: int


class HistoryResponse(BaseModel):
    temperature: List[TemperaturePoint] = Field(default_factory=list)
    connection: List[ConnectionPoint] = Field(default_factory=list)


class PushMessage(BaseModel):
    type: Literal["system_status", "connection_status"]
    data: Dict[str, Any]


# ============================================================
# 2) REBOOT SCHEDULE
# ============================================================

class RebootSchedule(BaseModel):
    enabled: bool = False
    days: List[int] = Field(default_factory=list)   # 0-6, Sunday = 0
    time: str = "03:00"                             # "HH:MM", local time


class RebootScheduleUpdate(BaseModel):
    """
    Partial update. Only the fields present in the request body are merged,
    use `model_dump(exclude_unset=True)` to get them.
    """
    enabled: Optional[bool] = None
    days: Optional[List[int]] = None
    time: Optional[str] = None


class SchedulerStatus(BaseModel):
    active: bool
    next_run: Optional[str] = None
    last_error: Optional[str] = None
    schedule: RebootSchedule


# ============================================================
# 3) API ENVELOPES
# ============================================================

class ApiError(BaseModel):
    code: str
    message: str


class ApiResult(BaseModel):
    success: bool
    result: Optional[Any] = None
    error: Optional[ApiError] = None

    @classmethod
    def ok(cls, result: Any = None) -> "ApiResult":
        return cls(success=True, result=result)

    @classmethod
    def fail(cls, code: str, message: str) -> "ApiResult":
        return cls(success=False, error=ApiError(code=code, message=message))


class HealthResponse(BaseModel):
    status: str
    ts: str
    subscribers: int = 0
    reboot_scheduled: bool = False
