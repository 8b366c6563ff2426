import copy

import pytest
from fastapi.testclient import TestClient

from routerdash.config import Settings
from routerdash.main import create_app
from routerdash.models.domain import ApiResult

# Delta / Revolution style payload: flat legacy fields only
LEGACY_SYSTEM_INFO = {
    "firmware_version": "4.7.3",
    "uptime_val": 123456,
    "temp_cpum": 61,
    "temp_cpub": 55,
    "temp_sw": 48,
    "fan_rpm": 1830,
}

API_VERSION = {
    "box_model_name": "Freebox v7 (r1)",
    "device_name": "Freebox Server",
    "api_version": "8.0",
}

CONNECTION_STATUS = {
    "state": "up",
    "rate_down": 2048000,
    "rate_up": 512000,
}


class FakeFreeboxClient:
    """Stands in for FreeboxClient: canned ApiResults, records reboots."""

    def __init__(self):
        self.system = ApiResult.ok(copy.deepcopy(LEGACY_SYSTEM_INFO))
        self.version = ApiResult.ok(dict(API_VERSION))
        self.connection = ApiResult.ok(dict(CONNECTION_STATUS))
        self.reboot_result = ApiResult.ok()
        self.reboot_calls = 0

    async def get_system_info(self) -> ApiResult:
        return self.system.model_copy(deep=True)

    async def get_api_version(self) -> ApiResult:
        return self.version.model_copy(deep=True)

    async def get_connection_status(self) -> ApiResult:
        return self.connection.model_copy(deep=True)

    async def reboot(self) -> ApiResult:
        self.reboot_calls += 1
        return self.reboot_result

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_box() -> FakeFreeboxClient:
    return FakeFreeboxClient()


@pytest.fixture
def settings(tmp_path) -> Settings:
    # One immediate poll at startup, then nothing for the duration of a test
    return Settings(
        freebox_token_file=str(tmp_path / ".freebox_token"),
        telemetry_poll_enabled=True,
        telemetry_poll_interval_s=3600.0,
    )


@pytest.fixture
def client(settings, fake_box):
    app = create_app(settings=settings, client=fake_box)
    with TestClient(app) as c:
        yield c
