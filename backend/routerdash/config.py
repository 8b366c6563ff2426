from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

_TRUE = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in _TRUE


def env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val.strip())
    except Exception:
        return default


def env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return float(val.strip())
    except Exception:
        return default


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


@dataclass(frozen=True)
class Settings:
    freebox_url: str = "http://mafreebox.freebox.fr"
    freebox_api_version: str = "v8"
    freebox_session_token: Optional[str] = None
    freebox_token_file: str = "./data/.freebox_token"
    freebox_timeout_s: float = 10.0

    telemetry_poll_enabled: bool = True
    telemetry_poll_interval_s: float = 5.0
    subscriber_queue_size: int = 32

    allowed_origins: str = "*"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            freebox_url=env_str("FREEBOX_URL", cls.freebox_url),
            freebox_api_version=env_str("FREEBOX_API_VERSION", cls.freebox_api_version),
            freebox_session_token=env_str("FREEBOX_SESSION_TOKEN"),
            freebox_token_file=env_str("FREEBOX_TOKEN_FILE", cls.freebox_token_file),
            freebox_timeout_s=env_float("FREEBOX_TIMEOUT_S", cls.freebox_timeout_s),
            telemetry_poll_enabled=env_flag("TELEMETRY_POLL_ENABLED", cls.telemetry_poll_enabled),
            telemetry_poll_interval_s=env_float("TELEMETRY_POLL_INTERVAL_S", cls.telemetry_poll_interval_s),
            subscriber_queue_size=max(1, env_int("SUBSCRIBER_QUEUE_SIZE", cls.subscriber_queue_size)),
            allowed_origins=env_str("ALLOWED_ORIGINS", cls.allowed_origins),
        )

    @property
    def schedule_path(self) -> Path:
        # Lives next to the device token so all box state sits in one directory.
        return Path(self.freebox_token_file).expanduser().parent / ".reboot_schedule.json"

    @property
    def origins(self) -> List[str]:
        if self.allowed_origins == "*":
            return ["*"]
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
