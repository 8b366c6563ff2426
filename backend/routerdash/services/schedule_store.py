"""
Persistence for the single reboot schedule record.

Read-whole / write-whole JSON at a fixed path. A missing or unreadable
file is not an error: the disabled default applies.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from routerdash.exceptions import PersistenceError
from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import RebootSchedule

logger = get_service_logger("scheduler.store")


class ScheduleStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> RebootSchedule:
        """Persisted schedule merged over the defaults, or the defaults alone."""
        if not self.path.exists():
            return RebootSchedule()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("schedule file does not hold an object")
            merged = {**RebootSchedule().model_dump(), **data}
            return RebootSchedule(**merged)
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load schedule from {self.path}: {e}")
            return RebootSchedule()

    def save(self, schedule: RebootSchedule) -> None:
        """Write via a temp file and rename so a crash never leaves half a file."""
        tmp_path = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(schedule.model_dump(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            tmp_path.replace(self.path)
        except OSError as e:
            raise PersistenceError(str(e), path=str(self.path)) from e

        logger.info(f"Saved schedule to {self.path}", extra={"path": str(self.path)})
