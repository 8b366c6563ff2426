"""
Exception classes for routerdash.

Hierarchical so callers can catch one family (schedule vs upstream)
without caring about the precise failure.
"""
from __future__ import annotations

from typing import Optional


class RouterDashError(Exception):
    """Base exception for all routerdash errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class UpstreamError(RouterDashError):
    """The router management API could not be reached or refused the call"""

    def __init__(self, message: str, code: str = "upstream_unreachable", status_code: Optional[int] = None):
        self.code = code
        self.status_code = status_code
        super().__init__(f"Upstream Error: {message}", recoverable=True)


class ScheduleError(RouterDashError):
    """Reboot schedule errors"""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(f"Schedule Error: {message}", recoverable)


class TriggerConstructionError(ScheduleError):
    """A schedule record cannot be turned into a weekly trigger"""

    def __init__(self, message: str, time: Optional[str] = None, days: Optional[list] = None):
        self.time = time
        self.days = days
        super().__init__(message, recoverable=True)


class PersistenceError(ScheduleError):
    """The schedule file could not be written"""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message, recoverable=True)
