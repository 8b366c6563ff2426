"""
Consumer-side state for the push channel.

Merges each `system_status` / `connection_status` message into a local
snapshot and appends one point to the matching bounded history, without
ever resyncing from scratch. Messages may carry only a subset of fields:
anything absent (or null) keeps its previous value.
"""
from __future__ import annotations

import json
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import MessageType
from routerdash.services.history import (
    HISTORY_CAPACITY,
    connection_point,
    main_cpu_temperature,
    temperature_point,
)
from routerdash.services.normalizer import MAIN_CPU_FIELD

logger = get_service_logger("client")


class ClientState:
    """Session-wide UI state: snapshots + ring buffers, never persisted."""

    def __init__(self, capacity: int = HISTORY_CAPACITY, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.info: Dict[str, Any] = {}
        self.connection: Dict[str, Any] = {}
        self.temperature_history: deque = deque(maxlen=capacity)
        self.connection_history: deque = deque(maxlen=capacity)

    def apply(self, message: Union[str, bytes, Mapping[str, Any]]) -> bool:
        """
        Merge one push message. Returns False when the message was ignored
        (undecodable frame, unknown type, missing payload).
        """
        if isinstance(message, (str, bytes)):
            try:
                message = json.loads(message)
            except ValueError as e:
                logger.debug(f"Ignoring undecodable frame: {e}")
                return False

        if not isinstance(message, Mapping):
            return False

        data = message.get("data")
        if not isinstance(data, Mapping):
            return False

        message_type = message.get("type")
        if message_type == MessageType.SYSTEM_STATUS.value:
            self._apply_system(data)
        elif message_type == MessageType.CONNECTION_STATUS.value:
            self._apply_connection(data)
        else:
            logger.debug(f"Ignoring unknown message type {message_type!r}")
            return False
        return True

    def _apply_system(self, data: Mapping[str, Any]) -> None:
        now = self.clock()
        self.temperature_history.append(temperature_point(data, now))

        _merge_present(self.info, data)
        if data.get(MAIN_CPU_FIELD) is None:
            cpu_main = main_cpu_temperature(data)
            if cpu_main is not None:
                self.info[MAIN_CPU_FIELD] = cpu_main

    def _apply_connection(self, data: Mapping[str, Any]) -> None:
        self.connection_history.append(connection_point(data, self.clock()))
        _merge_present(self.connection, data)

    @property
    def cpu_main(self) -> Optional[float]:
        return main_cpu_temperature(self.info) if self.info else None


def _merge_present(target: Dict[str, Any], data: Mapping[str, Any]) -> None:
    for key, value in data.items():
        if value is not None:
            target[key] = value
