"""
telemetry_hub.py

Purpose:
  The single owner of the upstream telemetry feed. Polls the box on a fixed
  interval, normalizes what comes back and fans it out to every live
  subscriber (WebSocket / SSE connections).

Delivery model:
  - Each subscriber has its own bounded queue. When it falls behind, its
    oldest unsent message is dropped; the poll loop never waits on it.
  - Best effort, at most once, in acquisition order.
  - A new subscriber gets the latest known snapshots right away, then live
    updates only (no history replay).
  - One subscriber failing or leaving never affects the others.
"""
from __future__ import annotations

import asyncio
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import ApiResult, HistoryResponse, MessageType, PushMessage
from routerdash.services.history import HISTORY_CAPACITY, connection_point, temperature_point
from routerdash.services.normalizer import normalize

logger = get_service_logger("hub")

# Published in this order every cycle and replayed in this order on attach
SNAPSHOT_ORDER = (MessageType.SYSTEM_STATUS.value, MessageType.CONNECTION_STATUS.value)


class Subscriber:
    """One live consumer. Its queue drops the oldest message when full."""

    def __init__(self, maxsize: int = 32):
        self.id = uuid.uuid4().hex[:8]
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        while True:
            try:
                self.queue.put_nowait(message)
                return
            except asyncio.QueueFull:
                try:
                    self.queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    async def get(self) -> Dict[str, Any]:
        return await self.queue.get()


class TelemetryHub:
    """
    Orchestrates:
      - Acquisition (poll loop against the box)
      - Normalization
      - Fan-out to subscribers
      - Bounded history windows (temperature + connection)
    """

    def __init__(
        self,
        client: Any,
        poll_interval_s: float = 5.0,
        queue_size: int = 32,
        history_size: int = HISTORY_CAPACITY,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client
        self.poll_interval_s = poll_interval_s
        self.queue_size = queue_size
        self.clock = clock

        self._subscribers: Set[Subscriber] = set()
        self._latest: Dict[str, Dict[str, Any]] = {}

        self._temperature_history: deque = deque(maxlen=history_size)
        self._connection_history: deque = deque(maxlen=history_size)

        self._running = False
        self._task: Optional[asyncio.Task] = None

    # -----------------------------
    # Lifecycle
    # -----------------------------
    async def start(self) -> None:
        """Start the acquisition loop"""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Telemetry hub started (interval: {self.poll_interval_s}s)")

    async def stop(self) -> None:
        """Stop the acquisition loop"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Telemetry hub stopped")

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error polling telemetry: {e}")

            await asyncio.sleep(self.poll_interval_s)

    # -----------------------------
    # Acquisition
    # -----------------------------
    async def fetch_system_status(self) -> ApiResult:
        """
        System info + api version, fetched together. Either may be missing:
        without the version the model fields are simply not added.
        """
        system_result, version_result = await asyncio.gather(
            self.client.get_system_info(),
            self.client.get_api_version(),
        )

        if not system_result.success:
            return system_result
        if not isinstance(system_result.result, dict):
            return ApiResult.fail("invalid_response", "System info is not an object")

        system = dict(system_result.result)
        if version_result.success and isinstance(version_result.result, dict):
            version = version_result.result
            model = version.get("box_model_name") or version.get("box_model")
            for key, value in (
                ("box_model_name", model),
                ("device_name", version.get("device_name")),
                ("api_version", version.get("api_version")),
            ):
                if value is not None:
                    system[key] = value

        normalized = normalize(system)
        logger.debug(
            "Normalized system info",
            extra={"sensors": len(normalized.get("sensors", [])), "fans": len(normalized.get("fans", []))},
        )
        return ApiResult.ok(normalized)

    async def poll_once(self) -> None:
        """One acquisition cycle. A failed fetch means no update for that message type."""
        system = await self.fetch_system_status()
        if system.success:
            self.publish(MessageType.SYSTEM_STATUS.value, system.result)
        else:
            logger.warning(f"No system update this cycle: {system.error.message if system.error else 'unknown'}")

        connection = await self.client.get_connection_status()
        if connection.success and isinstance(connection.result, dict):
            self.publish(MessageType.CONNECTION_STATUS.value, connection.result)
        else:
            logger.warning(
                f"No connection update this cycle: {connection.error.message if connection.error else 'invalid'}"
            )

    # -----------------------------
    # Distribution
    # -----------------------------
    def publish(self, message_type: str, data: Dict[str, Any]) -> None:
        message = PushMessage(type=message_type, data=data).model_dump()
        self._latest[message_type] = message

        now = self.clock()
        if message_type == MessageType.SYSTEM_STATUS.value:
            self._temperature_history.append(temperature_point(data, now))
        elif message_type == MessageType.CONNECTION_STATUS.value:
            self._connection_history.append(connection_point(data, now))

        for subscriber in list(self._subscribers):
            subscriber.offer(message)

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(maxsize=self.queue_size)
        self._subscribers.add(subscriber)
        # Snapshot goes in before any live message can, nothing awaits in between.
        for message_type in SNAPSHOT_ORDER:
            if message_type in self._latest:
                subscriber.offer(self._latest[message_type])
        logger.info(f"Subscriber {subscriber.id} attached", extra={"subscribers": len(self._subscribers)})
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        subscriber.closed = True
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info(
                f"Subscriber {subscriber.id} detached",
                extra={"subscribers": len(self._subscribers), "dropped": subscriber.dropped},
            )

    # -----------------------------
    # State Access
    # -----------------------------
    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def latest(self, message_type: str) -> Optional[Dict[str, Any]]:
        message = self._latest.get(message_type)
        return message["data"] if message else None

    def history(self) -> HistoryResponse:
        return HistoryResponse(
            temperature=list(self._temperature_history),
            connection=list(self._connection_history),
        )
