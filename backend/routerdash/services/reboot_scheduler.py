"""
reboot_scheduler.py

Purpose:
  Owns the one persisted reboot schedule and the one weekly trigger derived
  from it. Every change goes through `update_schedule()`, which persists the
  record and then rebuilds the trigger (stop, then recreate if enabled).

Failure policy:
  - Schedule file cannot be written: logged, the in-memory record is still updated.
    The write itself runs in a worker thread so the poll loop and sockets keep going.
  - Schedule cannot become a trigger (bad time / day): logged and kept in
    `last_error`, no trigger is active, the record is still saved as given.
  - Reboot action fails when the trigger fires: logged, the trigger keeps running.
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, FrozenSet, Mapping, Optional, Union

from routerdash.exceptions import PersistenceError, TriggerConstructionError
from routerdash.logging_setup import get_service_logger
from routerdash.models.domain import RebootSchedule, RebootScheduleUpdate, SchedulerStatus
from routerdash.services.schedule_store import ScheduleStore

logger = get_service_logger("scheduler")

RebootAction = Callable[[], Awaitable[Any]]
Clock = Callable[[], datetime]

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{1,2})\s*$")

# Long sleeps are split so wall-clock jumps (NTP sync, suspend) are noticed.
MAX_SLEEP_S = 60.0


# ============================================================
# RECURRENCE RULE
# ============================================================

@dataclass(frozen=True)
class WeeklyRule:
    hour: int
    minute: int
    days: FrozenSet[int]    # 0 = Sunday ... 6 = Saturday

    @property
    def expression(self) -> str:
        """Cron-style rendering, for logs."""
        return f"{self.minute} {self.hour} * * {','.join(str(d) for d in sorted(self.days))}"

    def next_after(self, now: datetime) -> datetime:
        """First matching minute strictly after `now`."""
        base = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        for offset in range(8):
            candidate = base + timedelta(days=offset)
            sunday_based = (candidate.weekday() + 1) % 7
            if candidate > now and sunday_based in self.days:
                return candidate
        raise TriggerConstructionError("no matching weekday", days=sorted(self.days))


def build_rule(schedule: RebootSchedule) -> WeeklyRule:
    """Validate a schedule record and turn it into a weekly rule."""
    match = _TIME_RE.match(schedule.time or "")
    if not match:
        raise TriggerConstructionError(f"invalid time {schedule.time!r}, expected HH:MM", time=schedule.time)

    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise TriggerConstructionError(f"time out of range {schedule.time!r}", time=schedule.time)

    bad_days = [d for d in schedule.days if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6]
    if bad_days:
        raise TriggerConstructionError(f"invalid weekdays {bad_days}", days=list(schedule.days))
    if not schedule.days:
        raise TriggerConstructionError("no weekday selected", days=[])

    return WeeklyRule(hour=hour, minute=minute, days=frozenset(schedule.days))


# ============================================================
# TRIGGER
# ============================================================

class WeeklyTrigger:
    """An asyncio task that calls `action` at every occurrence of `rule`."""

    def __init__(self, rule: WeeklyRule, action: RebootAction, clock: Clock = datetime.now):
        self.rule = rule
        self.action = action
        self.clock = clock

        self.next_run: Optional[datetime] = None
        self.fire_count = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        # Needs a running loop; raises RuntimeError otherwise.
        loop = asyncio.get_running_loop()
        self.next_run = self.rule.next_after(self.clock())
        self._task = loop.create_task(self._run(), name=f"reboot-trigger[{self.rule.expression}]")

    def stop(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None
        self.next_run = None

    async def _run(self) -> None:
        while True:
            now = self.clock()
            if self.next_run is None:
                self.next_run = self.rule.next_after(now)

            remaining = (self.next_run - now).total_seconds()
            if remaining > 0:
                await asyncio.sleep(min(remaining, MAX_SLEEP_S))
                continue

            await self.fire()
            self.next_run = self.rule.next_after(self.clock())

    async def fire(self) -> None:
        """Run the action once. Never raises."""
        self.fire_count += 1
        logger.info("Executing scheduled reboot...", extra={"rule": self.rule.expression})
        try:
            result = await self.action()
        except Exception as e:
            logger.error(f"Scheduled reboot failed: {e}", extra={"rule": self.rule.expression})
            return

        if getattr(result, "success", True) is False:
            error = getattr(result, "error", None)
            logger.error(
                f"Scheduled reboot failed: {getattr(error, 'message', error)}",
                extra={"rule": self.rule.expression},
            )


# ============================================================
# SCHEDULER SERVICE
# ============================================================

class RebootScheduler:
    """
    Holds the process-wide RebootSchedule and at most one WeeklyTrigger.
    The trigger is only replaced inside `_rebuild_trigger()`.
    """

    def __init__(self, store: ScheduleStore, action: RebootAction, clock: Clock = datetime.now):
        self.store = store
        self.action = action
        self.clock = clock

        self._schedule = store.load()
        self._trigger: Optional[WeeklyTrigger] = None
        self._last_error: Optional[str] = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        self._rebuild_trigger()
        logger.info("Reboot scheduler started", extra={"schedule": self._schedule.model_dump()})

    async def stop(self) -> None:
        self._stop_trigger()
        logger.info("Reboot scheduler stopped")

    # -----------------------------
    # Schedule access
    # -----------------------------
    def get_schedule(self) -> RebootSchedule:
        return self._schedule.model_copy(deep=True)

    async def update_schedule(self, partial: Union[RebootScheduleUpdate, Mapping[str, Any]]) -> RebootSchedule:
        """
        Merge the given fields over the current record, persist it and
        rebuild the trigger. Fields left out (or null) keep their value.
        Updates are serialized; the file write runs off the event loop.
        """
        if isinstance(partial, RebootScheduleUpdate):
            partial = partial.model_dump(exclude_unset=True)

        changes = {
            k: v for k, v in partial.items()
            if k in RebootSchedule.model_fields and v is not None
        }
        async with self._lock:
            self._schedule = RebootSchedule(**{**self._schedule.model_dump(), **changes})

            try:
                await asyncio.to_thread(self.store.save, self.get_schedule())
            except PersistenceError as e:
                logger.error(f"Failed to save schedule: {e}", extra={"path": e.path})

            self._rebuild_trigger()
            return self.get_schedule()

    def status(self) -> SchedulerStatus:
        trigger = self._trigger
        return SchedulerStatus(
            active=bool(trigger and trigger.active),
            next_run=trigger.next_run.isoformat() if trigger and trigger.next_run else None,
            last_error=self._last_error,
            schedule=self.get_schedule(),
        )

    @property
    def trigger(self) -> Optional[WeeklyTrigger]:
        return self._trigger

    # -----------------------------
    # Trigger lifecycle
    # -----------------------------
    def _stop_trigger(self) -> None:
        if self._trigger:
            self._trigger.stop()
            self._trigger = None

    def _rebuild_trigger(self) -> None:
        # No await in here: the old trigger is gone before the new one exists.
        self._stop_trigger()
        self._last_error = None

        schedule = self._schedule
        if not schedule.enabled or not schedule.days:
            logger.info("Reboot schedule disabled")
            return

        try:
            rule = build_rule(schedule)
            trigger = WeeklyTrigger(rule, self.action, self.clock)
            trigger.start()
        except TriggerConstructionError as e:
            self._last_error = e.message
            logger.error(f"Invalid reboot schedule, no trigger active: {e.message}",
                         extra={"schedule": schedule.model_dump()})
            return

        self._trigger = trigger
        logger.info(
            f"Scheduling reboot with rule \"{rule.expression}\"",
            extra={"next_run": trigger.next_run.isoformat() if trigger.next_run else None},
        )
