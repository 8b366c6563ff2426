import asyncio
import json
import threading
from datetime import datetime

import pytest
from routerdash.exceptions import TriggerConstructionError
from routerdash.models.domain import ApiResult, RebootSchedule
from routerdash.services.reboot_scheduler import (
    RebootScheduler,
    WeeklyRule,
    WeeklyTrigger,
    build_rule,
)
from routerdash.services.schedule_store import ScheduleStore

# 2026-10-19 is a Monday (weekday 1 with Sunday = 0)
MONDAY_NOON = datetime(2026, 10, 19, 12, 0, 0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class RecordingAction:
    def __init__(self, result=None, error: Exception = None):
        self.calls = 0
        self.result = result if result is not None else ApiResult.ok()
        self.error = error
        self.called = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        self.called.set()
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def store(tmp_path) -> ScheduleStore:
    return ScheduleStore(tmp_path / ".reboot_schedule.json")


# ============================================================
# RECURRENCE RULE
# ============================================================

@pytest.mark.parametrize("time,days,now,expected", [
    ("03:00", [3], MONDAY_NOON, datetime(2026, 10, 21, 3, 0)),
    ("03:00", [1], datetime(2026, 10, 19, 2, 59), datetime(2026, 10, 19, 3, 0)),
    ("03:00", [1], datetime(2026, 10, 19, 3, 0), datetime(2026, 10, 26, 3, 0)),
    ("23:30", [0, 6], MONDAY_NOON, datetime(2026, 10, 24, 23, 30)),
    ("4:5", [2], MONDAY_NOON, datetime(2026, 10, 20, 4, 5)),
])
def test_next_occurrence(time, days, now, expected):
    rule = build_rule(RebootSchedule(enabled=True, days=days, time=time))
    assert rule.next_after(now) == expected


def test_rule_expression_is_cron_like():
    rule = WeeklyRule(hour=3, minute=0, days=frozenset({5, 1}))
    assert rule.expression == "0 3 * * 1,5"


@pytest.mark.parametrize("time,days", [
    ("25:00", [1]),
    ("03:61", [1]),
    ("0300", [1]),
    ("", [1]),
    ("03:00", [7]),
    ("03:00", [-1]),
    ("03:00", []),
])
def test_invalid_rules_rejected(time, days):
    with pytest.raises(TriggerConstructionError):
        build_rule(RebootSchedule(enabled=True, days=days, time=time))


# ============================================================
# SCHEDULE RECORD
# ============================================================

def test_defaults_when_nothing_persisted(store):
    scheduler = RebootScheduler(store, RecordingAction())
    assert scheduler.get_schedule() == RebootSchedule(enabled=False, days=[], time="03:00")


def test_update_is_a_pure_override(store):
    """Later fields win, fields left out keep their previous value."""
    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction(), clock=FakeClock(MONDAY_NOON))
        await scheduler.update_schedule({"enabled": True, "days": [1, 3]})
        result = await scheduler.update_schedule({"time": "04:00"})
        await scheduler.stop()
        return result

    result = asyncio.run(scenario())
    assert result == RebootSchedule(enabled=True, days=[1, 3], time="04:00")


def test_update_persists_and_reloads(store):
    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction(), clock=FakeClock(MONDAY_NOON))
        await scheduler.update_schedule({"enabled": True, "days": [2], "time": "05:15"})
        await scheduler.stop()

    asyncio.run(scenario())

    on_disk = json.loads(store.path.read_text(encoding="utf-8"))
    assert on_disk == {"enabled": True, "days": [2], "time": "05:15"}
    assert RebootScheduler(store, RecordingAction()).get_schedule().time == "05:15"


def test_null_fields_keep_previous_value(store):
    scheduler = RebootScheduler(store, RecordingAction())
    result = asyncio.run(scheduler.update_schedule({"time": None, "days": [4]}))
    assert result.time == "03:00"
    assert result.days == [4]


def test_corrupt_file_falls_back_to_default(store):
    store.path.write_text("{not json", encoding="utf-8")
    assert RebootScheduler(store, RecordingAction()).get_schedule() == RebootSchedule()


def test_returned_schedule_is_a_copy(store):
    scheduler = RebootScheduler(store, RecordingAction())
    scheduler.get_schedule().days.append(5)
    assert scheduler.get_schedule().days == []


# ============================================================
# TRIGGER LIFECYCLE
# ============================================================

def test_enabled_without_days_has_no_trigger_but_is_saved(store):
    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction())
        result = await scheduler.update_schedule({"enabled": True, "days": []})
        return scheduler, result

    scheduler, result = asyncio.run(scenario())
    assert result.enabled is True
    assert scheduler.trigger is None
    assert json.loads(store.path.read_text(encoding="utf-8"))["enabled"] is True


def test_invalid_time_records_failure_without_raising(store):
    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction())
        result = await scheduler.update_schedule({"enabled": True, "days": [1], "time": "99:99"})
        return scheduler, result

    scheduler, result = asyncio.run(scenario())
    assert result.time == "99:99"
    assert scheduler.trigger is None
    status = scheduler.status()
    assert status.active is False
    assert "99:99" in status.last_error
    assert json.loads(store.path.read_text(encoding="utf-8"))["time"] == "99:99"


def test_rebuild_replaces_the_previous_trigger(store):
    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction(), clock=FakeClock(MONDAY_NOON))
        await scheduler.update_schedule({"enabled": True, "days": [3], "time": "03:00"})
        first = scheduler.trigger
        await scheduler.update_schedule({"time": "04:30"})
        second = scheduler.trigger
        await asyncio.sleep(0)
        state = (first.active, second.active, scheduler.status())
        await scheduler.update_schedule({"enabled": False})
        state += (scheduler.trigger, second.active)
        await scheduler.stop()
        return state

    first_active, second_active, status, after_disable, second_after = asyncio.run(scenario())
    assert first_active is False
    assert second_active is True
    assert status.active is True
    assert status.next_run == "2026-10-21T04:30:00"
    assert after_disable is None
    assert second_after is False


def test_start_builds_trigger_from_persisted_schedule(store):
    store.save(RebootSchedule(enabled=True, days=[0], time="02:00"))

    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction(), clock=FakeClock(MONDAY_NOON))
        await scheduler.start()
        status = scheduler.status()
        await scheduler.stop()
        return status

    status = asyncio.run(scenario())
    assert status.active is True
    assert status.next_run == "2026-10-25T02:00:00"


def test_persistence_failure_still_updates_memory(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = ScheduleStore(blocker / ".reboot_schedule.json")

    scheduler = RebootScheduler(store, RecordingAction())
    result = asyncio.run(scheduler.update_schedule({"time": "01:00"}))

    assert result.time == "01:00"
    assert scheduler.get_schedule().time == "01:00"


def test_schedule_is_written_off_the_event_loop(tmp_path):
    class ThreadRecordingStore(ScheduleStore):
        def save(self, schedule):
            self.saved_in = threading.get_ident()
            super().save(schedule)

    store = ThreadRecordingStore(tmp_path / ".reboot_schedule.json")

    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction())
        await scheduler.update_schedule({"time": "02:30"})
        return threading.get_ident()

    loop_thread = asyncio.run(scenario())
    assert store.saved_in != loop_thread
    assert json.loads(store.path.read_text(encoding="utf-8"))["time"] == "02:30"


def test_concurrent_updates_persist_in_order(store):
    async def scenario():
        scheduler = RebootScheduler(store, RecordingAction(), clock=FakeClock(MONDAY_NOON))
        await asyncio.gather(*(scheduler.update_schedule({"time": f"0{h}:00"}) for h in range(1, 6)))
        await scheduler.stop()
        return scheduler.get_schedule()

    final = asyncio.run(scenario())
    assert final.time == "05:00"
    assert json.loads(store.path.read_text(encoding="utf-8"))["time"] == "05:00"


# ============================================================
# FIRING
# ============================================================

def test_trigger_fires_action_once_when_due():
    async def scenario():
        clock = FakeClock(datetime(2026, 10, 19, 2, 59, 59))
        action = RecordingAction()
        trigger = WeeklyTrigger(WeeklyRule(hour=3, minute=0, days=frozenset({1})), action, clock)
        trigger.start()

        clock.now = datetime(2026, 10, 19, 3, 0, 0, 500000)
        await asyncio.wait_for(action.called.wait(), timeout=2.0)
        await asyncio.sleep(0)
        next_run = trigger.next_run
        trigger.stop()
        return action.calls, next_run

    calls, next_run = asyncio.run(scenario())
    assert calls == 1
    assert next_run == datetime(2026, 10, 26, 3, 0)


@pytest.mark.parametrize("action", [
    RecordingAction(error=RuntimeError("box unreachable")),
    RecordingAction(result=ApiResult.fail("internal_error", "reboot refused")),
])
def test_action_failure_is_contained(action):
    async def scenario():
        trigger = WeeklyTrigger(WeeklyRule(hour=3, minute=0, days=frozenset({1})), action)
        await trigger.fire()
        await trigger.fire()
        return trigger.fire_count

    assert asyncio.run(scenario()) == 2
    assert action.calls == 2
