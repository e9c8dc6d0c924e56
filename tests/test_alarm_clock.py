"""Client alarm clock state machine tests."""

import asyncio
import threading

import pytest

from app.client.alarm_clock import AlarmClock, AlarmState
from app.core.errors import MissingEmergencyContact, PreconditionError
from app.services.alarm_service import advance_alarm
from helpers import RecordingNotifier, utc


class StoreBackend:
    """Backend double that talks to a MemoryStore directly."""

    def __init__(self, store):
        self.store = store
        self.fail_advance = False

    def get_alarm_config(self, user_id):
        return self.store.get_alarm_config_by_user_id(user_id)

    def get_emergency_contact(self, user_id):
        return self.store.get_emergency_contact_by_user_id(user_id)

    def update_alarm_config(self, config_id, **changes):
        return self.store.update_alarm_config(config_id, changes)

    def advance_alarm(self, config_id, expected_next_alarm):
        if self.fail_advance:
            raise ConnectionError("offline")
        return advance_alarm(self.store, config_id, expected_next_alarm)


class FakeFeedback:
    def __init__(self):
        self.events = []

    def start(self, ringtone):
        self.events.append(("start", ringtone))

    def stop(self):
        self.events.append(("stop",))


class FakeReminder:
    def __init__(self):
        self.scheduled = []
        self.cancelled = 0

    def schedule(self, fire_at, message):
        self.scheduled.append(fire_at)

    def cancel(self):
        self.cancelled += 1


@pytest.fixture
def backend(memory_store):
    return StoreBackend(memory_store)


@pytest.fixture
def feedback():
    return FakeFeedback()


@pytest.fixture
def reminder():
    return FakeReminder()


@pytest.fixture
def make_clock(backend, notifier, feedback, reminder):
    def factory(user):
        clock = AlarmClock(
            user.id,
            user.full_name,
            backend,
            notifier=notifier,
            feedback=feedback,
            reminder=reminder,
            clock=lambda: utc(2024, 1, 1, 7),
        )
        clock.load()
        return clock
    return factory


def test_idle_until_next_alarm(make_clock, seeded):
    clock = make_clock(seeded[0])
    assert clock.tick(utc(2024, 1, 1, 7, 59, 59)) == AlarmState.IDLE
    assert clock.tick(utc(2024, 1, 1, 8)) == AlarmState.ACTIVE
    assert clock.countdown.deadline == utc(2024, 1, 1, 8, 3)


def test_activation_starts_feedback_and_reminder(make_clock, feedback, reminder, seeded):
    clock = make_clock(seeded[0])
    clock.tick(utc(2024, 1, 1, 8))
    assert feedback.events == [("start", "tone-1")]
    assert reminder.scheduled == [utc(2024, 1, 1, 8, 1)]


def test_dismiss_at_ninety_seconds(make_clock, memory_store, notifier, feedback, reminder, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])
    clock.tick(utc(2024, 1, 1, 8))

    clock.dismiss(utc(2024, 1, 1, 8, 1, 30))
    clock.tick(utc(2024, 1, 1, 8, 5))

    assert clock.state == AlarmState.IDLE
    assert notifier.alerts == []
    assert feedback.events[-1] == ("stop",)
    assert reminder.cancelled >= 1
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)
    assert clock.config.next_alarm == utc(2024, 1, 1, 20)


def test_dismiss_when_not_ringing(make_clock, seeded):
    clock = make_clock(seeded[0])
    with pytest.raises(PreconditionError):
        clock.dismiss(utc(2024, 1, 1, 7))


def test_countdown_expiry_escalates_then_reschedules(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])
    clock.tick(utc(2024, 1, 1, 8))
    assert clock.tick(utc(2024, 1, 1, 8, 2, 59)) == AlarmState.ACTIVE

    assert clock.tick(utc(2024, 1, 1, 8, 3)) == AlarmState.IDLE

    assert len(notifier.alerts) == 1
    alert = notifier.alerts[0]
    assert alert.contact.name == "Maria"
    assert alert.occurrence == utc(2024, 1, 1, 8)
    assert clock.last_result.success
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)


def test_escalation_reschedules_even_if_notifier_raises(backend, feedback, reminder, memory_store, seeded):
    class Exploding:
        def notify(self, alert):
            raise RuntimeError("no network")

    user, _, config = seeded
    clock = AlarmClock(user.id, user.full_name, backend, notifier=Exploding(), feedback=feedback, reminder=reminder)
    clock.load()
    clock.tick(utc(2024, 1, 1, 8))
    clock.tick(utc(2024, 1, 1, 8, 4))

    assert clock.state == AlarmState.IDLE
    assert not clock.last_result.success
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)


def test_persist_failure_advances_locally(make_clock, backend, memory_store, notifier, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])
    backend.fail_advance = True
    clock.tick(utc(2024, 1, 1, 8))
    clock.tick(utc(2024, 1, 1, 8, 3))

    assert len(notifier.alerts) == 1
    assert clock.state == AlarmState.IDLE
    assert clock.config.next_alarm == utc(2024, 1, 1, 20)
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 8)
    # Does not ring again for the same occurrence
    assert clock.tick(utc(2024, 1, 1, 8, 10)) == AlarmState.IDLE


def test_restart_inside_window_resumes_countdown(make_clock, notifier, seeded):
    clock = make_clock(seeded[0])
    assert clock.resume(utc(2024, 1, 1, 8, 2)) == AlarmState.ACTIVE
    assert clock.countdown.remaining(utc(2024, 1, 1, 8, 2)) == 60
    assert notifier.alerts == []


def test_restart_past_window_escalates_immediately(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])

    assert clock.resume(utc(2024, 1, 1, 8, 10)) == AlarmState.IDLE

    assert len(notifier.alerts) == 1
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)


def test_restart_after_reconciler_already_escalated(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    memory_store.advance_next_alarm(config.id, utc(2024, 1, 1, 8), utc(2024, 1, 1, 20))
    clock = make_clock(seeded[0])

    assert clock.resume(utc(2024, 1, 1, 8, 10)) == AlarmState.IDLE
    assert notifier.alerts == []


def test_activate_without_contact_changes_nothing(backend, notifier, feedback, reminder, memory_store):
    user = memory_store.create_user(email="solo@test.com", password="h", full_name="Solo User")
    config = memory_store.create_alarm_config(
        user_id=user.id, time="08:00", repeat_interval=12, ringtone="tone-1",
        is_active=False, next_alarm=utc(2024, 1, 1, 8),
    )
    clock = AlarmClock(user.id, user.full_name, backend, notifier=notifier, feedback=feedback, reminder=reminder)
    clock.load()

    with pytest.raises(MissingEmergencyContact):
        clock.activate(utc(2024, 1, 1, 7))

    stored = memory_store.get_alarm_config(config.id)
    assert stored.is_active is False
    assert stored.next_alarm == utc(2024, 1, 1, 8)
    assert clock.state == AlarmState.IDLE
    assert notifier.alerts == []
    assert feedback.events == []


def test_due_alarm_without_contact_stays_idle(backend, notifier, memory_store):
    user = memory_store.create_user(email="solo@test.com", password="h", full_name="Solo User")
    memory_store.create_alarm_config(
        user_id=user.id, time="08:00", repeat_interval=12, ringtone="tone-1",
        is_active=True, next_alarm=utc(2024, 1, 1, 8),
    )
    clock = AlarmClock(user.id, user.full_name, backend, notifier=notifier, feedback=FakeFeedback(), reminder=FakeReminder())
    clock.load()

    assert clock.tick(utc(2024, 1, 1, 8, 10)) == AlarmState.IDLE
    assert notifier.alerts == []


def test_manual_activate_gives_full_window(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])

    countdown = clock.activate(utc(2024, 1, 1, 7))

    assert clock.state == AlarmState.ACTIVE
    assert countdown.deadline == utc(2024, 1, 1, 7, 3)
    assert countdown.occurrence is None
    clock.dismiss(utc(2024, 1, 1, 7, 1))

    # The real 08:00 occurrence is still ahead
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 8)
    assert clock.state == AlarmState.IDLE
    assert clock.tick(utc(2024, 1, 1, 8)) == AlarmState.ACTIVE
    assert clock.countdown.occurrence == utc(2024, 1, 1, 8)
    assert notifier.alerts == []


def test_manual_escalation_before_occurrence_keeps_schedule(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])

    clock.activate(utc(2024, 1, 1, 7))
    clock.tick(utc(2024, 1, 1, 7, 3))

    assert clock.state == AlarmState.IDLE
    assert notifier.alerts[0].occurrence == utc(2024, 1, 1, 7)
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 8)


def test_manual_window_covering_occurrence_advances(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])

    clock.activate(utc(2024, 1, 1, 7, 59))
    clock.tick(utc(2024, 1, 1, 8, 2))

    assert clock.state == AlarmState.IDLE
    assert len(notifier.alerts) == 1
    assert notifier.alerts[0].occurrence == utc(2024, 1, 1, 8)
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)


def test_configure_recomputes_next_alarm(make_clock, memory_store, seeded):
    _, _, config = seeded
    clock = make_clock(seeded[0])

    updated = clock.configure("21:30", 24, ringtone="vibrate-only", now=utc(2024, 1, 1, 7))

    assert updated.next_alarm == utc(2024, 1, 1, 21, 30)
    stored = memory_store.get_alarm_config(config.id)
    assert (stored.time, stored.repeat_interval, stored.ringtone) == ("21:30", 24, "vibrate-only")


def test_configure_refused_while_ringing(make_clock, seeded):
    clock = make_clock(seeded[0])
    clock.tick(utc(2024, 1, 1, 8))
    with pytest.raises(PreconditionError):
        clock.configure("09:00", 12)


def test_inactive_alarm_never_rings(make_clock, memory_store, notifier, seeded):
    _, _, config = seeded
    memory_store.update_alarm_config(config.id, {"is_active": False})
    clock = make_clock(seeded[0])
    assert clock.tick(utc(2024, 1, 2)) == AlarmState.IDLE
    assert notifier.alerts == []


def test_teardown_releases_feedback(make_clock, feedback, reminder, seeded):
    clock = make_clock(seeded[0])
    clock.tick(utc(2024, 1, 1, 8))
    clock.teardown()
    assert clock.state == AlarmState.IDLE
    assert clock.countdown is None
    assert feedback.events[-1] == ("stop",)
    assert reminder.cancelled == 1


def test_run_ticks_off_the_event_loop_and_tears_down(backend, notifier, feedback, reminder, memory_store, seeded):
    user, _, config = seeded
    backend_threads = []
    original = backend.get_alarm_config

    def tracking_get_alarm_config(user_id):
        backend_threads.append(threading.get_ident())
        return original(user_id)

    backend.get_alarm_config = tracking_get_alarm_config
    clock = AlarmClock(
        user.id,
        user.full_name,
        backend,
        notifier=notifier,
        feedback=feedback,
        reminder=reminder,
        clock=lambda: utc(2024, 1, 1, 8, 1),
    )

    async def scenario():
        stop = asyncio.Event()
        task = asyncio.create_task(clock.run(poll_seconds=0.01, stop_event=stop))
        await asyncio.sleep(0.1)
        assert clock.state == AlarmState.ACTIVE
        stop.set()
        await task
        return threading.get_ident()

    loop_thread = asyncio.run(scenario())

    assert backend_threads and loop_thread not in backend_threads
    assert clock.state == AlarmState.IDLE
    assert clock.countdown is None
    assert feedback.events == [("start", "tone-1"), ("stop",)]
    assert reminder.cancelled == 1
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 8)
    assert notifier.alerts == []
