"""Escalation reconciler tests."""

from dataclasses import replace

from app.services.alarm_service import advance_alarm, set_emergency_contact
from app.services.escalation_service import EmergencyDispatcher
from app.services.reconciler import (
    BLOCKED,
    ESCALATED,
    FAILED,
    INVALID,
    PENDING,
    RACED,
    EscalationReconciler,
)
from helpers import RecordingNotifier, utc


def _reconciler(store, notifier=None):
    dispatcher = EmergencyDispatcher(store, notifier or RecordingNotifier())
    return EscalationReconciler(store, dispatcher)


def test_missed_alarm_escalates_and_advances(memory_store, notifier, seeded):
    _, _, config = seeded
    reconciler = _reconciler(memory_store, notifier)

    report = reconciler.run_once(now=utc(2024, 1, 1, 8, 3, 1))

    assert report.escalated == 1
    assert report.notified == 1
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)
    assert len(notifier.alerts) == 1
    assert notifier.alerts[0].occurrence == utc(2024, 1, 1, 8)


def test_within_tolerance_is_untouched(memory_store, notifier, seeded):
    _, _, config = seeded
    report = _reconciler(memory_store, notifier).run_once(now=utc(2024, 1, 1, 8, 3))

    assert report.outcomes[0].action == PENDING
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 8)
    assert notifier.alerts == []


def test_second_pass_does_not_escalate_again(memory_store, notifier, seeded):
    reconciler = _reconciler(memory_store, notifier)
    reconciler.run_once(now=utc(2024, 1, 1, 8, 5))
    report = reconciler.run_once(now=utc(2024, 1, 1, 8, 10))

    assert report.escalated == 0
    assert len(notifier.alerts) == 1


def test_second_pass_escalates_when_new_occurrence_also_missed(memory_store, notifier, seeded):
    _, _, config = seeded
    reconciler = _reconciler(memory_store, notifier)
    reconciler.run_once(now=utc(2024, 1, 2, 9))
    report = reconciler.run_once(now=utc(2024, 1, 2, 9))

    assert report.escalated == 1
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 2, 8)
    assert len(notifier.alerts) == 2


def test_inactive_alarm_is_never_escalated(memory_store, notifier, seeded):
    _, _, config = seeded
    memory_store.update_alarm_config(config.id, {"is_active": False})

    report = _reconciler(memory_store, notifier).run_once(now=utc(2024, 1, 5))

    assert report.checked == 0
    assert notifier.alerts == []


def test_user_without_contact_is_blocked(memory_store, notifier):
    user = memory_store.create_user(email="solo@test.com", password="h", full_name="Solo User")
    config = memory_store.create_alarm_config(
        user_id=user.id, time="08:00", repeat_interval=12, ringtone="tone-1",
        is_active=True, next_alarm=utc(2024, 1, 1, 8),
    )

    report = _reconciler(memory_store, notifier).run_once(now=utc(2024, 1, 1, 9))

    assert report.outcomes[0].action == BLOCKED
    assert report.outcomes[0].next_alarm == utc(2024, 1, 1, 20)
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)
    assert notifier.alerts == []


def test_contact_added_late_gets_no_backlog(memory_store, notifier):
    user = memory_store.create_user(email="solo@test.com", password="h", full_name="Solo User")
    config = memory_store.create_alarm_config(
        user_id=user.id, time="08:00", repeat_interval=12, ringtone="tone-1",
        is_active=True, next_alarm=utc(2024, 1, 1, 8),
    )
    reconciler = _reconciler(memory_store, notifier)

    # Three days with nobody to notify
    report = reconciler.run_once(now=utc(2024, 1, 4, 9))
    assert report.outcomes[0].action == BLOCKED
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 4, 20)

    set_emergency_contact(memory_store, user.id, "Maria", "+5511998765432", now=utc(2024, 1, 4, 9, 1))
    for minute in range(2, 12, 2):
        reconciler.run_once(now=utc(2024, 1, 4, 9, minute))

    assert notifier.alerts == []
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 4, 20)


def test_contact_added_late_skips_stale_alarm_immediately(memory_store, notifier):
    user = memory_store.create_user(email="solo@test.com", password="h", full_name="Solo User")
    config = memory_store.create_alarm_config(
        user_id=user.id, time="08:00", repeat_interval=12, ringtone="tone-1",
        is_active=True, next_alarm=utc(2024, 1, 1, 8),
    )

    set_emergency_contact(memory_store, user.id, "Maria", "+5511998765432", now=utc(2024, 1, 4, 9))
    report = _reconciler(memory_store, notifier).run_once(now=utc(2024, 1, 4, 9, 2))

    assert report.outcomes[0].action == PENDING
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 4, 20)
    assert notifier.alerts == []


class _ListStore:
    """Store wrapper that serves a fixed (possibly malformed) list of configs."""

    def __init__(self, inner, configs):
        self._inner = inner
        self._configs = configs

    def list_active_alarm_configs(self):
        return self._configs

    def __getattr__(self, name):
        return getattr(self._inner, name)


def test_malformed_records_are_skipped(memory_store, notifier, seeded):
    _, _, config = seeded
    bad_time = replace(config, id=101, next_alarm="not a date")
    bad_interval = replace(config, id=102, repeat_interval=None)
    store = _ListStore(memory_store, [bad_time, bad_interval, config])

    report = _reconciler(store, notifier).run_once(now=utc(2024, 1, 1, 9))

    assert [o.action for o in report.outcomes] == [INVALID, INVALID, ESCALATED]
    assert len(notifier.alerts) == 1


def test_notifier_failure_still_counts_as_escalated(memory_store, seeded):
    _, _, config = seeded
    failing = RecordingNotifier(success=False)

    report = _reconciler(memory_store, failing).run_once(now=utc(2024, 1, 1, 9))

    outcome = report.outcomes[0]
    assert outcome.action == ESCALATED
    assert outcome.notified is False
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)


def test_one_failing_record_does_not_stop_the_pass(memory_store, notifier, seeded):
    _, _, config = seeded
    other_user = memory_store.create_user(email="b@test.com", password="h", full_name="Bruno Lima")
    memory_store.create_emergency_contact(other_user.id, "Carla", "+5511955554444")
    other = memory_store.create_alarm_config(
        user_id=other_user.id, time="08:00", repeat_interval=24, ringtone="tone-2",
        is_active=True, next_alarm=utc(2024, 1, 1, 8),
    )

    class FlakyStore(_ListStore):
        def advance_next_alarm(self, config_id, expected, new):
            if config_id == config.id:
                raise RuntimeError("disk full")
            return self._inner.advance_next_alarm(config_id, expected, new)

        def get_emergency_contact_by_user_id(self, user_id):
            if user_id == other_user.id:
                raise RuntimeError("lookup failed")
            return self._inner.get_emergency_contact_by_user_id(user_id)

    store = FlakyStore(memory_store, memory_store.list_active_alarm_configs())
    report = _reconciler(store, notifier).run_once(now=utc(2024, 1, 1, 9))

    actions = {o.config_id: o.action for o in report.outcomes}
    # Persist failure still notifies; the lookup failure is isolated
    assert actions == {config.id: ESCALATED, other.id: FAILED}
    assert len(notifier.alerts) == 1


def test_lost_race_does_not_notify(memory_store, notifier, seeded):
    _, _, config = seeded
    stale = memory_store.list_active_alarm_configs()
    # The client advanced the alarm after the pass loaded it
    memory_store.advance_next_alarm(config.id, utc(2024, 1, 1, 8), utc(2024, 1, 1, 20))

    report = _reconciler(_ListStore(memory_store, stale), notifier).run_once(now=utc(2024, 1, 1, 9))

    assert report.outcomes[0].action == RACED
    assert notifier.alerts == []


def test_load_failure_is_reported(memory_store, notifier):
    class DownStore(_ListStore):
        def list_active_alarm_configs(self):
            raise RuntimeError("db down")

    report = _reconciler(DownStore(memory_store, []), notifier).run_once(now=utc(2024, 1, 1, 9))
    assert report.load_error == "db down"
    assert report.checked == 0


def test_overlapping_pass_is_skipped(memory_store, notifier, seeded):
    reconciler = _reconciler(memory_store, notifier)
    reconciler._run_lock.acquire()
    try:
        assert reconciler.run_once(now=utc(2024, 1, 1, 9)) is None
    finally:
        reconciler._run_lock.release()
    assert notifier.alerts == []


def test_sql_store_example(sql_store, notifier):
    user = sql_store.create_user(email="ana@test.com", password="h", full_name="Ana Souza")
    sql_store.create_emergency_contact(user.id, "Maria", "+5511998765432")
    config = sql_store.create_alarm_config(
        user_id=user.id, time="08:00", repeat_interval=12, ringtone="tone-1",
        is_active=True, next_alarm=utc(2024, 1, 1, 8),
    )

    report = _reconciler(sql_store, notifier).run_once(now=utc(2024, 1, 1, 8, 3, 1))

    assert report.escalated == 1
    assert sql_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)


def test_client_and_worker_dispatchers_send_once(memory_store, seeded):
    user, _, config = seeded
    sent = RecordingNotifier()
    client_side = EmergencyDispatcher(memory_store, sent)

    # The client escalates at the deadline but has not advanced yet
    client_side.dispatch(user.id, occurrence=utc(2024, 1, 1, 8))
    report = _reconciler(memory_store, sent).run_once(now=utc(2024, 1, 1, 8, 3, 1))
    _, advanced = advance_alarm(memory_store, config.id, utc(2024, 1, 1, 8))

    assert report.outcomes[0].action == ESCALATED
    assert not advanced
    assert len(sent.alerts) == 1
    assert memory_store.get_alarm_config(config.id).next_alarm == utc(2024, 1, 1, 20)
