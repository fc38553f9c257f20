"""Tests for schedule manager."""

from datetime import timedelta

import pytest

from cadence.errors import NotFoundError, StoreError, ValidationError
from cadence.scheduling.recurrence import BackoffPolicy
from cadence.scheduling.schedule_service import ScheduleManager
from cadence.scheduling.types import DispatchFailure, DispatchSuccess


@pytest.fixture
def manager(db, clock):
    return ScheduleManager(db.schedule_repo, clock=clock)


def _request(**overrides):
    request = {
        "workflow_id": "wf-1",
        "name": "Daily digest",
        "schedule_type": "report",
        "frequency": "daily",
        "inputs": {"company": "ACME"},
        "notification_emails": ["a@x.com"],
    }
    request.update(overrides)
    return request


def _make_due(manager, schedule, clock):
    return manager._repo.update(schedule.id, next_run_at=clock.now() - timedelta(days=1))


class TestScheduleCreate:
    def test_creates_schedule(self, manager, clock):
        schedule = manager.create(_request())
        assert schedule.id.startswith("sched-")
        stored = manager.get(schedule.id)
        assert stored.is_active is True
        assert stored.run_count == 0
        assert stored.success_count == 0
        assert stored.next_run_at == clock.now() + timedelta(hours=24)
        assert stored.inputs.data == {"company": "ACME"}

    def test_initial_next_run_uses_frequency(self, manager, clock):
        schedule = manager.create(_request(frequency="hourly"))
        assert schedule.next_run_at == clock.now() + timedelta(hours=1)

    def test_missing_workflow_id(self, manager):
        with pytest.raises(ValidationError, match="workflow_id"):
            manager.create(_request(workflow_id=None))
        assert manager.get_all() == []

    def test_missing_name(self, manager):
        with pytest.raises(ValidationError, match="name"):
            manager.create(_request(name=""))

    def test_invalid_email(self, manager):
        with pytest.raises(ValidationError, match="not-an-email"):
            manager.create(_request(notification_emails=["not-an-email"]))

    def test_emails_deduplicated_in_order(self, manager):
        schedule = manager.create(_request(notification_emails=["b@x.com", "a@x.com", "b@x.com"]))
        assert schedule.notification_emails == ["b@x.com", "a@x.com"]

    def test_wrong_field_type_is_validation_error(self, manager):
        with pytest.raises(ValidationError) as exc:
            manager.create(_request(notification_emails="a@x.com"))
        assert exc.value.field == "notification_emails"
        assert manager.get_all() == []


class TestScheduleLifecycle:
    def test_deactivate_and_activate(self, manager):
        schedule = manager.create(_request())
        assert manager.deactivate(schedule.id).is_active is False
        assert manager.get_active() == []
        assert manager.activate(schedule.id).is_active is True

    def test_get_nonexistent_raises(self, manager):
        with pytest.raises(NotFoundError):
            manager.get("nonexistent")
        assert manager.get_by_id("nonexistent") is None

    def test_deactivate_nonexistent_raises(self, manager):
        with pytest.raises(NotFoundError):
            manager.deactivate("nonexistent")


class TestSelectDue:
    def test_due_schedule_selected(self, manager, clock):
        schedule = _make_due(manager, manager.create(_request()), clock)
        assert [s.id for s in manager.select_due(clock.now())] == [schedule.id]

    def test_exactly_now_is_due(self, manager, clock):
        schedule = manager.create(_request())
        manager._repo.update(schedule.id, next_run_at=clock.now())
        assert len(manager.select_due(clock.now())) == 1

    def test_future_not_due(self, manager, clock):
        manager.create(_request())
        assert manager.select_due(clock.now()) == []

    def test_inactive_not_due(self, manager, clock):
        schedule = _make_due(manager, manager.create(_request()), clock)
        manager.deactivate(schedule.id)
        assert manager.select_due(clock.now()) == []

    def test_claimed_skipped_until_lease_expires(self, manager, clock):
        schedule = _make_due(manager, manager.create(_request()), clock)
        assert manager.claim(schedule, clock.now(), timedelta(minutes=15)) is True
        assert manager.select_due(clock.now()) == []
        assert len(manager.select_due(clock.now(), skip_claimed=False)) == 1
        assert len(manager.select_due(clock.now() + timedelta(minutes=16))) == 1


class TestRecordOutcome:
    def test_success_transition(self, manager, clock):
        schedule = _make_due(manager, manager.create(_request(frequency="weekly")), clock)
        now = clock.now()
        updated = manager.record_outcome(schedule, DispatchSuccess(result={"rows": 3}), now)
        assert updated.last_run_at == now
        assert updated.next_run_at == now + timedelta(days=7)
        assert updated.run_count == schedule.run_count + 1
        assert updated.success_count == schedule.success_count + 1
        assert updated.success_count <= updated.run_count

    def test_failure_transition(self, manager, clock):
        schedule = _make_due(manager, manager.create(_request()), clock)
        updated = manager.record_outcome(schedule, DispatchFailure(error="engine down"), clock.now())
        assert updated.run_count == 1
        assert updated.success_count == 0
        assert updated.next_run_at == schedule.next_run_at
        assert updated.last_run_at is None
        assert manager.select_due(clock.now())[0].id == schedule.id

    def test_outcomes_logged(self, manager, clock):
        schedule = _make_due(manager, manager.create(_request()), clock)
        manager.record_outcome(schedule, DispatchFailure(error="boom", kind="exception", duration_ms=5), clock.now())
        manager.record_outcome(schedule, DispatchSuccess(result="done"), clock.now())
        runs = manager.get_runs(schedule.id)
        assert [r.status for r in runs] == ["success", "failed"]
        assert runs[0].result == "done"
        assert runs[1].error_kind == "exception"

    def test_run_log_failure_does_not_undo_outcome(self, manager, clock, monkeypatch):
        schedule = _make_due(manager, manager.create(_request()), clock)

        def log_run(run):
            raise StoreError("run log table locked")

        monkeypatch.setattr(manager._repo, "log_run", log_run)

        succeeded = manager.record_outcome(schedule, DispatchSuccess(result="done"), clock.now())
        assert succeeded.success_count == 1
        assert succeeded.next_run_at == clock.now() + timedelta(hours=24)

        failed = manager.record_outcome(succeeded, DispatchFailure(error="engine down"), clock.now())
        assert failed.run_count == 2
        assert failed.last_error == "engine down"


class TestBackoff:
    def test_failure_pushes_next_run(self, db, clock):
        manager = ScheduleManager(db.schedule_repo, clock=clock, backoff=BackoffPolicy(base_delay=timedelta(minutes=5)))
        schedule = _make_due(manager, manager.create(_request()), clock)
        updated = manager.record_outcome(schedule, DispatchFailure(error="x"), clock.now())
        assert updated.next_run_at == clock.now() + timedelta(minutes=5)

        updated = manager.record_outcome(updated, DispatchFailure(error="x"), clock.now())
        assert updated.next_run_at == clock.now() + timedelta(minutes=10)

    def test_deactivates_at_threshold(self, db, clock):
        policy = BackoffPolicy(base_delay=timedelta(minutes=1), max_consecutive_failures=2)
        manager = ScheduleManager(db.schedule_repo, clock=clock, backoff=policy)
        schedule = _make_due(manager, manager.create(_request()), clock)
        schedule = manager.record_outcome(schedule, DispatchFailure(error="x"), clock.now())
        assert schedule.is_active is True
        schedule = manager.record_outcome(schedule, DispatchFailure(error="x"), clock.now())
        assert schedule.is_active is False
        assert schedule.run_count == 2
