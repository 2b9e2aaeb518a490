import uuid
from datetime import datetime, timedelta, timezone

import pytest

from alerting_service import lifecycle
from alerting_service.errors import NotFoundError, StateConflictError
from alerting_service.models.models import Alert
from alerting_service.models.schemas import AlertSeverity, AlertStatus, AlertType
from alerting_service.recorder import escalation_policy

CREATED = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


def make_alert(severity=AlertSeverity.CRITICAL, status=AlertStatus.ACTIVE, **extra):
    rules, max_level = escalation_policy(severity)
    return Alert(
        device_id="LL-001",
        device_name="Wristband A",
        type=AlertType.SPO2_LOW,
        severity=severity,
        title="SPO2 LOW",
        message="Blood oxygen level 85% is below 95%",
        status=status,
        escalation_level=1,
        max_escalation_level=max_level,
        escalation_rules=[r.model_dump(mode="json") for r in rules],
        created_at=CREATED,
        updated_at=CREATED,
        **extra,
    )


class TestAcknowledge:
    def test_sets_response_time_in_whole_seconds(self):
        alert = lifecycle.acknowledge(
            make_alert(), "nurse-1", "on my way", now=CREATED + timedelta(seconds=90.7)
        )
        assert alert.status == AlertStatus.ACKNOWLEDGED
        assert alert.acknowledged_by == "nurse-1"
        assert alert.acknowledged_at == CREATED + timedelta(seconds=90.7)
        assert alert.response_time == 90
        assert alert.notes == "on my way"

    def test_second_acknowledge_conflicts(self):
        alert = lifecycle.acknowledge(make_alert(), "nurse-1", now=CREATED + timedelta(minutes=1))
        with pytest.raises(StateConflictError):
            lifecycle.acknowledge(alert, "nurse-2", now=CREATED + timedelta(minutes=2))
        assert alert.acknowledged_by == "nurse-1"

    def test_resolved_alert_cannot_be_acknowledged(self):
        with pytest.raises(StateConflictError):
            lifecycle.acknowledge(make_alert(status=AlertStatus.RESOLVED), "nurse-1")


class TestResolve:
    @pytest.mark.parametrize("status", [AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED])
    def test_resolves_from_open_states(self, status):
        now = CREATED + timedelta(minutes=10)
        alert = lifecycle.resolve(make_alert(status=status), "dr-who", "stable", now=now)
        assert alert.status == AlertStatus.RESOLVED
        assert alert.resolved_by == "dr-who"
        assert alert.resolved_at == now

    def test_resolved_timestamp_is_immutable(self):
        first = CREATED + timedelta(minutes=10)
        alert = lifecycle.resolve(make_alert(), "dr-who", now=first)
        with pytest.raises(StateConflictError):
            lifecycle.resolve(alert, "dr-no", now=first + timedelta(minutes=5))
        assert alert.resolved_at == first
        assert alert.resolved_by == "dr-who"

    def test_notes_are_appended(self):
        alert = lifecycle.acknowledge(make_alert(), "nurse-1", "checking")
        alert = lifecycle.resolve(alert, "nurse-1", "all good")
        assert alert.notes == "checking\nall good"


class TestFalsePositive:
    def test_prefix_is_added(self):
        alert = lifecycle.mark_false_positive(make_alert(), "nurse-1", "loose strap")
        assert alert.status == AlertStatus.FALSE_POSITIVE
        assert alert.notes == "Marked as false positive: loose strap"
        assert alert.resolved_by == "nurse-1"

    def test_closed_alert_conflicts(self):
        with pytest.raises(StateConflictError):
            lifecycle.mark_false_positive(make_alert(status=AlertStatus.FALSE_POSITIVE), "nurse-1")


class TestEscalation:
    def test_escalate_increments_until_max(self):
        alert = make_alert()
        now = CREATED + timedelta(minutes=20)
        assert lifecycle.escalate(alert, now) is True
        assert lifecycle.escalate(alert, now) is True
        assert alert.escalation_level == 3
        assert lifecycle.escalate(alert, now) is False
        assert alert.escalation_level == 3
        assert alert.escalated_at == now

    def test_escalate_requires_active(self):
        with pytest.raises(StateConflictError):
            lifecycle.escalate(make_alert(status=AlertStatus.ACKNOWLEDGED))

    def test_needs_escalation_after_threshold(self):
        alert = make_alert(AlertSeverity.CRITICAL)
        assert not lifecycle.needs_escalation(alert, CREATED + timedelta(minutes=4, seconds=59))
        assert lifecycle.needs_escalation(alert, CREATED + timedelta(minutes=5))

    def test_needs_escalation_false_when_resolved(self):
        alert = make_alert(status=AlertStatus.RESOLVED)
        assert not lifecycle.needs_escalation(alert, CREATED + timedelta(hours=5))

    def test_needs_escalation_false_at_last_level(self):
        alert = make_alert(AlertSeverity.INFO)
        alert.escalation_level = 2
        assert not lifecycle.needs_escalation(alert, CREATED + timedelta(days=1))


class TestRepositoryOperations:
    def test_unknown_alert_is_not_found(self, repository):
        with pytest.raises(NotFoundError):
            lifecycle.acknowledge_alert(repository, uuid.uuid4(), "nurse-1")

    def test_acknowledge_is_persisted(self, repository, session):
        alert = repository.add_alert(make_alert())
        lifecycle.acknowledge_alert(repository, alert.id, "nurse-1", "seen")
        session.expunge_all()

        loaded = repository.get_alert(alert.id)
        assert loaded.status == AlertStatus.ACKNOWLEDGED
        assert loaded.notes == "seen"

    def test_wrong_state_leaves_stored_alert_untouched(self, repository, session):
        alert = repository.add_alert(make_alert(status=AlertStatus.RESOLVED))
        with pytest.raises(StateConflictError):
            lifecycle.acknowledge_alert(repository, alert.id, "nurse-1")
        session.expunge_all()
        assert repository.get_alert(alert.id).acknowledged_by is None

    def test_escalation_scan_only_touches_due_alerts(self, repository):
        due = repository.add_alert(make_alert(AlertSeverity.EMERGENCY))
        not_due = repository.add_alert(make_alert(AlertSeverity.WARNING))
        closed = repository.add_alert(
            make_alert(AlertSeverity.EMERGENCY, status=AlertStatus.RESOLVED)
        )

        escalated = lifecycle.run_escalation_scan(repository, CREATED + timedelta(minutes=3))

        assert [a.id for a in escalated] == [due.id]
        assert repository.get_alert(due.id).escalation_level == 2
        assert repository.get_alert(not_due.id).escalation_level == 1
        assert repository.get_alert(closed.id).escalation_level == 1
