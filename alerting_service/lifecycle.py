"""
Alert Lifecycle Manager.

State machine:
    active --acknowledge--> acknowledged
    active | acknowledged --resolve--> resolved
    active | acknowledged --mark_false_positive--> false_positive

The transition functions work on an Alert value and a clock; the `*_alert`
wrappers load and save through the repository port. Escalation is an
on-demand predicate plus `run_escalation_scan`; nothing here schedules
itself.
"""

import math
import uuid
from datetime import datetime
from typing import List, Optional

from alerting_service.errors import NotFoundError, StateConflictError
from alerting_service.models.models import Alert, as_utc, utcnow
from alerting_service.models.schemas import AlertStatus
from alerting_service.repository import AlertFilter, AlertRepository

FALSE_POSITIVE_PREFIX = "Marked as false positive: "

OPEN_STATUSES = (AlertStatus.ACTIVE, AlertStatus.ACKNOWLEDGED)


def _append_notes(existing: Optional[str], notes: Optional[str]) -> Optional[str]:
    if not notes:
        return existing
    if not existing:
        return notes
    return f"{existing}\n{notes}"


def _elapsed_seconds(alert: Alert, now: datetime) -> float:
    return (as_utc(now) - as_utc(alert.created_at)).total_seconds()


def age_in_minutes(alert: Alert, now: Optional[datetime] = None) -> int:
    return math.floor(_elapsed_seconds(alert, now or utcnow()) / 60)


# =====================================================
# Transitions
# =====================================================
def acknowledge(
    alert: Alert, actor: str, notes: Optional[str] = None, now: Optional[datetime] = None
) -> Alert:
    if alert.status != AlertStatus.ACTIVE:
        raise StateConflictError(f"Alert is not in active status (status={alert.status.value})")
    now = now or utcnow()
    alert.status = AlertStatus.ACKNOWLEDGED
    alert.acknowledged_by = actor
    alert.acknowledged_at = now
    alert.response_time = math.floor(_elapsed_seconds(alert, now))
    alert.notes = _append_notes(alert.notes, notes)
    return alert


def resolve(
    alert: Alert, actor: str, notes: Optional[str] = None, now: Optional[datetime] = None
) -> Alert:
    if alert.status not in OPEN_STATUSES:
        raise StateConflictError(f"Alert is already closed (status={alert.status.value})")
    alert.status = AlertStatus.RESOLVED
    alert.resolved_by = actor
    alert.resolved_at = now or utcnow()
    alert.notes = _append_notes(alert.notes, notes)
    return alert


def mark_false_positive(
    alert: Alert, actor: str, notes: Optional[str] = None, now: Optional[datetime] = None
) -> Alert:
    if alert.status not in OPEN_STATUSES:
        raise StateConflictError(f"Alert is already closed (status={alert.status.value})")
    alert.status = AlertStatus.FALSE_POSITIVE
    alert.resolved_by = actor
    alert.resolved_at = now or utcnow()
    alert.notes = _append_notes(alert.notes, FALSE_POSITIVE_PREFIX + (notes or ""))
    return alert


def escalate(alert: Alert, now: Optional[datetime] = None) -> bool:
    """Raise the escalation level by one. Returns False when already at max."""
    if alert.status != AlertStatus.ACTIVE:
        raise StateConflictError(f"Only active alerts escalate (status={alert.status.value})")
    if alert.escalation_level >= alert.max_escalation_level:
        return False
    alert.escalation_level += 1
    alert.escalated_at = now or utcnow()
    return True


def needs_escalation(alert: Alert, now: Optional[datetime] = None) -> bool:
    """
    True when the alert is still active, a rule exists for the next level
    and the alert is at least that rule's threshold (minutes) old.
    """
    if alert.status != AlertStatus.ACTIVE:
        return False
    next_level = alert.escalation_level + 1
    rule = next((r for r in alert.escalation_rules if r.get("level") == next_level), None)
    if rule is None:
        return False
    return age_in_minutes(alert, now) >= rule["time_threshold"]


# =====================================================
# Repository-backed operations
# =====================================================
def _load(repository: AlertRepository, alert_id: uuid.UUID) -> Alert:
    alert = repository.get_alert(alert_id)
    if alert is None:
        raise NotFoundError("Alert not found")
    return alert


def acknowledge_alert(
    repository: AlertRepository,
    alert_id: uuid.UUID,
    actor: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Alert:
    alert = _load(repository, alert_id)
    return repository.save_alert(acknowledge(alert, actor, notes, now))


def resolve_alert(
    repository: AlertRepository,
    alert_id: uuid.UUID,
    actor: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Alert:
    alert = _load(repository, alert_id)
    return repository.save_alert(resolve(alert, actor, notes, now))


def mark_false_positive_alert(
    repository: AlertRepository,
    alert_id: uuid.UUID,
    actor: str,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Alert:
    alert = _load(repository, alert_id)
    return repository.save_alert(mark_false_positive(alert, actor, notes, now))


def escalate_alert(
    repository: AlertRepository, alert_id: uuid.UUID, now: Optional[datetime] = None
) -> Alert:
    alert = _load(repository, alert_id)
    if escalate(alert, now):
        return repository.save_alert(alert)
    return alert


def alerts_needing_escalation(
    repository: AlertRepository, now: Optional[datetime] = None
) -> List[Alert]:
    active = repository.alerts_matching(AlertFilter(status=AlertStatus.ACTIVE))
    return [alert for alert in active if needs_escalation(alert, now)]


def run_escalation_scan(
    repository: AlertRepository, now: Optional[datetime] = None
) -> List[Alert]:
    """Escalate every active alert that is due. Meant to be polled externally."""
    now = now or utcnow()
    escalated = []
    for alert in alerts_needing_escalation(repository, now):
        if escalate(alert, now):
            escalated.append(repository.save_alert(alert))
    return escalated
