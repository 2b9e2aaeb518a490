"""Alert Recorder: turns a Classification into a persisted, active Alert."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from alerting_service.models.models import Alert, Device, Reading, as_utc, utcnow
from alerting_service.models.schemas import (
    AlertSeverity,
    Classification,
    ContextSnapshot,
    DeviceOwner,
    DoctorContact,
    EscalationRule,
    NotificationState,
)
from alerting_service.repository import AlertRepository

# (level, minutes after creation) per severity; max level is the last level
ESCALATION_POLICIES: Dict[AlertSeverity, Tuple[Tuple[int, int], ...]] = {
    AlertSeverity.EMERGENCY: ((1, 0), (2, 2), (3, 5)),
    AlertSeverity.CRITICAL: ((1, 0), (2, 5), (3, 15)),
    AlertSeverity.WARNING: ((1, 0), (2, 15), (3, 60)),
}
DEFAULT_ESCALATION_POLICY = ((1, 0), (2, 60))

_LOCATION_KEYS = ("latitude", "longitude", "address", "accuracy")


def escalation_policy(severity: AlertSeverity) -> Tuple[List[EscalationRule], int]:
    steps = ESCALATION_POLICIES.get(severity, DEFAULT_ESCALATION_POLICY)
    rules = [EscalationRule(level=level, time_threshold=minutes) for level, minutes in steps]
    return rules, steps[-1][0]


def context_snapshot(device: Device) -> ContextSnapshot:
    """
    Copy of the owner record at alert time. Later edits to the device owner
    must not show up on historical alerts, so nothing here is shared.
    """
    owner = DeviceOwner.model_validate(device.owner)
    doctor = None
    if owner.hospital_contact is not None:
        doctor = DoctorContact(
            name=owner.hospital_contact.name,
            phone=owner.hospital_contact.phone,
            hospital=owner.hospital_contact.address,
        )
    return ContextSnapshot(
        patient_name=owner.full_name,
        patient_age=owner.age,
        emergency_contact=owner.emergency_contact,
        medical_history=list(owner.medical_conditions),
        current_medications=[med.name for med in owner.medications],
        doctor_contact=doctor,
    )


def _location_snapshot(reading: Reading) -> Optional[Dict[str, Any]]:
    location = reading.payload.get("location")
    if not location:
        return None
    snapshot = {key: location.get(key) for key in _LOCATION_KEYS if location.get(key) is not None}
    return snapshot or None


def _technical_snapshot(device: Device) -> Dict[str, Any]:
    last_seen = as_utc(device.last_seen)
    return {
        "triggered_by": "threshold_evaluator",
        "device_status": {
            "battery_level": device.battery_level,
            "signal_strength": device.signal_strength,
            "last_seen": last_seen.isoformat() if last_seen else None,
        },
    }


def build_alert(
    classification: Classification,
    reading: Reading,
    device: Device,
    now: Optional[datetime] = None,
) -> Alert:
    now = now or utcnow()
    rules, max_level = escalation_policy(classification.severity)
    return Alert(
        device_id=reading.device_id,
        device_name=device.device_name,
        user_id=device.user_id,
        reading_id=reading.id,
        type=classification.type,
        severity=classification.severity,
        title=classification.type.value.replace("_", " ").upper(),
        message=classification.message,
        value=classification.value,
        threshold=dict(classification.threshold),
        unit=classification.unit,
        location=_location_snapshot(reading),
        notifications=NotificationState().model_dump(mode="json"),
        context=context_snapshot(device).model_dump(mode="json"),
        technical=_technical_snapshot(device),
        escalation_level=1,
        max_escalation_level=max_level,
        escalation_rules=[rule.model_dump(mode="json") for rule in rules],
        created_at=now,
        updated_at=now,
    )


def record(
    classification: Classification,
    reading: Reading,
    device: Device,
    repository: AlertRepository,
    now: Optional[datetime] = None,
) -> Alert:
    """
    Persist one classification as an active alert.

    A storage failure surfaces as PersistenceError; there is no retry.
    """
    return repository.add_alert(build_alert(classification, reading, device, now))
