"""Database tables for the alerting service.

`Device`, `Reading` and `Alert` are SQLModel tables. Nested documents
(owner record, notification tracking, context snapshot, escalation rules)
live in JSON columns and are always reassigned as a whole, never mutated in
place, so SQLAlchemy sees the change.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from alerting_service.models.schemas import (
    AlertResponse,
    AlertSeverity,
    AlertStatus,
    AlertType,
    ReadingResponse,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands timestamps back naive; treat those as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _timestamp(nullable: bool = True, index: bool = False) -> Column:
    return Column(DateTime(timezone=True), nullable=nullable, index=index)


# --- Table 1: Devices ---
class Device(SQLModel, table=True):
    """Registered wearable plus the owner record alerts snapshot from."""

    __tablename__ = "devices"

    device_id: str = Field(primary_key=True)
    device_name: str = Field(nullable=False)
    device_type: str = Field(default="combined")

    # User room for real-time pushes
    user_id: Optional[str] = Field(default=None, index=True)

    owner: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    # Per-device threshold overrides (None -> system default)
    heart_rate_min: Optional[float] = Field(default=None)
    heart_rate_max: Optional[float] = Field(default=None)
    spo2_min: Optional[float] = Field(default=None)
    temperature_min: Optional[float] = Field(default=None)
    temperature_max: Optional[float] = Field(default=None)
    battery_min: Optional[float] = Field(default=None)

    # Status telemetry, refreshed on every ingestion. last_seen is the
    # server receive time; online status is derived from it.
    last_seen: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    battery_level: Optional[float] = Field(default=None)
    signal_strength: Optional[float] = Field(default=None)
    connection_type: Optional[str] = Field(default=None)
    firmware_version: Optional[str] = Field(default=None)
    uptime: Optional[int] = Field(default=None)
    location: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(nullable=False))


# --- Table 2: Readings ---
class Reading(SQLModel, table=True):
    """One sensor sample. Written once, never edited."""

    __tablename__ = "readings"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    device_id: str = Field(index=True, nullable=False)
    device_name: str = Field(default="Unknown Device")
    timestamp: datetime = Field(default_factory=utcnow, sa_column=_timestamp(False, True))

    # Flattened values used by queries and analytics
    heart_rate: Optional[float] = Field(default=None)
    spo2: Optional[float] = Field(default=None)
    body_temperature: Optional[float] = Field(default=None)
    fall_detected: bool = Field(default=False, index=True)
    battery_level: Optional[float] = Field(default=None)
    signal_strength: Optional[float] = Field(default=None)
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)

    # Full validated payload groups, camelCase keys as posted
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(False, True))


# --- Table 3: Alerts ---
class Alert(SQLModel, table=True):
    """Classified emergency condition derived from one Reading."""

    __tablename__ = "alerts"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    device_id: str = Field(index=True, nullable=False)
    device_name: str = Field(nullable=False)
    user_id: Optional[str] = Field(default=None)
    reading_id: Optional[uuid.UUID] = Field(default=None)

    # Classification
    type: AlertType = Field(index=True)
    severity: AlertSeverity = Field(default=AlertSeverity.WARNING, index=True)
    title: str = Field(nullable=False)
    message: str = Field(nullable=False)

    # Trigger data
    value: Optional[float] = Field(default=None)
    threshold: Dict[str, float] = Field(default_factory=dict, sa_column=Column(JSON))
    unit: str = Field(default="")
    location: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    status: AlertStatus = Field(default=AlertStatus.ACTIVE, index=True)

    # Response
    acknowledged_by: Optional[str] = Field(default=None)
    acknowledged_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    resolved_by: Optional[str] = Field(default=None)
    resolved_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    response_time: Optional[int] = Field(default=None)  # seconds to acknowledgement
    notes: Optional[str] = Field(default=None)

    # Delivery tracking (NotificationState dump)
    notifications: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Patient snapshot (ContextSnapshot dump), copied at creation
    context: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    technical: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # Escalation
    escalation_level: int = Field(default=1)
    escalated_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    max_escalation_level: int = Field(default=3)
    escalation_rules: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(False, True))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=_timestamp(nullable=False))


# --- Response mapping ---
def reading_response(reading: Reading) -> ReadingResponse:
    return ReadingResponse(
        id=reading.id,
        device_id=reading.device_id,
        device_name=reading.device_name,
        timestamp=as_utc(reading.timestamp),
        **reading.payload,
    )


def alert_response(alert: Alert) -> AlertResponse:
    return AlertResponse.model_validate(alert.model_dump())
