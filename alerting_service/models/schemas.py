from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =====================================================
# Enums
# =====================================================
class AlertType(str, Enum):
    HEART_RATE_ABNORMAL = "heart_rate_abnormal"
    SPO2_LOW = "spo2_low"
    TEMPERATURE_ABNORMAL = "temperature_abnormal"
    FALL_DETECTED = "fall_detected"
    BATTERY_LOW = "battery_low"
    DEVICE_OFFLINE = "device_offline"
    SENSOR_MALFUNCTION = "sensor_malfunction"
    EMERGENCY_BUTTON = "emergency_button"
    LOCATION_OUTSIDE_SAFE_ZONE = "location_outside_safe_zone"
    MEDICATION_REMINDER = "medication_reminder"
    INACTIVITY_DETECTED = "inactivity_detected"
    PANIC_ALERT = "panic_alert"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class AlertStatus(str, Enum):
    ACTIVE = "active"  # Created by ingestion, waiting for an operator
    ACKNOWLEDGED = "acknowledged"  # Seen by an operator
    RESOLVED = "resolved"  # Closed by an operator
    FALSE_POSITIVE = "false_positive"  # Closed, condition was not real


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    WEBHOOK = "webhook"


class SignalQuality(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class ActivityLevel(str, Enum):
    REST = "rest"
    LIGHT = "light"
    MODERATE = "moderate"
    VIGOROUS = "vigorous"


class ConnectionType(str, Enum):
    WIFI = "wifi"
    GSM = "gsm"
    OFFLINE = "offline"


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase on input, emits camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =====================================================
# Ingestion (device payload)
# =====================================================
class HeartRateIn(CamelModel):
    value: Optional[float] = Field(None, ge=0, le=300, description="BPM")
    unit: str = "bpm"
    quality: SignalQuality = SignalQuality.GOOD


class SpO2In(CamelModel):
    value: Optional[float] = Field(None, ge=0, le=100, description="SpO2 %")
    unit: str = "%"
    quality: SignalQuality = SignalQuality.GOOD


class BodyTemperatureIn(CamelModel):
    value: Optional[float] = Field(None, ge=30, le=45, description="Celsius")
    unit: str = "°C"
    sensor_type: str = "DS18B20"


class AccelerometerIn(CamelModel):
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    magnitude: Optional[float] = None


class MotionIn(CamelModel):
    accelerometer: Optional[AccelerometerIn] = None
    fall_detected: bool = False
    activity_level: ActivityLevel = ActivityLevel.REST


class LocationIn(CamelModel):
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    altitude: Optional[float] = None
    accuracy: Optional[float] = Field(None, description="Meters")
    speed: Optional[float] = Field(None, description="km/h")
    heading: Optional[float] = Field(None, description="Degrees")
    address: Optional[str] = None


class DeviceTelemetryIn(CamelModel):
    battery_level: Optional[float] = Field(None, ge=0, le=100, description="Battery %")
    battery_voltage: Optional[float] = None
    signal_strength: Optional[float] = Field(None, description="RSSI")
    connection_type: Optional[ConnectionType] = None
    uptime: Optional[int] = Field(None, description="Seconds")
    free_memory: Optional[int] = Field(None, description="Bytes")


class ReadingMetadataIn(CamelModel):
    firmware_version: Optional[str] = None
    sampling_rate: Optional[float] = None


class ReadingIn(CamelModel):
    """One sensor sample as posted by a device. Every group is optional."""

    device_id: str = Field(..., min_length=1)
    # Server defaults to the receive time when the device does not stamp it
    timestamp: Optional[datetime] = None

    heart_rate: Optional[HeartRateIn] = None
    spo2: Optional[SpO2In] = Field(None, alias="spO2")
    body_temperature: Optional[BodyTemperatureIn] = None
    motion: Optional[MotionIn] = None
    location: Optional[LocationIn] = None
    device: Optional[DeviceTelemetryIn] = None
    metadata: Optional[ReadingMetadataIn] = None

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class IngestionResponse(CamelModel):
    message: str
    data_id: UUID
    alerts_generated: int
    timestamp: datetime


class ReadingResponse(CamelModel):
    id: UUID
    device_id: str
    device_name: str
    timestamp: datetime

    heart_rate: Optional[HeartRateIn] = None
    spo2: Optional[SpO2In] = Field(None, alias="spO2")
    body_temperature: Optional[BodyTemperatureIn] = None
    motion: Optional[MotionIn] = None
    location: Optional[LocationIn] = None
    device: Optional[DeviceTelemetryIn] = None
    metadata: Optional[ReadingMetadataIn] = None


# =====================================================
# Thresholds & Classification
# =====================================================
class AlertThresholds(CamelModel):
    """Effective threshold set. Defaults are the system-wide values."""

    heart_rate_min: float = 50.0
    heart_rate_max: float = 120.0
    spo2_min: float = 95.0
    temperature_min: float = 35.5
    temperature_max: float = 38.5
    battery_min: float = 15.0


class ThresholdOverrides(CamelModel):
    # None means "fall back to the system default"
    heart_rate_min: Optional[float] = Field(None, ge=0, le=300)
    heart_rate_max: Optional[float] = Field(None, ge=0, le=300)
    spo2_min: Optional[float] = Field(None, ge=0, le=100)
    temperature_min: Optional[float] = Field(None, ge=30, le=45)
    temperature_max: Optional[float] = Field(None, ge=30, le=45)
    battery_min: Optional[float] = Field(None, ge=0, le=100)


class Classification(BaseModel):
    """In-memory result of threshold evaluation, before it becomes an Alert."""

    type: AlertType
    severity: AlertSeverity
    value: float
    message: str
    threshold: Dict[str, float] = Field(default_factory=dict)
    unit: str = ""


# =====================================================
# Devices
# =====================================================
class EmergencyContact(CamelModel):
    name: str
    phone: str
    email: Optional[str] = None
    relationship: Optional[str] = None


class HospitalContact(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class Medication(CamelModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None


class DeviceOwner(CamelModel):
    full_name: str = Field(..., min_length=1)
    age: Optional[int] = Field(None, ge=0, le=150)
    medical_conditions: List[str] = Field(default_factory=list)
    medications: List[Medication] = Field(default_factory=list)
    emergency_contact: Optional[EmergencyContact] = None
    hospital_contact: Optional[HospitalContact] = None


class DeviceCreate(CamelModel):
    device_id: str = Field(..., min_length=1)
    device_name: str = Field(..., min_length=1)
    device_type: str = "combined"
    user_id: Optional[str] = None
    owner: DeviceOwner
    thresholds: Optional[ThresholdOverrides] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class DeviceResponse(CamelModel):
    device_id: str
    device_name: str
    device_type: str
    user_id: Optional[str] = None
    owner: DeviceOwner
    thresholds: AlertThresholds
    is_online: bool
    last_seen: Optional[datetime] = None
    battery_level: Optional[float] = None
    # Configured tier: last battery level below the device's battery_min
    battery_low: bool = False
    signal_strength: Optional[float] = None
    connection_type: Optional[str] = None
    firmware_version: Optional[str] = None
    created_at: datetime


class DeviceStatusResponse(CamelModel):
    device_id: str
    device_name: str
    # Seen within the last five minutes
    is_online: bool
    last_seen: Optional[datetime] = None
    battery_level: Optional[float] = None
    signal_strength: Optional[float] = None
    connection_type: Optional[str] = None
    firmware_version: Optional[str] = None
    uptime: Optional[int] = None
    location: Optional[Dict] = None


# =====================================================
# Alerts
# =====================================================
class DoctorContact(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    hospital: Optional[str] = None


class ContextSnapshot(CamelModel):
    """Patient data copied onto the alert when it is created."""

    patient_name: Optional[str] = None
    patient_age: Optional[int] = None
    emergency_contact: Optional[EmergencyContact] = None
    medical_history: List[str] = Field(default_factory=list)
    current_medications: List[str] = Field(default_factory=list)
    doctor_contact: Optional[DoctorContact] = None


class EscalationRule(CamelModel):
    level: int
    time_threshold: int  # minutes after creation
    contacts: List[str] = Field(default_factory=list)


class NotificationRecipient(CamelModel):
    type: NotificationChannel
    address: str
    name: Optional[str] = None
    relationship: Optional[str] = None
    delivered: bool = False
    delivered_at: Optional[datetime] = None


def _per_channel(default):
    return lambda: {channel.value: default for channel in NotificationChannel}


class NotificationState(CamelModel):
    sent: Dict[str, bool] = Field(default_factory=_per_channel(False))
    attempts: Dict[str, int] = Field(default_factory=_per_channel(0))
    last_attempt: Dict[str, Optional[datetime]] = Field(default_factory=_per_channel(None))
    recipients: List[NotificationRecipient] = Field(default_factory=list)


class AlertResponse(CamelModel):
    id: UUID
    device_id: str
    device_name: str
    user_id: Optional[str] = None
    reading_id: Optional[UUID] = None

    type: AlertType
    severity: AlertSeverity
    title: str
    message: str

    value: Optional[float] = None
    threshold: Dict[str, float] = Field(default_factory=dict)
    unit: str = ""
    location: Optional[Dict] = None

    status: AlertStatus
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    response_time: Optional[int] = None
    notes: Optional[str] = None

    notifications: NotificationState = Field(default_factory=NotificationState)
    context: ContextSnapshot = Field(default_factory=ContextSnapshot)
    technical: Dict = Field(default_factory=dict)

    escalation_level: int
    escalated_at: Optional[datetime] = None
    max_escalation_level: int
    escalation_rules: List[EscalationRule] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime


class AlertActionRequest(CamelModel):
    """Payload for acknowledge / resolve / false-positive."""

    actor: str = Field(..., min_length=1, description="Operator id or name")
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class PaginationInfo(CamelModel):
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class AlertPage(CamelModel):
    items: List[AlertResponse]
    pagination: PaginationInfo


class ReadingPage(CamelModel):
    items: List[ReadingResponse]
    pagination: PaginationInfo


class DevicePage(CamelModel):
    items: List[DeviceResponse]
    pagination: PaginationInfo


class ActiveCountResponse(CamelModel):
    active_alerts_count: int


class EscalationRunResponse(CamelModel):
    checked: int
    escalated: List[UUID]


class PurgeResponse(CamelModel):
    readings_deleted: int
    alerts_deleted: int


class DeleteResponse(CamelModel):
    message: str
    deleted_count: int


# =====================================================
# Statistics
# =====================================================
class AlertSummary(CamelModel):
    total_alerts: int = 0
    active_alerts: int = 0
    acknowledged_alerts: int = 0
    resolved_alerts: int = 0
    false_positive_alerts: int = 0
    info_alerts: int = 0
    warning_alerts: int = 0
    critical_alerts: int = 0
    emergency_alerts: int = 0
    avg_response_time: Optional[float] = None


class AlertTypeCount(CamelModel):
    type: AlertType
    count: int
    avg_response_time: Optional[float] = None


class TypeSeverityStat(CamelModel):
    type: AlertType
    severity: AlertSeverity
    count: int
    avg_response_time: Optional[float] = None
    resolved: int = 0
    false_positives: int = 0


class AlertStatisticsResponse(CamelModel):
    summary: AlertSummary
    alert_types: List[AlertTypeCount]
    breakdown: List[TypeSeverityStat] = Field(default_factory=list)
    generated_at: datetime


class ReadingSummary(CamelModel):
    count: int = 0
    avg_heart_rate: Optional[float] = None
    min_heart_rate: Optional[float] = None
    max_heart_rate: Optional[float] = None
    avg_spo2: Optional[float] = None
    min_spo2: Optional[float] = None
    avg_temperature: Optional[float] = None
    min_temperature: Optional[float] = None
    max_temperature: Optional[float] = None
    avg_battery_level: Optional[float] = None
    min_battery_level: Optional[float] = None
    fall_detections: int = 0


class HourlyTrend(CamelModel):
    hour: str  # "YYYY-MM-DD HH:00"
    avg_heart_rate: Optional[float] = None
    avg_spo2: Optional[float] = None
    avg_temperature: Optional[float] = None
    count: int


class ReadingAnalyticsResponse(CamelModel):
    summary: ReadingSummary
    trends: List[HourlyTrend]
    time_range: str
    generated_at: datetime


# =====================================================
# Health Check Models
# =====================================================


class DependencyStatus(BaseModel):
    status: str
    response_time_ms: Optional[float] = None
    error: Optional[str] = None


class HealthCheckResponse(BaseModel):
    service: str
    status: str
    dependencies: Dict[str, DependencyStatus]
