"""
Threshold Evaluator.

Maps one validated reading to zero or more classifications. Each rule is
evaluated on its own; a reading that breaches several rules yields one
classification per rule and nothing is de-duplicated across readings.

Battery uses a hard-coded 10 % / 5 % tier here. The configured per-device
`battery_min` (default 15 %) only drives the device-level `battery_low`
flag. Both tiers are kept as they are.
"""

from typing import List, Optional

from alerting_service.models.models import Device
from alerting_service.models.schemas import (
    AlertSeverity,
    AlertThresholds,
    AlertType,
    Classification,
    ReadingIn,
)

# Severity escalates to critical beyond these bounds
HEART_RATE_CRITICAL_LOW = 40
HEART_RATE_CRITICAL_HIGH = 140
SPO2_CRITICAL_LOW = 90
TEMPERATURE_CRITICAL_LOW = 35
TEMPERATURE_CRITICAL_HIGH = 40
BATTERY_ALERT_BELOW = 10
BATTERY_CRITICAL_BELOW = 5

_OVERRIDE_FIELDS = (
    "heart_rate_min",
    "heart_rate_max",
    "spo2_min",
    "temperature_min",
    "temperature_max",
    "battery_min",
)


def effective_thresholds(device: Optional[Device]) -> AlertThresholds:
    """Device override where set, system default otherwise."""
    defaults = AlertThresholds()
    if device is None:
        return defaults
    overrides = {
        name: getattr(device, name)
        for name in _OVERRIDE_FIELDS
        if getattr(device, name) is not None
    }
    return defaults.model_copy(update=overrides)


def _value(group) -> Optional[float]:
    return None if group is None else group.value


def _check_heart_rate(hr: float, thr: AlertThresholds) -> Optional[Classification]:
    if thr.heart_rate_min <= hr <= thr.heart_rate_max:
        return None
    critical = hr < HEART_RATE_CRITICAL_LOW or hr > HEART_RATE_CRITICAL_HIGH
    direction = "too low" if hr < thr.heart_rate_min else "too high"
    return Classification(
        type=AlertType.HEART_RATE_ABNORMAL,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        value=hr,
        message=f"Heart rate {hr:g} BPM is {direction}",
        threshold={"min": thr.heart_rate_min, "max": thr.heart_rate_max},
        unit="bpm",
    )


def _check_spo2(spo2: float, thr: AlertThresholds) -> Optional[Classification]:
    if spo2 >= thr.spo2_min:
        return None
    critical = spo2 < SPO2_CRITICAL_LOW
    return Classification(
        type=AlertType.SPO2_LOW,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        value=spo2,
        message=f"Blood oxygen level {spo2:g}% is below {thr.spo2_min:g}%",
        threshold={"min": thr.spo2_min},
        unit="%",
    )


def _check_temperature(temp: float, thr: AlertThresholds) -> Optional[Classification]:
    if thr.temperature_min <= temp <= thr.temperature_max:
        return None
    critical = temp < TEMPERATURE_CRITICAL_LOW or temp > TEMPERATURE_CRITICAL_HIGH
    direction = "too high" if temp > thr.temperature_max else "too low"
    return Classification(
        type=AlertType.TEMPERATURE_ABNORMAL,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        value=temp,
        message=f"Body temperature {temp:g}°C is {direction}",
        threshold={"min": thr.temperature_min, "max": thr.temperature_max},
        unit="°C",
    )


def _check_battery(battery: float) -> Optional[Classification]:
    if battery >= BATTERY_ALERT_BELOW:
        return None
    critical = battery < BATTERY_CRITICAL_BELOW
    return Classification(
        type=AlertType.BATTERY_LOW,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        value=battery,
        message=f"Device battery level is critically low: {battery:g}%",
        threshold={"min": float(BATTERY_ALERT_BELOW)},
        unit="%",
    )


def evaluate(reading: ReadingIn, thresholds: AlertThresholds) -> List[Classification]:
    """
    Classify a reading against the effective thresholds.

    Returns an empty list for a nominal reading. A field counts as present
    when it is not None, so a reported value of 0 is evaluated.
    """
    classifications: List[Classification] = []

    hr = _value(reading.heart_rate)
    if hr is not None:
        classifications.append(_check_heart_rate(hr, thresholds))

    spo2 = _value(reading.spo2)
    if spo2 is not None:
        classifications.append(_check_spo2(spo2, thresholds))

    temp = _value(reading.body_temperature)
    if temp is not None:
        classifications.append(_check_temperature(temp, thresholds))

    if reading.motion is not None and reading.motion.fall_detected:
        classifications.append(
            Classification(
                type=AlertType.FALL_DETECTED,
                severity=AlertSeverity.CRITICAL,
                value=1.0,
                message="Fall detected! Immediate attention required.",
            )
        )

    battery = None if reading.device is None else reading.device.battery_level
    if battery is not None:
        classifications.append(_check_battery(battery))

    return [c for c in classifications if c is not None]
