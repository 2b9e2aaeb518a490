import pytest

from alerting_service.evaluator import effective_thresholds, evaluate
from alerting_service.models.models import Device
from alerting_service.models.schemas import (
    AlertSeverity,
    AlertThresholds,
    AlertType,
    ReadingIn,
)

DEFAULTS = AlertThresholds()


def reading(heart_rate=None, spo2=None, temperature=None, fall=None, battery=None):
    payload = {"deviceId": "LL-001"}
    if heart_rate is not None:
        payload["heartRate"] = {"value": heart_rate}
    if spo2 is not None:
        payload["spO2"] = {"value": spo2}
    if temperature is not None:
        payload["bodyTemperature"] = {"value": temperature}
    if fall is not None:
        payload["motion"] = {"fallDetected": fall}
    if battery is not None:
        payload["device"] = {"batteryLevel": battery}
    return ReadingIn.model_validate(payload)


def nominal(**overrides):
    values = dict(heart_rate=72, spo2=98, temperature=36.8, fall=False, battery=80)
    values.update(overrides)
    return reading(**values)


class TestNominal:
    @pytest.mark.parametrize(
        "values",
        [
            dict(heart_rate=50, spo2=95, temperature=35.5, battery=15),
            dict(heart_rate=120, spo2=100, temperature=38.5, battery=100),
            dict(heart_rate=85, spo2=97, temperature=37.0, battery=15),
        ],
    )
    def test_in_range_reading_yields_nothing(self, values):
        assert evaluate(reading(fall=False, **values), DEFAULTS) == []

    def test_empty_reading_yields_nothing(self):
        assert evaluate(reading(), DEFAULTS) == []


class TestHeartRate:
    def test_low_is_warning(self):
        result = evaluate(nominal(heart_rate=45), DEFAULTS)
        assert len(result) == 1
        assert result[0].type == AlertType.HEART_RATE_ABNORMAL
        assert result[0].severity == AlertSeverity.WARNING
        assert result[0].value == 45
        assert result[0].threshold == {"min": 50.0, "max": 120.0}
        assert "45" in result[0].message

    def test_very_low_is_critical(self):
        [c] = evaluate(nominal(heart_rate=35), DEFAULTS)
        assert c.severity == AlertSeverity.CRITICAL

    def test_high_is_warning_then_critical(self):
        [warn] = evaluate(nominal(heart_rate=130), DEFAULTS)
        [crit] = evaluate(nominal(heart_rate=141), DEFAULTS)
        assert warn.severity == AlertSeverity.WARNING
        assert crit.severity == AlertSeverity.CRITICAL

    def test_zero_is_evaluated(self):
        [c] = evaluate(nominal(heart_rate=0), DEFAULTS)
        assert c.type == AlertType.HEART_RATE_ABNORMAL
        assert c.severity == AlertSeverity.CRITICAL


class TestSpO2:
    def test_slightly_low_is_warning(self):
        [c] = evaluate(nominal(spo2=92), DEFAULTS)
        assert (c.type, c.severity) == (AlertType.SPO2_LOW, AlertSeverity.WARNING)

    def test_very_low_is_critical(self):
        [c] = evaluate(nominal(spo2=85), DEFAULTS)
        assert (c.type, c.severity) == (AlertType.SPO2_LOW, AlertSeverity.CRITICAL)


class TestTemperature:
    def test_fever_is_warning(self):
        [c] = evaluate(nominal(temperature=39.0), DEFAULTS)
        assert (c.type, c.severity) == (AlertType.TEMPERATURE_ABNORMAL, AlertSeverity.WARNING)

    def test_high_fever_is_critical(self):
        [c] = evaluate(nominal(temperature=40.5), DEFAULTS)
        assert c.severity == AlertSeverity.CRITICAL

    def test_hypothermia_is_critical(self):
        [c] = evaluate(nominal(temperature=34.5), DEFAULTS)
        assert c.severity == AlertSeverity.CRITICAL
        assert "too low" in c.message


class TestFall:
    def test_fall_alone_is_critical(self):
        [c] = evaluate(nominal(fall=True), DEFAULTS)
        assert (c.type, c.severity) == (AlertType.FALL_DETECTED, AlertSeverity.CRITICAL)
        assert c.value == 1.0

    def test_fall_fires_regardless_of_other_fields(self):
        result = evaluate(reading(fall=True), DEFAULTS)
        assert [c.type for c in result] == [AlertType.FALL_DETECTED]


class TestBattery:
    def test_between_tiers_does_not_fire(self):
        # Below the configured 15 % but above the evaluator's 10 %
        assert evaluate(nominal(battery=12), DEFAULTS) == []

    def test_below_ten_is_warning(self):
        [c] = evaluate(nominal(battery=8), DEFAULTS)
        assert (c.type, c.severity) == (AlertType.BATTERY_LOW, AlertSeverity.WARNING)

    def test_below_five_is_critical(self):
        [c] = evaluate(nominal(battery=3), DEFAULTS)
        assert c.severity == AlertSeverity.CRITICAL


class TestIndependentRules:
    def test_two_breaches_two_classifications(self):
        result = evaluate(nominal(heart_rate=200, battery=3), DEFAULTS)
        assert {c.type for c in result} == {AlertType.HEART_RATE_ABNORMAL, AlertType.BATTERY_LOW}
        assert len(result) == 2

    def test_every_rule_can_fire_at_once(self):
        result = evaluate(
            reading(heart_rate=30, spo2=80, temperature=41, fall=True, battery=2), DEFAULTS
        )
        assert len(result) == 5
        assert all(c.severity == AlertSeverity.CRITICAL for c in result)


class TestEffectiveThresholds:
    def test_no_device_uses_defaults(self):
        assert effective_thresholds(None) == DEFAULTS

    def test_overrides_replace_only_set_fields(self):
        device = Device(
            device_id="LL-002", device_name="Band", owner={}, heart_rate_max=100, spo2_min=92
        )
        thresholds = effective_thresholds(device)
        assert thresholds.heart_rate_max == 100
        assert thresholds.spo2_min == 92
        assert thresholds.heart_rate_min == DEFAULTS.heart_rate_min
        assert thresholds.battery_min == DEFAULTS.battery_min

    def test_override_changes_classification(self):
        device = Device(device_id="LL-002", device_name="Band", owner={}, heart_rate_max=100)
        [c] = evaluate(nominal(heart_rate=110), effective_thresholds(device))
        assert c.severity == AlertSeverity.WARNING
        assert c.threshold["max"] == 100
