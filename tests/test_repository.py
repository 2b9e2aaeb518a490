from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from alerting_service.errors import PersistenceError
from alerting_service.models.models import Alert, Reading, utcnow
from alerting_service.models.schemas import AlertSeverity, AlertStatus, AlertType
from alerting_service.repository import AlertFilter

NOW = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)


def new_reading(device_id="LL-001", timestamp=NOW):
    return Reading(device_id=device_id, timestamp=timestamp, heart_rate=200, payload={})


def new_alert(
    reading, alert_type=AlertType.HEART_RATE_ABNORMAL, status=AlertStatus.ACTIVE, created=NOW
):
    return Alert(
        device_id=reading.device_id,
        device_name="Wristband A",
        reading_id=reading.id,
        type=alert_type,
        severity=AlertSeverity.CRITICAL,
        title=alert_type.value.replace("_", " ").upper(),
        message="breach",
        status=status,
        created_at=created,
        updated_at=created,
    )


class TestAddIngestion:
    def test_all_rows_are_committed_together(self, repository, session, device):
        reading = new_reading()
        device.last_seen = NOW
        alerts = [new_alert(reading), new_alert(reading, AlertType.BATTERY_LOW)]

        stored, refreshed, stored_alerts = repository.add_ingestion(reading, device, alerts)
        session.expunge_all()

        assert repository.latest_reading("LL-001").id == stored.id
        assert refreshed.last_seen is not None
        assert repository.count_alerts(AlertFilter(device_id="LL-001")) == 2
        assert {a.reading_id for a in stored_alerts} == {stored.id}

    def test_failure_on_second_alert_rolls_back_everything(
        self, repository, session, device, monkeypatch
    ):
        stage = type(repository)._stage
        staged = []

        def stage_until_second_alert(row):
            staged.append(row)
            if len(staged) == 4:
                raise SQLAlchemyError("disk full")
            stage(repository, row)

        monkeypatch.setattr(repository, "_stage", stage_until_second_alert)
        reading = new_reading()
        device.last_seen = NOW
        alerts = [new_alert(reading), new_alert(reading, AlertType.BATTERY_LOW)]

        with pytest.raises(PersistenceError):
            repository.add_ingestion(reading, device, alerts)

        session.expunge_all()
        assert repository.latest_reading("LL-001") is None
        assert repository.count_alerts(AlertFilter()) == 0
        assert repository.get_device("LL-001").last_seen is None


class TestDeletes:
    def test_delete_device_readings_by_capture_time(self, repository):
        repository.add_reading(new_reading(timestamp=NOW - timedelta(days=10)))
        keep = repository.add_reading(new_reading(timestamp=NOW))
        repository.add_reading(new_reading(device_id="LL-002", timestamp=NOW - timedelta(days=10)))

        assert repository.delete_device_readings("LL-001", NOW - timedelta(days=7)) == 1
        readings, total = repository.list_readings("LL-001", None, None, 0, 10)
        assert total == 1
        assert readings[0].id == keep.id

        assert repository.delete_device_readings("LL-001", None) == 1
        assert repository.list_readings("LL-002", None, None, 0, 10)[1] == 1

    def test_delete_alerts_by_status_and_age(self, repository):
        reading = repository.add_reading(new_reading())
        old = utcnow() - timedelta(days=40)
        repository.add_alert(new_alert(reading, status=AlertStatus.RESOLVED, created=old))
        repository.add_alert(new_alert(reading, status=AlertStatus.FALSE_POSITIVE, created=utcnow()))
        active = repository.add_alert(new_alert(reading, created=old))

        closed = (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE)
        assert repository.delete_alerts(closed, utcnow() - timedelta(days=30)) == 1
        assert repository.delete_alerts(closed, None) == 1
        assert [a.id for a in repository.alerts_matching(AlertFilter())] == [active.id]


class TestListDevices:
    def test_pages(self, repository, device):
        devices, total = repository.list_devices(0, 10)
        assert total == 1
        assert [d.device_id for d in devices] == ["LL-001"]
        assert repository.list_devices(10, 10) == ([], 1)
