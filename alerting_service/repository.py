"""Persistence port for the alerting pipeline.

`AlertRepository` is what the recorder, lifecycle and read-side code talk
to; `SqlRepository` implements it over a SQLModel session. Every write
commits on its own and rolls back + raises PersistenceError on failure;
`add_ingestion` is the one multi-row write and commits all of its rows
together.
There is no compare-and-swap: concurrent lifecycle writes on one alert are
last-write-wins.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from alerting_service.errors import PersistenceError
from alerting_service.models.models import Alert, Device, Reading, utcnow
from alerting_service.models.schemas import AlertSeverity, AlertStatus

CLOSED_STATUSES = (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE)


@dataclass
class AlertFilter:
    status: Optional[AlertStatus] = None
    severity: Optional[AlertSeverity] = None
    device_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class AlertRepository(Protocol):
    def get_device(self, device_id: str) -> Optional[Device]: ...

    def add_device(self, device: Device) -> Device: ...

    def save_device(self, device: Device) -> Device: ...

    def list_devices(self, offset: int, limit: int) -> Tuple[List[Device], int]: ...

    def add_reading(self, reading: Reading) -> Reading: ...

    def add_ingestion(
        self, reading: Reading, device: Device, alerts: Sequence[Alert]
    ) -> Tuple[Reading, Device, List[Alert]]: ...

    def latest_reading(self, device_id: str) -> Optional[Reading]: ...

    def list_readings(
        self,
        device_id: str,
        start: Optional[datetime],
        end: Optional[datetime],
        offset: int,
        limit: int,
    ) -> Tuple[List[Reading], int]: ...

    def readings_between(self, device_id: str, start: datetime, end: datetime) -> List[Reading]: ...

    def add_alert(self, alert: Alert) -> Alert: ...

    def get_alert(self, alert_id: uuid.UUID) -> Optional[Alert]: ...

    def save_alert(self, alert: Alert) -> Alert: ...

    def list_alerts(
        self, filters: AlertFilter, offset: int, limit: int
    ) -> Tuple[List[Alert], int]: ...

    def alerts_matching(self, filters: AlertFilter) -> List[Alert]: ...

    def count_alerts(self, filters: AlertFilter) -> int: ...

    def delete_readings_before(self, cutoff: datetime) -> int: ...

    def delete_closed_alerts_before(self, cutoff: datetime) -> int: ...

    def delete_alerts(
        self, statuses: Sequence[AlertStatus], before: Optional[datetime]
    ) -> int: ...

    def delete_device_readings(self, device_id: str, before: Optional[datetime]) -> int: ...


class SqlRepository:
    def __init__(self, session: Session):
        self.session = session

    # -------------------------------------------------
    # Writes
    # -------------------------------------------------
    def _persist(self, row):
        try:
            self.session.add(row)
            self.session.commit()
            self.session.refresh(row)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Database Write Failed: {e}") from e
        return row

    def add_device(self, device: Device) -> Device:
        return self._persist(device)

    def save_device(self, device: Device) -> Device:
        return self._persist(device)

    def add_reading(self, reading: Reading) -> Reading:
        return self._persist(reading)

    def _stage(self, row) -> None:
        self.session.add(row)
        self.session.flush()

    def add_ingestion(self, reading, device, alerts):
        """
        Write a reading, the refreshed device status and the reading's alerts
        in one transaction. Rows are flushed in order (alerts reference the
        reading) and committed once; any failure rolls all of them back.
        """
        rows = [reading, device, *alerts]
        try:
            for row in rows:
                self._stage(row)
            self.session.commit()
            for row in rows:
                self.session.refresh(row)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Database Write Failed: {e}") from e
        return reading, device, list(alerts)

    def add_alert(self, alert: Alert) -> Alert:
        return self._persist(alert)

    def save_alert(self, alert: Alert) -> Alert:
        alert.updated_at = utcnow()
        return self._persist(alert)

    def _delete(self, stmt) -> int:
        try:
            result = self.session.exec(stmt.execution_options(synchronize_session=False))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceError(f"Deletion failed: {e}") from e
        return result.rowcount or 0

    def delete_readings_before(self, cutoff: datetime) -> int:
        """Retention cut on receive time (`created_at`); queries use `timestamp`."""
        return self._delete(sa_delete(Reading).where(Reading.created_at < cutoff))

    def delete_closed_alerts_before(self, cutoff: datetime) -> int:
        return self._delete(
            sa_delete(Alert)
            .where(Alert.status.in_(CLOSED_STATUSES))
            .where(Alert.created_at < cutoff)
        )

    def delete_alerts(self, statuses, before) -> int:
        stmt = sa_delete(Alert).where(Alert.status.in_(list(statuses)))
        if before is not None:
            stmt = stmt.where(Alert.created_at < before)
        return self._delete(stmt)

    def delete_device_readings(self, device_id, before) -> int:
        """Drop a device's readings, optionally only those captured before `before`."""
        stmt = sa_delete(Reading).where(Reading.device_id == device_id)
        if before is not None:
            stmt = stmt.where(Reading.timestamp < before)
        return self._delete(stmt)

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------
    def _read(self, stmt):
        try:
            return self.session.exec(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database Read Failed: {e}") from e

    def get_device(self, device_id: str) -> Optional[Device]:
        try:
            return self.session.get(Device, device_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database Read Failed: {e}") from e

    def get_alert(self, alert_id: uuid.UUID) -> Optional[Alert]:
        try:
            return self.session.get(Alert, alert_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database Read Failed: {e}") from e

    def list_devices(self, offset, limit):
        stmt = select(Device).order_by(Device.created_at.desc()).offset(offset).limit(limit)
        total = self._read(select(func.count()).select_from(Device)).one()
        return list(self._read(stmt).all()), total

    def latest_reading(self, device_id: str) -> Optional[Reading]:
        stmt = (
            select(Reading)
            .where(Reading.device_id == device_id)
            .order_by(Reading.timestamp.desc())
            .limit(1)
        )
        return self._read(stmt).first()

    def _reading_conditions(self, device_id, start, end) -> list:
        conditions = [Reading.device_id == device_id]
        if start is not None:
            conditions.append(Reading.timestamp >= start)
        if end is not None:
            conditions.append(Reading.timestamp <= end)
        return conditions

    def list_readings(self, device_id, start, end, offset, limit):
        conditions = self._reading_conditions(device_id, start, end)
        stmt = (
            select(Reading)
            .where(*conditions)
            .order_by(Reading.timestamp.desc())
            .offset(offset)
            .limit(limit)
        )
        total = self._read(select(func.count()).select_from(Reading).where(*conditions)).one()
        return list(self._read(stmt).all()), total

    def readings_between(self, device_id, start, end) -> List[Reading]:
        conditions = self._reading_conditions(device_id, start, end)
        stmt = select(Reading).where(*conditions).order_by(Reading.timestamp.asc())
        return list(self._read(stmt).all())

    def _alert_conditions(self, filters: AlertFilter) -> list:
        conditions = []
        if filters.status is not None:
            conditions.append(Alert.status == filters.status)
        if filters.severity is not None:
            conditions.append(Alert.severity == filters.severity)
        if filters.device_id:
            conditions.append(Alert.device_id == filters.device_id)
        if filters.start is not None:
            conditions.append(Alert.created_at >= filters.start)
        if filters.end is not None:
            conditions.append(Alert.created_at <= filters.end)
        return conditions

    def list_alerts(self, filters, offset, limit):
        conditions = self._alert_conditions(filters)
        stmt = (
            select(Alert)
            .where(*conditions)
            .order_by(Alert.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self._read(stmt).all()), self.count_alerts(filters)

    def alerts_matching(self, filters: AlertFilter) -> List[Alert]:
        stmt = (
            select(Alert)
            .where(*self._alert_conditions(filters))
            .order_by(Alert.created_at.desc())
        )
        return list(self._read(stmt).all())

    def count_alerts(self, filters: AlertFilter) -> int:
        stmt = select(func.count()).select_from(Alert).where(*self._alert_conditions(filters))
        return self._read(stmt).one()


def paginate(page: int, limit: int, returned: int, total: int) -> dict:
    """Pagination block for list responses; `page` is 1-based."""
    offset = (page - 1) * limit
    return {
        "current_page": page,
        "total_pages": (total + limit - 1) // limit if limit else 0,
        "total_count": total,
        "has_next": offset + returned < total,
        "has_prev": page > 1,
    }


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit
