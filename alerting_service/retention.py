"""Retention purge: readings after READING_RETENTION_DAYS, closed alerts after ALERT_RETENTION_DAYS."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from alerting_service.config import Settings
from alerting_service.models.models import utcnow
from alerting_service.models.schemas import PurgeResponse
from alerting_service.repository import AlertRepository

logger = logging.getLogger("alerting-service.retention")


def purge_expired(
    repository: AlertRepository, settings: Settings, now: Optional[datetime] = None
) -> PurgeResponse:
    # Active and acknowledged alerts are kept regardless of age
    now = now or utcnow()
    readings_deleted = repository.delete_readings_before(
        now - timedelta(days=settings.READING_RETENTION_DAYS)
    )
    alerts_deleted = repository.delete_closed_alerts_before(
        now - timedelta(days=settings.ALERT_RETENTION_DAYS)
    )
    logger.info("Retention purge removed %s readings, %s alerts", readings_deleted, alerts_deleted)
    return PurgeResponse(readings_deleted=readings_deleted, alerts_deleted=alerts_deleted)
