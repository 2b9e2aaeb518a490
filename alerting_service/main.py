"""Alerting Service

Ingests wearable sensor readings, classifies them against per-device
thresholds, records alerts and drives their lifecycle. Notifications and
Redis broadcasts run as background tasks after the device gets its answer.
"""

# =====================================================
# Standard Library Imports
# =====================================================
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

# =====================================================
# Third-Party Imports
# =====================================================
import redis
from fastapi import BackgroundTasks, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware

# =====================================================
# Local Imports
# =====================================================
from alerting_service.broadcaster import Broadcaster
from alerting_service.config import Settings
from alerting_service.db import build_engine, close_db_connection, get_session, init_db
from alerting_service.errors import (
    AlertingError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)
from alerting_service.evaluator import effective_thresholds, evaluate
from alerting_service.lifecycle import (
    acknowledge_alert,
    escalate_alert,
    mark_false_positive_alert,
    resolve_alert,
    run_escalation_scan,
)
from alerting_service.models.models import (
    Device,
    Reading,
    alert_response,
    as_utc,
    reading_response,
    utcnow,
)
from alerting_service.models.schemas import (
    ActiveCountResponse,
    AlertActionRequest,
    AlertPage,
    AlertResponse,
    AlertSeverity,
    AlertStatisticsResponse,
    AlertStatus,
    DependencyStatus,
    DeleteResponse,
    DeviceCreate,
    DeviceOwner,
    DevicePage,
    DeviceResponse,
    DeviceStatusResponse,
    EscalationRunResponse,
    HealthCheckResponse,
    IngestionResponse,
    PaginationInfo,
    PurgeResponse,
    ReadingAnalyticsResponse,
    ReadingIn,
    ReadingPage,
    ReadingResponse,
    ThresholdOverrides,
)
from alerting_service.notifications import (
    NotificationDispatcher,
    build_transport,
    dispatch_alert_notifications,
)
from alerting_service.recorder import build_alert
from alerting_service.repository import (
    CLOSED_STATUSES,
    AlertFilter,
    SqlRepository,
    page_offset,
    paginate,
)
from alerting_service.retention import purge_expired
from alerting_service.statistics import (
    TIME_RANGES,
    alert_type_breakdown,
    hourly_trends,
    summarize_alerts,
    summarize_readings,
    time_range_start,
    type_severity_breakdown,
)
from alerting_service.validator import validate_reading

SERVICE_NAME = "alerting-service"
ONLINE_WINDOW = timedelta(minutes=5)

# =====================================================
# Configuration & Middleware
# =====================================================
logger = logging.getLogger(SERVICE_NAME)


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_ts = time.time()
        logger.info("req_id=%s start method=%s path=%s", req_id, request.method, request.url.path)
        response = await call_next(request)
        duration_ms = int((time.time() - start_ts) * 1000)
        response.headers["X-Request-ID"] = req_id
        response.headers["X-Response-Time-ms"] = str(duration_ms)
        logger.info(
            "req_id=%s end status=%s path=%s duration_ms=%s",
            req_id,
            response.status_code,
            request.url.path,
            duration_ms,
        )
        return response


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Service lifespan for startup/shutdown hooks."""
    try:
        init_db(application.state.engine)
        logger.info("Alerting DB initialized.")
    except SQLAlchemyError as e:
        logger.error("Alerting DB init failed: %s", e)
    yield
    close_db_connection(application.state.engine)


# =====================================================
# Error Handling
# =====================================================
def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    body = {"code": code, "message": message, "status": status_code}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})


async def alerting_error_handler(request: Request, exc: AlertingError) -> JSONResponse:
    if isinstance(exc, PersistenceError):
        # Storage detail stays in the log, callers get a generic failure
        logger.error("Persistence failure on %s: %s", request.url.path, exc.message)
        return _error_response(exc.status_code, exc.code, "Internal server error")
    if isinstance(exc, ValidationError):
        return _error_response(exc.status_code, exc.code, exc.message, exc.details)
    return _error_response(exc.status_code, exc.code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        # Drop the "body" / "query" / "path" prefix
        loc = [str(part) for part in err["loc"][1:]] or [str(err["loc"][0])]
        details.append({"field": ".".join(loc), "message": err["msg"]})
    return _error_response(400, ValidationError.code, "Validation failed", details)


# =====================================================
# Dependencies
# =====================================================
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_repository(session: Session = Depends(get_session)) -> SqlRepository:
    return SqlRepository(session)


def get_broadcaster(request: Request) -> Broadcaster:
    return request.app.state.broadcaster


def _require_device_key(request: Request):
    expected = request.app.state.settings.DEVICE_API_KEY
    if not expected:
        return True  # If not configured, do not block
    if request.headers.get("X-API-Key") != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return True


def _require_admin(request: Request):
    token_env = request.app.state.settings.ADMIN_TOKEN
    if not token_env:
        return True  # If not configured, do not block (optional)
    token_hdr = request.headers.get("X-Admin-Token")
    if token_hdr != token_env:
        raise HTTPException(status_code=403, detail="Forbidden")
    return True


def _get_device_or_404(repository: SqlRepository, device_id: str) -> Device:
    device = repository.get_device(device_id)
    if device is None:
        raise NotFoundError(f"Device {device_id} not found")
    return device


def _is_online(device: Device) -> bool:
    last_seen = as_utc(device.last_seen)
    return last_seen is not None and utcnow() - last_seen <= ONLINE_WINDOW


def _days_ago(days: Optional[int]) -> Optional[datetime]:
    return utcnow() - timedelta(days=days) if days is not None else None


def _device_response(device: Device) -> DeviceResponse:
    thresholds = effective_thresholds(device)
    return DeviceResponse(
        device_id=device.device_id,
        device_name=device.device_name,
        device_type=device.device_type,
        user_id=device.user_id,
        owner=DeviceOwner.model_validate(device.owner),
        thresholds=thresholds,
        is_online=_is_online(device),
        last_seen=as_utc(device.last_seen),
        battery_level=device.battery_level,
        battery_low=(
            device.battery_level is not None and device.battery_level < thresholds.battery_min
        ),
        signal_strength=device.signal_strength,
        connection_type=device.connection_type,
        firmware_version=device.firmware_version,
        created_at=as_utc(device.created_at),
    )


def _check_threshold_ranges(device: Device) -> None:
    thresholds = effective_thresholds(device)
    details = []
    if thresholds.heart_rate_min > thresholds.heart_rate_max:
        details.append({"field": "heartRateMin", "message": "must not exceed heartRateMax"})
    if thresholds.temperature_min > thresholds.temperature_max:
        details.append({"field": "temperatureMin", "message": "must not exceed temperatureMax"})
    if details:
        raise ValidationError("Validation failed", details)


def _reading_row(reading_in: ReadingIn, device: Device, ts: datetime) -> Reading:
    """Flatten the queried values; keep the full groups as posted."""
    payload = reading_in.model_dump(
        mode="json", by_alias=True, exclude_none=True, exclude={"device_id", "timestamp"}
    )
    location = reading_in.location
    return Reading(
        device_id=reading_in.device_id,
        device_name=device.device_name,
        timestamp=ts,
        heart_rate=reading_in.heart_rate.value if reading_in.heart_rate else None,
        spo2=reading_in.spo2.value if reading_in.spo2 else None,
        body_temperature=reading_in.body_temperature.value if reading_in.body_temperature else None,
        fall_detected=bool(reading_in.motion and reading_in.motion.fall_detected),
        battery_level=reading_in.device.battery_level if reading_in.device else None,
        signal_strength=reading_in.device.signal_strength if reading_in.device else None,
        latitude=location.latitude if location else None,
        longitude=location.longitude if location else None,
        payload=payload,
    )


def _refresh_device_status(device: Device, reading_in: ReadingIn, now: datetime) -> Device:
    """Stamp receive time and copy telemetry; the device clock is not trusted here."""
    device.last_seen = now
    telemetry = reading_in.device
    if telemetry is not None:
        if telemetry.battery_level is not None:
            device.battery_level = telemetry.battery_level
        if telemetry.signal_strength is not None:
            device.signal_strength = telemetry.signal_strength
        if telemetry.connection_type is not None:
            device.connection_type = telemetry.connection_type.value
        if telemetry.uptime is not None:
            device.uptime = telemetry.uptime
    if reading_in.metadata is not None and reading_in.metadata.firmware_version:
        device.firmware_version = reading_in.metadata.firmware_version
    if reading_in.location is not None:
        device.location = reading_in.location.model_dump(mode="json", exclude_none=True)
    return device


# =====================================================
# App Factory
# =====================================================
def create_app(
    settings: Optional[Settings] = None, *, redis_client=None, transport=None
) -> FastAPI:
    """
    Build the service. Tests pass their own settings, a Redis stand-in and a
    recording transport; production builds everything from the environment.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    application = FastAPI(title="Alerting Service", root_path=settings.ROOT_PATH, lifespan=lifespan)
    application.state.settings = settings
    application.state.engine = build_engine(settings.DATABASE_URL)
    application.state.broadcaster = Broadcaster(
        redis_client
        or redis.Redis(host=settings.REDIS_HOST, port=settings.REDIS_PORT, decode_responses=True)
    )
    application.state.dispatcher = NotificationDispatcher(
        transport or build_transport(settings),
        settings.NOTIFICATION_CHANNELS,
        webhook_url=settings.WEBHOOK_URL,
    )

    application.add_middleware(LoggingMiddleware)
    application.add_exception_handler(AlertingError, alerting_error_handler)
    application.add_exception_handler(RequestValidationError, request_validation_handler)
    _register_routes(application)
    return application


def _register_routes(app: FastAPI) -> None:
    @app.get("/health", response_model=HealthCheckResponse)
    def health(request: Request):
        """Health check for the database and Redis."""
        dependencies = {}

        # Check database
        start = time.time()
        try:
            with request.app.state.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            dependencies["database"] = DependencyStatus(
                status="healthy", response_time_ms=int((time.time() - start) * 1000)
            )
        except SQLAlchemyError as e:
            logger.error("Database health check failed: %s", e)
            dependencies["database"] = DependencyStatus(
                status="unhealthy", response_time_ms=None, error=str(e)
            )

        # Check Redis
        start = time.time()
        try:
            if request.app.state.broadcaster.ping():
                dependencies["redis"] = DependencyStatus(
                    status="healthy", response_time_ms=int((time.time() - start) * 1000)
                )
            else:
                dependencies["redis"] = DependencyStatus(
                    status="unhealthy", response_time_ms=int((time.time() - start) * 1000)
                )
        except RedisError as e:
            logger.error("Redis health check failed: %s", e)
            dependencies["redis"] = DependencyStatus(
                status="unhealthy", response_time_ms=None, error=str(e)
            )

        # Aggregate status
        overall_status = (
            "healthy"
            if all(dep.status == "healthy" for dep in dependencies.values())
            else "unhealthy"
        )
        if overall_status == "unhealthy":
            raise HTTPException(
                status_code=503,
                detail=HealthCheckResponse(
                    service=SERVICE_NAME, status=overall_status, dependencies=dependencies
                ).model_dump(),
            )

        return HealthCheckResponse(
            service=SERVICE_NAME, status=overall_status, dependencies=dependencies
        )

    # =====================================================
    # Devices
    # =====================================================
    @app.post(
        "/devices",
        response_model=DeviceResponse,
        status_code=201,
        dependencies=[Depends(_require_device_key)],
    )
    def register_device(payload: DeviceCreate, repository: SqlRepository = Depends(get_repository)):
        if repository.get_device(payload.device_id) is not None:
            raise StateConflictError(f"Device {payload.device_id} is already registered")

        overrides = payload.thresholds.model_dump() if payload.thresholds else {}
        device = Device(
            device_id=payload.device_id,
            device_name=payload.device_name,
            device_type=payload.device_type,
            user_id=payload.user_id,
            owner=payload.owner.model_dump(mode="json"),
            **{name: value for name, value in overrides.items() if value is not None},
        )
        _check_threshold_ranges(device)
        device = repository.add_device(device)
        logger.info("Registered device %s", device.device_id)
        return _device_response(device)

    @app.get("/devices", response_model=DevicePage)
    def list_devices(
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
        repository: SqlRepository = Depends(get_repository),
    ):
        devices, total = repository.list_devices(page_offset(page, limit), limit)
        return DevicePage(
            items=[_device_response(d) for d in devices],
            pagination=PaginationInfo(**paginate(page, limit, len(devices), total)),
        )

    @app.get("/devices/{device_id}", response_model=DeviceResponse)
    def get_device(device_id: str, repository: SqlRepository = Depends(get_repository)):
        return _device_response(_get_device_or_404(repository, device_id))

    @app.get("/devices/{device_id}/status", response_model=DeviceStatusResponse)
    def device_status(device_id: str, repository: SqlRepository = Depends(get_repository)):
        device = _get_device_or_404(repository, device_id)
        return DeviceStatusResponse(
            device_id=device.device_id,
            device_name=device.device_name,
            is_online=_is_online(device),
            last_seen=as_utc(device.last_seen),
            battery_level=device.battery_level,
            signal_strength=device.signal_strength,
            connection_type=device.connection_type,
            firmware_version=device.firmware_version,
            uptime=device.uptime,
            location=device.location,
        )

    @app.put("/devices/{device_id}/thresholds", response_model=DeviceResponse)
    def update_thresholds(
        device_id: str,
        payload: ThresholdOverrides,
        repository: SqlRepository = Depends(get_repository),
    ):
        """Set per-device overrides. An explicit null falls back to the system default."""
        device = _get_device_or_404(repository, device_id)
        for name, value in payload.model_dump(exclude_unset=True).items():
            setattr(device, name, value)
        _check_threshold_ranges(device)
        return _device_response(repository.save_device(device))

    # =====================================================
    # Ingestion
    # =====================================================
    @app.post(
        "/data/sensor",
        response_model=IngestionResponse,
        status_code=201,
        dependencies=[Depends(_require_device_key)],
    )
    def ingest_sensor_data(
        request: Request,
        background_tasks: BackgroundTasks,
        payload: Any = Body(...),
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        """
        1. Validate the reading
        2. Classify it against the device's effective thresholds
        3. Persist the reading, the device status and one alert per
           classification in a single transaction
        4. Broadcast and notify in the background
        """
        reading_in = validate_reading(payload)
        device = _get_device_or_404(repository, reading_in.device_id)

        now = utcnow()
        ts = reading_in.timestamp or now
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)

        classifications = evaluate(reading_in, effective_thresholds(device))

        # If any row cannot be written nothing is stored or published
        reading = _reading_row(reading_in, device, ts)
        device = _refresh_device_status(device, reading_in, now)
        alerts = [build_alert(c, reading, device, now) for c in classifications]
        reading, device, alerts = repository.add_ingestion(reading, device, alerts)

        background_tasks.add_task(broadcaster.publish_reading, reading)
        for alert in alerts:
            logger.info(
                "Alert %s recorded: device=%s type=%s severity=%s",
                alert.id,
                alert.device_id,
                alert.type.value,
                alert.severity.value,
            )
            background_tasks.add_task(broadcaster.publish_alert, alert)
            background_tasks.add_task(
                dispatch_alert_notifications,
                request.app.state.engine,
                request.app.state.dispatcher,
                alert.id,
            )

        return IngestionResponse(
            message="Sensor data saved successfully",
            data_id=reading.id,
            alerts_generated=len(alerts),
            timestamp=ts,
        )

    # =====================================================
    # Readings
    # =====================================================
    @app.get(
        "/data/sensor/{device_id}", response_model=ReadingPage, response_model_exclude_none=True
    )
    def list_readings(
        device_id: str,
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
        repository: SqlRepository = Depends(get_repository),
    ):
        _get_device_or_404(repository, device_id)
        readings, total = repository.list_readings(
            device_id, start_date, end_date, page_offset(page, limit), limit
        )
        return ReadingPage(
            items=[reading_response(r) for r in readings],
            pagination=PaginationInfo(**paginate(page, limit, len(readings), total)),
        )

    @app.get(
        "/data/sensor/{device_id}/latest",
        response_model=ReadingResponse,
        response_model_exclude_none=True,
    )
    def latest_reading(
        device_id: str,
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        """
        Return the most recent reading for a device.
        1) Try Redis cache
        2) Fallback to DB and refresh the cache
        """
        cached = broadcaster.cached_latest(device_id)
        if cached:
            return cached

        reading = repository.latest_reading(device_id)
        if reading is None:
            raise NotFoundError(f"No readings found for device {device_id}")

        broadcaster.cache_latest(reading)
        return reading_response(reading)

    @app.get("/data/sensor/{device_id}/analytics", response_model=ReadingAnalyticsResponse)
    def reading_analytics(
        device_id: str,
        time_range: str = Query("24h", alias="timeRange"),
        repository: SqlRepository = Depends(get_repository),
    ):
        if time_range not in TIME_RANGES:
            raise ValidationError(
                "Validation failed",
                [{"field": "timeRange", "message": f"must be one of {', '.join(TIME_RANGES)}"}],
            )
        _get_device_or_404(repository, device_id)

        now = utcnow()
        readings = repository.readings_between(device_id, time_range_start(time_range, now), now)
        return ReadingAnalyticsResponse(
            summary=summarize_readings(readings),
            trends=hourly_trends(readings),
            time_range=time_range,
            generated_at=now,
        )

    # =====================================================
    # Alerts: Query
    # =====================================================
    @app.get("/alerts", response_model=AlertPage)
    def list_alerts(
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        device_id: Optional[str] = Query(None, alias="deviceId"),
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
        page: int = Query(1, ge=1),
        limit: int = Query(50, ge=1, le=100),
        repository: SqlRepository = Depends(get_repository),
    ):
        filters = AlertFilter(
            status=status, severity=severity, device_id=device_id, start=start_date, end=end_date
        )
        alerts, total = repository.list_alerts(filters, page_offset(page, limit), limit)
        return AlertPage(
            items=[alert_response(a) for a in alerts],
            pagination=PaginationInfo(**paginate(page, limit, len(alerts), total)),
        )

    @app.get("/alerts/active/count", response_model=ActiveCountResponse)
    def active_alert_count(
        device_id: Optional[str] = Query(None, alias="deviceId"),
        repository: SqlRepository = Depends(get_repository),
    ):
        count = repository.count_alerts(AlertFilter(status=AlertStatus.ACTIVE, device_id=device_id))
        return ActiveCountResponse(active_alerts_count=count)

    @app.get("/alerts/statistics/summary", response_model=AlertStatisticsResponse)
    def alert_statistics(
        device_id: Optional[str] = Query(None, alias="deviceId"),
        start_date: Optional[datetime] = Query(None, alias="startDate"),
        end_date: Optional[datetime] = Query(None, alias="endDate"),
        repository: SqlRepository = Depends(get_repository),
    ):
        alerts = repository.alerts_matching(
            AlertFilter(device_id=device_id, start=start_date, end=end_date)
        )
        return AlertStatisticsResponse(
            summary=summarize_alerts(alerts),
            alert_types=alert_type_breakdown(alerts),
            # Type/severity grouping is a per-device view
            breakdown=type_severity_breakdown(alerts) if device_id else [],
            generated_at=utcnow(),
        )

    @app.post("/alerts/escalations/run", response_model=EscalationRunResponse)
    def run_escalations(request: Request, repository: SqlRepository = Depends(get_repository)):
        """On-demand escalation scan; an external scheduler is expected to poll this."""
        _require_admin(request)
        checked = repository.count_alerts(AlertFilter(status=AlertStatus.ACTIVE))
        escalated = run_escalation_scan(repository)
        for alert in escalated:
            logger.warning(
                "Alert %s escalated to level %s/%s",
                alert.id,
                alert.escalation_level,
                alert.max_escalation_level,
            )
        return EscalationRunResponse(checked=checked, escalated=[a.id for a in escalated])

    @app.get("/alerts/{alert_id}", response_model=AlertResponse)
    def get_alert(alert_id: uuid.UUID, repository: SqlRepository = Depends(get_repository)):
        alert = repository.get_alert(alert_id)
        if alert is None:
            raise NotFoundError("Alert not found")
        return alert_response(alert)

    # =====================================================
    # Alerts: Lifecycle
    # =====================================================
    @app.put("/alerts/{alert_id}/acknowledge", response_model=AlertResponse)
    def acknowledge(
        alert_id: uuid.UUID,
        payload: AlertActionRequest,
        background_tasks: BackgroundTasks,
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        alert = acknowledge_alert(repository, alert_id, payload.actor, payload.notes)
        background_tasks.add_task(broadcaster.publish_alert_update, alert, payload.actor)
        return alert_response(alert)

    @app.put("/alerts/{alert_id}/resolve", response_model=AlertResponse)
    def resolve(
        alert_id: uuid.UUID,
        payload: AlertActionRequest,
        background_tasks: BackgroundTasks,
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        alert = resolve_alert(repository, alert_id, payload.actor, payload.notes)
        background_tasks.add_task(broadcaster.publish_alert_update, alert, payload.actor)
        return alert_response(alert)

    @app.put("/alerts/{alert_id}/false-positive", response_model=AlertResponse)
    def false_positive(
        alert_id: uuid.UUID,
        payload: AlertActionRequest,
        background_tasks: BackgroundTasks,
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        alert = mark_false_positive_alert(repository, alert_id, payload.actor, payload.notes)
        background_tasks.add_task(broadcaster.publish_alert_update, alert, payload.actor)
        return alert_response(alert)

    @app.post("/alerts/{alert_id}/escalate", response_model=AlertResponse)
    def escalate(
        alert_id: uuid.UUID,
        background_tasks: BackgroundTasks,
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        alert = escalate_alert(repository, alert_id)
        background_tasks.add_task(broadcaster.publish_alert_update, alert)
        return alert_response(alert)

    # =====================================================
    # Maintenance (Admin only)
    # =====================================================
    @app.post("/maintenance/purge", response_model=PurgeResponse)
    def purge(
        request: Request,
        repository: SqlRepository = Depends(get_repository),
        settings: Settings = Depends(get_settings),
    ):
        _require_admin(request)
        return purge_expired(repository, settings)

    @app.delete("/data/sensor/{device_id}", response_model=DeleteResponse)
    def delete_sensor_data(
        request: Request,
        device_id: str,
        older_than: Optional[int] = Query(None, alias="olderThan", ge=0),
        repository: SqlRepository = Depends(get_repository),
        broadcaster: Broadcaster = Depends(get_broadcaster),
    ):
        """Delete a device's readings, or only those captured more than `olderThan` days ago."""
        _require_admin(request)
        deleted = repository.delete_device_readings(device_id, _days_ago(older_than))
        broadcaster.forget_latest(device_id)
        logger.info("Deleted %s readings for device %s", deleted, device_id)
        return DeleteResponse(
            message=f"Successfully deleted {deleted} sensor data records", deleted_count=deleted
        )

    @app.delete("/alerts/bulk", response_model=DeleteResponse)
    def bulk_delete_alerts(
        request: Request,
        status: Optional[List[AlertStatus]] = Query(None),
        older_than: Optional[int] = Query(None, alias="olderThan", ge=0),
        repository: SqlRepository = Depends(get_repository),
    ):
        """Delete alerts by status (default: resolved and false positives), optionally by age."""
        _require_admin(request)
        statuses = status or list(CLOSED_STATUSES)
        deleted = repository.delete_alerts(statuses, _days_ago(older_than))
        logger.info("Bulk deleted %s alerts with status in %s", deleted, [s.value for s in statuses])
        return DeleteResponse(message=f"Successfully deleted {deleted} alerts", deleted_count=deleted)


app = create_app()
