"""
Notification Dispatcher.

Best-effort fan-out for newly recorded alerts. Every configured channel gets
exactly one attempt per dispatch; the attempt is counted on the alert
whether or not it succeeded, and a failure never reaches the caller.
"""

import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol

import httpx
from sqlalchemy.engine import Engine
from sqlmodel import Session

from alerting_service.config import Settings
from alerting_service.errors import DispatchError, PersistenceError
from alerting_service.models.models import Alert, alert_response, utcnow
from alerting_service.models.schemas import (
    ContextSnapshot,
    NotificationChannel,
    NotificationRecipient,
    NotificationState,
)
from alerting_service.repository import SqlRepository

logger = logging.getLogger("alerting-service.notifications")


class NotificationTransport(Protocol):
    def send(
        self, channel: NotificationChannel, recipient: NotificationRecipient, alert: Alert
    ) -> bool: ...


# =====================================================
# Transports
# =====================================================
class LoggingTransport:
    """Log-only stand-in used for channels with no real provider."""

    def send(self, channel, recipient, alert) -> bool:
        logger.info(
            "notify channel=%s to=%s alert=%s severity=%s message=%s",
            channel.value,
            recipient.address,
            alert.id,
            alert.severity.value,
            alert.message,
        )
        return True


class TwilioSmsTransport:
    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        test_mode: bool = False,
        timeout: float = 5.0,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.test_mode = test_mode
        self.timeout = timeout

    def send(self, channel, recipient, alert) -> bool:
        if channel != NotificationChannel.SMS:
            return False

        if self.test_mode:
            # Mock sending for local/dev
            logger.info("Twilio TEST MODE: mock-sent alert %s to %s", alert.id, recipient.address)
            return True

        if not (self.account_sid and self.auth_token and self.from_number):
            raise DispatchError("missing-twilio-config")

        url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json"
        form = {
            "From": self.from_number,
            "To": recipient.address,
            "Body": f"{alert.title}: {alert.message}",
        }
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(url, data=form, auth=(self.account_sid, self.auth_token))
        if resp.status_code in (200, 201):
            return True
        raise DispatchError(f"twilio-error: {resp.text}")


class WebhookTransport:
    def __init__(self, timeout: float = 3.0):
        self.timeout = timeout

    def send(self, channel, recipient, alert) -> bool:
        body = alert_response(alert).model_dump(mode="json", by_alias=True)
        with httpx.Client(timeout=self.timeout) as client:
            resp = client.post(recipient.address, json=body)
        return resp.is_success


class ChannelRouter:
    """Picks a transport per channel, falling back to `default`."""

    def __init__(
        self,
        routes: Dict[NotificationChannel, NotificationTransport],
        default: NotificationTransport,
    ):
        self.routes = routes
        self.default = default

    def send(self, channel, recipient, alert) -> bool:
        return self.routes.get(channel, self.default).send(channel, recipient, alert)


def build_transport(settings: Settings) -> NotificationTransport:
    routes: Dict[NotificationChannel, NotificationTransport] = {}
    if settings.TWILIO_TEST_MODE or settings.TWILIO_ACCOUNT_SID:
        routes[NotificationChannel.SMS] = TwilioSmsTransport(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_FROM_NUMBER,
            test_mode=settings.TWILIO_TEST_MODE,
        )
    if settings.WEBHOOK_URL:
        routes[NotificationChannel.WEBHOOK] = WebhookTransport()
    return ChannelRouter(routes, default=LoggingTransport())


# =====================================================
# Delivery tracking
# =====================================================
def update_notification_status(
    alert: Alert,
    channel: NotificationChannel,
    success: bool,
    recipient: Optional[NotificationRecipient] = None,
    now: Optional[datetime] = None,
) -> Alert:
    now = now or utcnow()
    state = NotificationState.model_validate(alert.notifications or {})
    key = channel.value

    state.attempts[key] = state.attempts.get(key, 0) + 1
    state.last_attempt[key] = now

    if success:
        state.sent[key] = True
        if recipient is not None:
            existing = next((r for r in state.recipients if r.address == recipient.address), None)
            if existing is not None:
                existing.delivered = True
                existing.delivered_at = now
            else:
                state.recipients.append(
                    recipient.model_copy(update={"delivered": True, "delivered_at": now})
                )

    # Reassign so the JSON column is flagged dirty
    alert.notifications = state.model_dump(mode="json")
    return alert


def recipient_for(
    channel: NotificationChannel, alert: Alert, webhook_url: Optional[str] = None
) -> Optional[NotificationRecipient]:
    context = ContextSnapshot.model_validate(alert.context or {})
    contact = context.emergency_contact

    if channel == NotificationChannel.SMS and contact is not None and contact.phone:
        return NotificationRecipient(
            type=channel, address=contact.phone, name=contact.name, relationship=contact.relationship
        )
    if channel == NotificationChannel.EMAIL and contact is not None and contact.email:
        return NotificationRecipient(
            type=channel, address=contact.email, name=contact.name, relationship=contact.relationship
        )
    if channel == NotificationChannel.PUSH and alert.user_id:
        return NotificationRecipient(type=channel, address=alert.user_id, name=context.patient_name)
    if channel == NotificationChannel.WEBHOOK and webhook_url:
        return NotificationRecipient(type=channel, address=webhook_url)
    return None


class NotificationDispatcher:
    def __init__(
        self,
        transport: NotificationTransport,
        channels: Iterable[NotificationChannel],
        webhook_url: Optional[str] = None,
    ):
        self.transport = transport
        self.channels = tuple(channels)
        self.webhook_url = webhook_url

    def _attempt(self, channel, recipient, alert) -> bool:
        if recipient is None:
            logger.info("No %s recipient for alert %s", channel.value, alert.id)
            return False
        try:
            return bool(self.transport.send(channel, recipient, alert))
        except Exception as e:
            # Transport failures are counted on the alert, never propagated
            err = e if isinstance(e, DispatchError) else DispatchError(str(e))
            logger.warning(
                "Notification via %s failed for alert %s: %s", channel.value, alert.id, err.message
            )
            return False

    def dispatch(self, alert: Alert, now: Optional[datetime] = None) -> Alert:
        logger.warning(
            "ALERT: %s - %s device=%s patient=%s",
            alert.severity.value.upper(),
            alert.message,
            alert.device_id,
            (alert.context or {}).get("patient_name"),
        )
        for channel in self.channels:
            recipient = recipient_for(channel, alert, self.webhook_url)
            success = self._attempt(channel, recipient, alert)
            update_notification_status(alert, channel, success, recipient, now)
        return alert


def dispatch_alert_notifications(
    engine: Engine, dispatcher: NotificationDispatcher, alert_id: uuid.UUID
) -> None:
    """
    Background task run after the ingestion response is sent.
    Opens its own session since the request session is already closed.
    """
    with Session(engine) as session:
        repository = SqlRepository(session)
        try:
            alert = repository.get_alert(alert_id)
            if alert is None:
                logger.warning("Alert %s vanished before dispatch", alert_id)
                return
            dispatcher.dispatch(alert)
            repository.save_alert(alert)
        except PersistenceError as e:
            logger.error("Failed to record notification attempts for %s: %s", alert_id, e)
