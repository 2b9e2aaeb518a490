"""
Real-time Broadcaster over Redis pub/sub.

Channels:
    device-{deviceId}   per-device dashboards
    user-{userId}       the device owner's session(s)
    global              everything

Each message is a JSON envelope {"event": ..., "data": ...}. Publishing is
fire-and-forget: a subscriber that is not listening misses the event and a
Redis outage is logged, never raised. The last reading per device is also
cached at `latest:{deviceId}` for the latest-reading endpoint; a backfilled
reading older than the cached one leaves the cache alone.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from alerting_service.models.models import Alert, Reading, alert_response, as_utc, reading_response

logger = logging.getLogger("alerting-service.broadcaster")

GLOBAL_CHANNEL = "global"


def device_channel(device_id: str) -> str:
    return f"device-{device_id}"


def user_channel(user_id: str) -> str:
    return f"user-{user_id}"


def latest_key(device_id: str) -> str:
    return f"latest:{device_id}"


def reading_payload(reading: Reading) -> Dict[str, Any]:
    return reading_response(reading).model_dump(mode="json", by_alias=True, exclude_none=True)


def alert_payload(alert: Alert) -> Dict[str, Any]:
    return alert_response(alert).model_dump(mode="json", by_alias=True)


class Broadcaster:
    def __init__(self, redis_client):
        self.redis = redis_client

    def _publish(self, pipe, channel: str, event: str, data: Any) -> None:
        pipe.publish(channel, json.dumps({"event": event, "data": data}))

    def publish_reading(self, reading: Reading) -> None:
        data = reading_payload(reading)
        try:
            newest = self._is_newest(reading)
            pipe = self.redis.pipeline()
            self._publish(pipe, device_channel(reading.device_id), "sensor-data", data)
            self._publish(
                pipe, GLOBAL_CHANNEL, "global-sensor-data", {"deviceId": reading.device_id, "data": data}
            )
            if newest:
                pipe.set(latest_key(reading.device_id), json.dumps(data))
            pipe.execute()
        except RedisError as e:
            logger.warning("Redis publish failed for device %s: %s", reading.device_id, e)

    def _is_newest(self, reading: Reading) -> bool:
        cached = self.redis.get(latest_key(reading.device_id))
        if not cached:
            return True
        stamp = json.loads(cached).get("timestamp")
        if not stamp:
            return True
        cached_ts = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        return as_utc(reading.timestamp) >= cached_ts

    def publish_alert(self, alert: Alert) -> None:
        data = alert_payload(alert)
        try:
            pipe = self.redis.pipeline()
            if alert.user_id:
                self._publish(pipe, user_channel(alert.user_id), "alert", data)
            self._publish(pipe, device_channel(alert.device_id), "device-alert", data)
            self._publish(pipe, GLOBAL_CHANNEL, "global-alert", data)
            pipe.execute()
        except RedisError as e:
            logger.warning("Redis publish failed for alert %s: %s", alert.id, e)

    def publish_alert_update(self, alert: Alert, actor: Optional[str] = None) -> None:
        data = {"alertId": str(alert.id), "status": alert.status.value, "actor": actor}
        try:
            pipe = self.redis.pipeline()
            self._publish(pipe, device_channel(alert.device_id), "alert-updated", data)
            self._publish(pipe, GLOBAL_CHANNEL, "alert-updated", data)
            pipe.execute()
        except RedisError as e:
            logger.warning("Redis publish failed for alert update %s: %s", alert.id, e)

    def cached_latest(self, device_id: str) -> Optional[Dict[str, Any]]:
        try:
            cached = self.redis.get(latest_key(device_id))
        except RedisError as e:
            logger.warning("Redis get latest failed for device %s: %s", device_id, e)
            return None
        return json.loads(cached) if cached else None

    def cache_latest(self, reading: Reading) -> None:
        try:
            self.redis.set(latest_key(reading.device_id), json.dumps(reading_payload(reading)))
        except RedisError:
            # best-effort cache refresh
            logger.debug("Redis error refreshing latest cache", exc_info=True)

    def forget_latest(self, device_id: str) -> None:
        try:
            self.redis.delete(latest_key(device_id))
        except RedisError:
            # best-effort cache cleanup
            logger.debug("Redis error deleting latest cache", exc_info=True)

    def ping(self) -> bool:
        return bool(self.redis.ping())
