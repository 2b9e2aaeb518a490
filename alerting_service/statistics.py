"""
Read-side aggregations over alerts and readings.

Plain functions over rows fetched through the repository; no database
specific grouping features.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from alerting_service.models.models import Alert, Reading, as_utc
from alerting_service.models.schemas import (
    AlertSeverity,
    AlertStatus,
    AlertSummary,
    AlertTypeCount,
    HourlyTrend,
    ReadingSummary,
    TypeSeverityStat,
)

TIME_RANGES: Dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_TIME_RANGE = "24h"


def time_range_start(time_range: str, now: datetime) -> datetime:
    """Window start for an analytics range; unknown ranges mean 24h."""
    return now - TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE])


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _min(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def _max(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


# =====================================================
# Alerts
# =====================================================
def summarize_alerts(alerts: Sequence[Alert]) -> AlertSummary:
    statuses = Counter(a.status for a in alerts)
    severities = Counter(a.severity for a in alerts)
    return AlertSummary(
        total_alerts=len(alerts),
        active_alerts=statuses[AlertStatus.ACTIVE],
        acknowledged_alerts=statuses[AlertStatus.ACKNOWLEDGED],
        resolved_alerts=statuses[AlertStatus.RESOLVED],
        false_positive_alerts=statuses[AlertStatus.FALSE_POSITIVE],
        info_alerts=severities[AlertSeverity.INFO],
        warning_alerts=severities[AlertSeverity.WARNING],
        critical_alerts=severities[AlertSeverity.CRITICAL],
        emergency_alerts=severities[AlertSeverity.EMERGENCY],
        avg_response_time=_mean(a.response_time for a in alerts),
    )


def alert_type_breakdown(alerts: Sequence[Alert]) -> List[AlertTypeCount]:
    """Per-type counts, most frequent first."""
    grouped: Dict = defaultdict(list)
    for alert in alerts:
        grouped[alert.type].append(alert)
    rows = [
        AlertTypeCount(
            type=alert_type,
            count=len(items),
            avg_response_time=_mean(a.response_time for a in items),
        )
        for alert_type, items in grouped.items()
    ]
    return sorted(rows, key=lambda row: row.count, reverse=True)


def type_severity_breakdown(alerts: Sequence[Alert]) -> List[TypeSeverityStat]:
    """Counts per (type, severity) with how many were resolved / false positives."""
    grouped: Dict = defaultdict(list)
    for alert in alerts:
        grouped[(alert.type, alert.severity)].append(alert)
    rows = []
    for (alert_type, severity), items in grouped.items():
        rows.append(
            TypeSeverityStat(
                type=alert_type,
                severity=severity,
                count=len(items),
                avg_response_time=_mean(a.response_time for a in items),
                resolved=sum(1 for a in items if a.status == AlertStatus.RESOLVED),
                false_positives=sum(1 for a in items if a.status == AlertStatus.FALSE_POSITIVE),
            )
        )
    return sorted(rows, key=lambda row: row.count, reverse=True)


# =====================================================
# Readings
# =====================================================
def summarize_readings(readings: Sequence[Reading]) -> ReadingSummary:
    if not readings:
        return ReadingSummary()
    return ReadingSummary(
        count=len(readings),
        avg_heart_rate=_mean(r.heart_rate for r in readings),
        min_heart_rate=_min(r.heart_rate for r in readings),
        max_heart_rate=_max(r.heart_rate for r in readings),
        avg_spo2=_mean(r.spo2 for r in readings),
        min_spo2=_min(r.spo2 for r in readings),
        avg_temperature=_mean(r.body_temperature for r in readings),
        min_temperature=_min(r.body_temperature for r in readings),
        max_temperature=_max(r.body_temperature for r in readings),
        avg_battery_level=_mean(r.battery_level for r in readings),
        min_battery_level=_min(r.battery_level for r in readings),
        fall_detections=sum(1 for r in readings if r.fall_detected),
    )


def hourly_trends(readings: Sequence[Reading]) -> List[HourlyTrend]:
    buckets: Dict[str, List[Reading]] = defaultdict(list)
    for reading in readings:
        buckets[as_utc(reading.timestamp).strftime("%Y-%m-%d %H:00")].append(reading)
    return [
        HourlyTrend(
            hour=hour,
            avg_heart_rate=_mean(r.heart_rate for r in items),
            avg_spo2=_mean(r.spo2 for r in items),
            avg_temperature=_mean(r.body_temperature for r in items),
            count=len(items),
        )
        for hour, items in sorted(buckets.items())
    ]
