"""
Placeholder telemetry for the monitoring dashboard.

Nothing here is measured: every value is generated per request and every
payload is tagged ``synthetic``. Per-resource samples come from the
inventory service instead.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from app.shared.adapters.base import METRIC_FIELDS

SYNTHETIC_NOTE = "Placeholder telemetry; values are generated, not measured."
HEALTH_THRESHOLD = 80
SERIES_POINTS = 24

METRIC_UNITS = {"cpu": "%", "memory": "%", "network": "GB/s", "disk": "%"}

_ALERT_TEMPLATES: tuple[dict[str, Any], ...] = (
    {"id": "alert-001", "severity": "high", "resource": "{provider}-instance-001", "minutes_ago": 2, "status": "active"},
    {"id": "alert-002", "severity": "medium", "resource": "{provider}-db-001", "minutes_ago": 15, "status": "active"},
    {"id": "alert-003", "severity": "low", "resource": "{provider}-storage-001", "minutes_ago": 60, "status": "resolved"},
)
_ALERT_MESSAGES = {
    "alert-001": "High CPU usage on {upper} instance",
    "alert-002": "Memory usage approaching threshold",
    "alert-003": "Disk space warning",
}


def _value(field: str, rng: random.Random) -> float:
    upper = 10.0 if field == "network" else 100.0
    return round(rng.uniform(0, upper), 2)


def build_alerts(provider: str, now: Optional[datetime] = None) -> list[dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    alerts = []
    for template in _ALERT_TEMPLATES:
        alerts.append(
            {
                "id": template["id"],
                "severity": template["severity"],
                "message": _ALERT_MESSAGES[template["id"]].format(upper=provider.upper()),
                "resource": template["resource"].format(provider=provider),
                "timestamp": (now - timedelta(minutes=template["minutes_ago"])).isoformat(),
                "status": template["status"],
            }
        )
    return alerts


def filter_alerts(
    alerts: list[dict[str, Any]],
    severity: Optional[str] = None,
    status: Optional[str] = "active",
) -> list[dict[str, Any]]:
    if severity:
        alerts = [a for a in alerts if a["severity"] == severity]
    if status:
        alerts = [a for a in alerts if a["status"] == status]
    return alerts


def build_overview(
    provider: str, rng: Optional[random.Random] = None
) -> dict[str, Any]:
    rng = rng or random.Random()
    now = datetime.now(timezone.utc)
    current = {field: _value(field, rng) for field in METRIC_FIELDS}

    time_series = [
        {
            "timestamp": (now - timedelta(hours=SERIES_POINTS - 1 - i)).isoformat(),
            **{field: _value(field, rng) for field in METRIC_FIELDS},
        }
        for i in range(SERIES_POINTS)
    ]
    healthy = current["cpu"] < HEALTH_THRESHOLD and current["memory"] < HEALTH_THRESHOLD
    return {
        "provider": provider,
        "currentMetrics": current,
        "timeSeries": time_series,
        "alerts": filter_alerts(build_alerts(provider, now)),
        "healthStatus": {
            "overall": "healthy" if healthy else "warning",
            "services": {
                "compute": rng.randint(20, 49),
                "database": rng.randint(5, 14),
                "storage": rng.randint(10, 29),
                "network": rng.randint(8, 22),
            },
        },
        "synthetic": True,
        "note": SYNTHETIC_NOTE,
    }


def build_metric_series(
    provider: str,
    metric: str,
    rng: Optional[random.Random] = None,
) -> dict[str, Any]:
    """24 hourly points for one metric plus a summary over them."""
    rng = rng or random.Random()
    now = datetime.now(timezone.utc)
    unit = METRIC_UNITS[metric]
    points = [
        {
            "timestamp": (now - timedelta(hours=SERIES_POINTS - 1 - i)).isoformat(),
            "value": round(rng.uniform(0, 100), 2),
            "unit": unit,
        }
        for i in range(SERIES_POINTS)
    ]
    values = [p["value"] for p in points]
    return {
        "provider": provider,
        "metric": metric,
        "dataPoints": points,
        "summary": {
            "current": values[-1],
            "average": round(sum(values) / len(values), 2),
            "max": max(values),
            "min": min(values),
        },
        "synthetic": True,
        "note": SYNTHETIC_NOTE,
    }
