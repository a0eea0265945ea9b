"""
Monitoring, billing and security payloads are synthetic or estimated and
must say so.
"""
import random
from datetime import datetime

import pytest

from app.modules.billing.domain.estimates import (
    BILLING_FIXTURES,
    build_billing_overview,
    build_breakdown,
    default_budget_alerts,
)
from app.modules.monitoring.domain.telemetry import (
    METRIC_UNITS,
    build_alerts,
    build_metric_series,
    build_overview,
    filter_alerts,
)
from app.modules.security.domain.posture import (
    SECURITY_FIXTURES,
    compliance_summary,
    list_vulnerabilities,
    run_simulated_scan,
)

PROVIDERS = ["aws", "gcp", "azure", "ibm"]


class TestMonitoring:
    @pytest.mark.parametrize("provider", PROVIDERS)
    def test_overview_shape(self, provider):
        overview = build_overview(provider, random.Random(7))
        assert overview["synthetic"] is True
        assert len(overview["timeSeries"]) == 24
        assert set(overview["currentMetrics"]) == {"cpu", "memory", "network", "disk"}
        assert all(a["status"] == "active" for a in overview["alerts"])

    def test_health_follows_cpu_and_memory(self):
        for seed in range(20):
            overview = build_overview("aws", random.Random(seed))
            current = overview["currentMetrics"]
            expected = "healthy" if current["cpu"] < 80 and current["memory"] < 80 else "warning"
            assert overview["healthStatus"]["overall"] == expected

    def test_metric_series_summary_matches_points(self):
        series = build_metric_series("gcp", "memory", random.Random(3))
        values = [p["value"] for p in series["dataPoints"]]
        assert series["summary"]["max"] == max(values)
        assert series["summary"]["min"] == min(values)
        assert series["summary"]["current"] == values[-1]
        assert {p["unit"] for p in series["dataPoints"]} == {METRIC_UNITS["memory"]}

    def test_alert_filters(self):
        alerts = build_alerts("azure")
        assert all(a["status"] == "active" for a in filter_alerts(alerts))
        resolved = filter_alerts(alerts, status="resolved")
        assert resolved and all(a["status"] == "resolved" for a in resolved)
        high = filter_alerts(alerts, severity="high", status=None)
        assert [a["id"] for a in high] == ["alert-001"]
        assert high[0]["message"] == "High CPU usage on AZURE instance"
        assert high[0]["resource"] == "azure-instance-001"


class TestBilling:
    @pytest.mark.parametrize("provider", PROVIDERS)
    def test_overview_projection_and_history(self, provider):
        overview = build_billing_overview(provider, random.Random(1))
        current = float(BILLING_FIXTURES[provider]["currentCost"])
        assert overview["projectedAnnual"] == pytest.approx(current * 12)
        assert len(overview["costHistory"]) == 12
        dates = [datetime.fromisoformat(h["date"]) for h in overview["costHistory"]]
        assert dates == sorted(dates)
        assert len(overview["recentTransactions"]) == 3

    @pytest.mark.parametrize("provider", PROVIDERS)
    def test_breakdown_percentages_sum_to_100(self, provider):
        breakdown = build_breakdown(provider)
        assert sum(s["percentage"] for s in breakdown["breakdown"]) == 100
        assert breakdown["total"] == float(BILLING_FIXTURES[provider]["currentCost"])

    def test_default_budget_alerts(self):
        alerts = default_budget_alerts("aws")
        assert [a["id"] for a in alerts] == ["budget-001", "budget-002"]


class TestSecurity:
    def test_vulnerability_severity_filter(self):
        high = list_vulnerabilities("aws", "high")
        assert high["count"] == len(high["vulnerabilities"])
        assert all(v["severity"] == "high" for v in high["vulnerabilities"])
        assert high["summary"]["medium"] == 0

    @pytest.mark.parametrize("provider", PROVIDERS)
    def test_compliance_overall_is_mean(self, provider):
        summary = compliance_summary(provider)
        scores = [c["score"] for c in SECURITY_FIXTURES[provider]["compliance"]]
        assert summary["overallScore"] == round(sum(scores) / len(scores), 2)

    @pytest.mark.asyncio
    async def test_simulated_scan(self):
        result = await run_simulated_scan("ibm", "quick", 0, random.Random(5))
        assert result["status"] == "completed"
        assert result["scanType"] == "quick"
        assert result["scanId"].startswith("scan-")
        assert result["synthetic"] is True
