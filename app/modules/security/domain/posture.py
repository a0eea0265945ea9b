"""
Static security posture per provider.

No scanner is wired in; the figures below are fixtures and the scan endpoint
only simulates a run.
"""

import asyncio
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

SYNTHETIC_NOTE = "Simulated security data; no scanner is connected."

SECURITY_FIXTURES: dict[str, dict[str, Any]] = {
    "aws": {
        "score": 85,
        "metrics": [
            {"label": "Security Groups", "value": 28, "status": "good"},
            {"label": "IAM Policies", "value": 156, "status": "warning"},
            {"label": "Access Keys", "value": 12, "status": "good"},
            {"label": "Active Users", "value": 45, "status": "good"},
        ],
        "vulnerabilities": [
            {
                "id": "vuln-001",
                "severity": "high",
                "title": "Unrestricted SSH Access",
                "resource": "sg-1234567890abc",
                "description": "Security group allows SSH (port 22) from 0.0.0.0/0",
                "remediation": "Restrict SSH access to specific IP ranges",
                "cvss": 7.5,
            },
            {
                "id": "vuln-002",
                "severity": "medium",
                "title": "Unused Access Key",
                "resource": "AKIA...XYZ123",
                "description": "Access key has not been used in 90+ days",
                "remediation": "Remove or rotate unused access keys",
                "cvss": 5.3,
            },
            {
                "id": "vuln-003",
                "severity": "low",
                "title": "Weak Password Policy",
                "resource": "IAM Policy",
                "description": "Password policy does not require special characters",
                "remediation": "Update password policy requirements",
                "cvss": 3.1,
            },
        ],
        "compliance": [
            {"name": "SOC 2", "status": "compliant", "score": 98},
            {"name": "ISO 27001", "status": "compliant", "score": 95},
            {"name": "GDPR", "status": "warning", "score": 87},
            {"name": "HIPAA", "status": "non-compliant", "score": 72},
        ],
    },
    "gcp": {
        "score": 78,
        "metrics": [
            {"label": "Firewall Rules", "value": 22, "status": "good"},
            {"label": "IAM Bindings", "value": 134, "status": "good"},
            {"label": "Service Accounts", "value": 18, "status": "warning"},
            {"label": "Active Users", "value": 32, "status": "good"},
        ],
        "vulnerabilities": [
            {
                "id": "vuln-004",
                "severity": "high",
                "title": "Public Storage Bucket",
                "resource": "bucket-public-data",
                "description": "Storage bucket is publicly accessible",
                "remediation": "Configure proper access controls",
                "cvss": 8.2,
            },
        ],
        "compliance": [
            {"name": "SOC 2", "status": "compliant", "score": 92},
            {"name": "ISO 27001", "status": "warning", "score": 84},
            {"name": "GDPR", "status": "compliant", "score": 91},
        ],
    },
    "azure": {
        "score": 82,
        "metrics": [
            {"label": "Network Security Groups", "value": 31, "status": "good"},
            {"label": "Azure AD Policies", "value": 89, "status": "good"},
            {"label": "Key Vault Secrets", "value": 24, "status": "good"},
            {"label": "Active Users", "value": 38, "status": "good"},
        ],
        "vulnerabilities": [
            {
                "id": "vuln-005",
                "severity": "medium",
                "title": "Outdated VM Extensions",
                "resource": "vm-web-server-01",
                "description": "Virtual machine has outdated security extensions",
                "remediation": "Update VM extensions to latest versions",
                "cvss": 6.1,
            },
        ],
        "compliance": [
            {"name": "SOC 2", "status": "compliant", "score": 96},
            {"name": "ISO 27001", "status": "compliant", "score": 89},
            {"name": "GDPR", "status": "compliant", "score": 93},
        ],
    },
    "ibm": {
        "score": 80,
        "metrics": [
            {"label": "Security Groups", "value": 19, "status": "good"},
            {"label": "IAM Access Policies", "value": 74, "status": "good"},
            {"label": "API Keys", "value": 9, "status": "warning"},
            {"label": "Active Users", "value": 21, "status": "good"},
        ],
        "vulnerabilities": [
            {
                "id": "vuln-006",
                "severity": "medium",
                "title": "Public Object Storage Bucket",
                "resource": "ibm-cos-001",
                "description": "Bucket grants public read access",
                "remediation": "Remove the public access group policy",
                "cvss": 5.8,
            },
        ],
        "compliance": [
            {"name": "SOC 2", "status": "compliant", "score": 94},
            {"name": "ISO 27001", "status": "compliant", "score": 90},
            {"name": "GDPR", "status": "warning", "score": 86},
        ],
    },
}


def _access_management(now: datetime) -> list[dict[str, Any]]:
    return [
        {
            "id": "user-001",
            "name": "John Doe",
            "email": "john@company.com",
            "role": "Admin",
            "lastAccess": (now - timedelta(hours=2)).isoformat(),
            "status": "active",
        },
        {
            "id": "user-002",
            "name": "Jane Smith",
            "email": "jane@company.com",
            "role": "Developer",
            "lastAccess": (now - timedelta(days=1)).isoformat(),
            "status": "active",
        },
        {
            "id": "user-003",
            "name": "Bob Wilson",
            "email": "bob@company.com",
            "role": "Viewer",
            "lastAccess": (now - timedelta(days=7)).isoformat(),
            "status": "inactive",
        },
    ]


def build_security_overview(provider: str) -> dict[str, Any]:
    now = datetime.now(timezone.utc)
    fixture = SECURITY_FIXTURES[provider]
    return {
        "score": fixture["score"],
        "metrics": [dict(m) for m in fixture["metrics"]],
        "vulnerabilities": [dict(v) for v in fixture["vulnerabilities"]],
        "compliance": [dict(c) for c in fixture["compliance"]],
        "accessManagement": _access_management(now),
        "lastScan": (now - timedelta(hours=6)).isoformat(),
        "nextScan": (now + timedelta(hours=18)).isoformat(),
    }


def list_vulnerabilities(
    provider: str, severity: Optional[str] = None
) -> dict[str, Any]:
    vulnerabilities = [dict(v) for v in SECURITY_FIXTURES[provider]["vulnerabilities"]]
    if severity:
        vulnerabilities = [v for v in vulnerabilities if v["severity"] == severity]
    return {
        "vulnerabilities": vulnerabilities,
        "count": len(vulnerabilities),
        "summary": {
            level: sum(1 for v in vulnerabilities if v["severity"] == level)
            for level in ("high", "medium", "low")
        },
    }


def compliance_summary(provider: str) -> dict[str, Any]:
    compliance = [dict(c) for c in SECURITY_FIXTURES[provider]["compliance"]]
    overall = sum(c["score"] for c in compliance) / len(compliance)
    return {"compliance": compliance, "overallScore": round(overall, 2)}


async def run_simulated_scan(
    provider: str,
    scan_type: str,
    delay_seconds: float,
    rng: Optional[random.Random] = None,
) -> dict[str, Any]:
    """Waits out the configured delay, then reports made-up findings."""
    rng = rng or random.Random()
    if delay_seconds > 0:
        await asyncio.sleep(delay_seconds)
    return {
        "provider": provider,
        "scanType": scan_type,
        "status": "completed",
        "scanId": f"scan-{int(time.time() * 1000)}",
        "results": {
            "vulnerabilitiesFound": rng.randint(1, 10),
            "newIssues": rng.randint(0, 2),
            "resolvedIssues": rng.randint(0, 1),
            "scanDuration": "2m 34s",
        },
        "synthetic": True,
        "note": SYNTHETIC_NOTE,
    }
