from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from app.modules.security.domain.posture import (
    SYNTHETIC_NOTE,
    build_security_overview,
    compliance_summary,
    list_vulnerabilities,
    run_simulated_scan,
)
from app.schemas.resources import CamelModel
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.config import get_settings
from app.shared.core.logging import audit_log
from app.shared.core.provider import require_provider

router = APIRouter(tags=["Security"])


class ScanRequest(CamelModel):
    scan_type: str = Field(default="full", max_length=32)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/{provider}")
async def get_security_overview(
    provider: str,
    user: CurrentUser = Depends(requires_role("admin")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    return {
        "provider": provider,
        "security": build_security_overview(provider),
        "synthetic": True,
        "note": SYNTHETIC_NOTE,
        "timestamp": _timestamp(),
    }


@router.get("/{provider}/vulnerabilities")
async def get_vulnerabilities(
    provider: str,
    severity: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(requires_role("admin")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    return {
        "provider": provider,
        **list_vulnerabilities(provider, severity),
        "synthetic": True,
        "timestamp": _timestamp(),
    }


@router.post("/{provider}/scan")
async def run_security_scan(
    provider: str,
    request: Optional[ScanRequest] = None,
    user: CurrentUser = Depends(requires_role("admin")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    scan_type = (request or ScanRequest()).scan_type
    audit_log("security_scan_requested", user.id, {"provider": provider, "scan_type": scan_type})
    result = await run_simulated_scan(
        provider, scan_type, get_settings().SECURITY_SCAN_DELAY_SECONDS
    )
    return {**result, "timestamp": _timestamp()}


@router.get("/{provider}/compliance")
async def get_compliance(
    provider: str,
    user: CurrentUser = Depends(requires_role("admin")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    return {
        "provider": provider,
        **compliance_summary(provider),
        "synthetic": True,
        "timestamp": _timestamp(),
    }
