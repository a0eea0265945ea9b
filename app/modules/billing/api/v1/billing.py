"""
Billing API Endpoints

Provides:
- GET /billing/{provider} - Estimated costs, history and budget alerts
- GET /billing/{provider}/breakdown - Cost by service
- GET /billing/{provider}/alerts - Default plus stored budget alerts
- POST /billing/{provider}/alerts - Store a budget alert for the caller
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.billing.api.v1.billing_models import BudgetAlertCreate
from app.modules.billing.domain.budget_alerts import (
    BudgetAlertService,
    serialize_budget_alert,
)
from app.modules.billing.domain.estimates import (
    ESTIMATE_NOTE,
    build_billing_overview,
    build_breakdown,
    default_budget_alerts,
)
from app.shared.core.auth import CurrentUser, requires_role
from app.shared.core.logging import audit_log
from app.shared.core.provider import require_provider
from app.shared.db.session import get_db

logger = structlog.get_logger()
router = APIRouter(tags=["Billing"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/{provider}")
async def get_billing(
    provider: str,
    period: str = Query(default="current"),
    user: CurrentUser = Depends(requires_role("user")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    return {
        "provider": provider,
        "period": period,
        "billing": build_billing_overview(provider),
        "estimated": True,
        "note": ESTIMATE_NOTE,
        "timestamp": _timestamp(),
    }


@router.get("/{provider}/breakdown")
async def get_cost_breakdown(
    provider: str,
    group_by: str = Query(default="service", alias="groupBy"),
    period: str = Query(default="month"),
    user: CurrentUser = Depends(requires_role("user")),
) -> dict[str, Any]:
    provider = require_provider(provider)
    return {
        "provider": provider,
        "groupBy": group_by,
        "period": period,
        **build_breakdown(provider),
        "estimated": True,
        "note": ESTIMATE_NOTE,
        "timestamp": _timestamp(),
    }


@router.get("/{provider}/alerts")
async def get_budget_alerts(
    provider: str,
    user: CurrentUser = Depends(requires_role("user")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    provider = require_provider(provider)
    stored = await BudgetAlertService(db).list_for_user(user.id, provider)
    alerts = default_budget_alerts(provider) + [
        serialize_budget_alert(a) for a in stored
    ]
    return {
        "provider": provider,
        "alerts": alerts,
        "count": len(alerts),
        "estimated": True,
        "note": ESTIMATE_NOTE,
        "timestamp": _timestamp(),
    }


@router.post("/{provider}/alerts", status_code=201)
async def create_budget_alert(
    provider: str,
    request: BudgetAlertCreate,
    user: CurrentUser = Depends(requires_role("user")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    provider = require_provider(provider)
    alert = await BudgetAlertService(db).create(
        user_id=user.id,
        provider=provider,
        threshold_percent=request.threshold_percent,
        monthly_limit=request.monthly_limit,
        message=request.message,
    )
    audit_log("budget_alert_created", user.id, {"provider": provider, "alert_id": str(alert.id)})
    return {
        "message": "Budget alert created successfully",
        "alert": serialize_budget_alert(alert),
        "estimated": True,
        "note": ESTIMATE_NOTE,
        "timestamp": _timestamp(),
    }
