from decimal import Decimal
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.budget_alert import BudgetAlert

logger = structlog.get_logger()


def serialize_budget_alert(alert: BudgetAlert) -> dict[str, Any]:
    return {
        "id": str(alert.id),
        "type": "budget",
        "message": alert.message
        or f"Alert at {alert.threshold_percent}% of {alert.monthly_limit} monthly limit",
        "threshold": alert.threshold_percent,
        "limit": float(alert.monthly_limit),
        "severity": "medium",
        "createdAt": alert.created_at.isoformat() if alert.created_at else None,
    }


class BudgetAlertService:
    """Stores and lists per-user budget alerts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: str,
        provider: str,
        threshold_percent: int,
        monthly_limit: Decimal,
        message: Optional[str] = None,
    ) -> BudgetAlert:
        alert = BudgetAlert(
            user_id=user_id,
            provider=provider,
            threshold_percent=threshold_percent,
            monthly_limit=monthly_limit,
            message=message,
        )
        self.db.add(alert)
        await self.db.commit()
        await self.db.refresh(alert)
        logger.info(
            "budget_alert_created",
            user_id=user_id,
            provider=provider,
            threshold_percent=threshold_percent,
        )
        return alert

    async def list_for_user(self, user_id: str, provider: str) -> list[BudgetAlert]:
        result = await self.db.execute(
            select(BudgetAlert)
            .where(BudgetAlert.user_id == user_id, BudgetAlert.provider == provider)
            .order_by(BudgetAlert.created_at.desc())
        )
        return list(result.scalars().all())
