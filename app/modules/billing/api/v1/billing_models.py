from decimal import Decimal
from typing import Optional

from pydantic import Field

from app.schemas.resources import CamelModel


class BudgetAlertCreate(CamelModel):
    threshold_percent: int = Field(ge=1, le=100)  # percent of monthly_limit
    monthly_limit: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    message: Optional[str] = Field(default=None, max_length=500)
