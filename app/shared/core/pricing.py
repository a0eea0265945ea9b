"""
Static monthly price estimates (USD) per provider SKU.

These are display estimates only. Lookups are total: an unknown or missing
SKU resolves to the provider's default SKU price.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

INSTANCE_MONTHLY_PRICES: dict[str, dict[str, Decimal]] = {
    "aws": {
        "t2.micro": Decimal("8.47"),
        "t2.small": Decimal("16.94"),
        "t3.micro": Decimal("7.59"),
        "t3.small": Decimal("15.18"),
        "t3.medium": Decimal("30.37"),
        "t3.large": Decimal("60.74"),
        "m5.large": Decimal("70.08"),
        "m5.xlarge": Decimal("140.16"),
        "c5.large": Decimal("62.05"),
    },
    "gcp": {
        "e2-micro": Decimal("5.84"),
        "e2-small": Decimal("11.68"),
        "e2-medium": Decimal("23.36"),
        "e2-standard-2": Decimal("46.72"),
        "e2-standard-4": Decimal("93.44"),
        "n1-standard-1": Decimal("24.27"),
        "n1-standard-2": Decimal("48.54"),
        "n1-standard-4": Decimal("97.09"),
    },
    "azure": {
        "Standard_B1s": Decimal("7.59"),
        "Standard_B1ms": Decimal("15.18"),
        "Standard_B2s": Decimal("30.37"),
        "Standard_D2s_v3": Decimal("70.08"),
        "Standard_D4s_v3": Decimal("140.16"),
        "Standard_F2s_v2": Decimal("61.32"),
    },
    "ibm": {
        "bx2-2x8": Decimal("45.60"),
        "bx2-4x16": Decimal("91.20"),
        "bx2-8x32": Decimal("182.40"),
        "cx2-2x4": Decimal("38.40"),
        "cx2-4x8": Decimal("76.80"),
        "mx2-2x16": Decimal("67.20"),
        "mx2-4x32": Decimal("134.40"),
    },
}

DEFAULT_INSTANCE_SKU: dict[str, str] = {
    "aws": "t3.micro",
    "gcp": "e2-medium",
    "azure": "Standard_B2s",
    "ibm": "bx2-2x8",
}

DATABASE_MONTHLY_PRICES: dict[str, dict[str, Decimal]] = {
    "aws": {"default": Decimal("45.00"), "standard": Decimal("78.90")},
    "gcp": {"default": Decimal("45.60"), "standard": Decimal("89.12")},
    "azure": {"default": Decimal("45.60"), "standard": Decimal("156.78")},
    "ibm": {"default": Decimal("45.60"), "standard": Decimal("89.12")},
}

STORAGE_MONTHLY_PRICE: dict[str, Decimal] = {
    "aws": Decimal("23.00"),
    "gcp": Decimal("20.00"),
    "azure": Decimal("18.40"),
    "ibm": Decimal("48.30"),
}

_CENTS = Decimal("0.01")


def estimate_instance_cost(provider: str, sku: Optional[str]) -> Decimal:
    table = INSTANCE_MONTHLY_PRICES.get(provider, {})
    default_sku = DEFAULT_INSTANCE_SKU.get(provider, "")
    if sku and sku in table:
        return table[sku]
    return table.get(default_sku, Decimal("0.00"))


def estimate_database_cost(provider: str, plan: Optional[str] = None) -> Decimal:
    table = DATABASE_MONTHLY_PRICES.get(provider, {"default": Decimal("0.00")})
    if plan and "standard" in plan.lower():
        return table["standard"]
    return table["default"]


def estimate_storage_cost(provider: str) -> Decimal:
    return STORAGE_MONTHLY_PRICE.get(provider, Decimal("0.00"))


def format_monthly_cost(amount: Any) -> str:
    """Render an amount as ``$45.60/month``."""
    value = Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return f"${value}/month"
