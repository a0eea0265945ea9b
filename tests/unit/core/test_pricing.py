from decimal import Decimal

import pytest

from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    INSTANCE_MONTHLY_PRICES,
    estimate_database_cost,
    estimate_instance_cost,
    estimate_storage_cost,
    format_monthly_cost,
)
from app.shared.core.provider import SUPPORTED_PROVIDERS


@pytest.mark.parametrize("provider", SUPPORTED_PROVIDERS)
def test_default_sku_is_priced(provider):
    assert DEFAULT_INSTANCE_SKU[provider] in INSTANCE_MONTHLY_PRICES[provider]


@pytest.mark.parametrize("sku", [None, "", "x9.enormous"])
def test_unknown_sku_falls_back_to_provider_default(sku):
    assert estimate_instance_cost("aws", sku) == INSTANCE_MONTHLY_PRICES["aws"]["t3.micro"]


def test_known_sku_price():
    assert estimate_instance_cost("ibm", "cx2-4x8") == Decimal("76.80")


def test_database_plan_tiers():
    assert estimate_database_cost("azure") == Decimal("45.60")
    assert estimate_database_cost("azure", "Standard-S2") == Decimal("156.78")


def test_unknown_provider_is_free_rather_than_error():
    assert estimate_instance_cost("oracle", "any") == Decimal("0.00")
    assert estimate_storage_cost("oracle") == Decimal("0.00")


@pytest.mark.parametrize(
    "amount,expected",
    [
        (Decimal("45.6"), "$45.60/month"),
        (7, "$7.00/month"),
        ("12.345", "$12.35/month"),
    ],
)
def test_format_monthly_cost(amount, expected):
    assert format_monthly_cost(amount) == expected
