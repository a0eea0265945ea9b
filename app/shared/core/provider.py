from __future__ import annotations

from typing import Any

from app.shared.core.exceptions import NotFoundError

SUPPORTED_PROVIDERS: tuple[str, ...] = ("aws", "gcp", "azure", "ibm")


def normalize_provider(value: Any) -> str:
    """Return a canonical provider key or empty string when invalid/missing."""
    normalized = str(value or "").strip().lower()
    return normalized if normalized in SUPPORTED_PROVIDERS else ""


def require_provider(value: Any) -> str:
    provider = normalize_provider(value)
    if not provider:
        raise NotFoundError(
            "Provider not found",
            details={"provider": str(value), "supported": list(SUPPORTED_PROVIDERS)},
        )
    return provider
