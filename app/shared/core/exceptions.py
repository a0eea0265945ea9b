from typing import Optional, Dict, Any


class NimbusException(Exception):
    """Base exception for all Nimbus Console errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class AuthenticationError(NimbusException):
    """Raised when a bearer credential is missing, malformed or expired."""

    def __init__(
        self,
        message: str,
        code: str = "TOKEN_INVALID",
        status_code: int = 403,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, status_code=status_code, details=details)


class AuthorizationError(NimbusException):
    """Raised when the principal's role ranks below the route's minimum role."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            code="INSUFFICIENT_PERMISSIONS",
            status_code=403,
            details=details,
        )


class ValidationError(NimbusException):
    """Raised when request fields are missing or malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message, code="VALIDATION_ERROR", status_code=400, details=details
        )


class NotFoundError(NimbusException):
    """Raised for an unknown provider, resource type or identifier."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="NOT_FOUND", status_code=404, details=details)


class ResourceNotFoundError(NotFoundError):
    """Raised when a provider reports that a resource does not exist."""


class UpstreamProviderError(NimbusException):
    """
    Raised when a cloud SDK call fails (network, auth, quota).

    Read paths swallow this and serve fallback data; write paths surface it
    with the upstream message under details["upstream"].
    """

    def __init__(
        self,
        message: str,
        provider: str,
        operation: str,
        upstream: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged: Dict[str, Any] = {"provider": provider, "operation": operation}
        if upstream:
            merged["upstream"] = upstream
        if details:
            merged.update(details)
        super().__init__(
            message,
            code="UPSTREAM_PROVIDER_ERROR",
            status_code=500,
            details=merged,
        )
        self.provider = provider
        self.operation = operation
        self.upstream = upstream


class UnsupportedOperationError(NimbusException):
    """Raised when a provider does not implement a resource type or operation."""

    def __init__(self, provider: str, kind: str, operation: str):
        super().__init__(
            f"{operation} is not supported for {provider} {kind}",
            code="UNSUPPORTED_OPERATION",
            status_code=501,
            details={"provider": provider, "type": kind, "operation": operation},
        )


class ProviderNotConfiguredError(NimbusException):
    """Raised when no credentials exist for the requested provider."""

    def __init__(self, provider: str):
        super().__init__(
            f"Provider {provider} is not configured",
            code="PROVIDER_NOT_CONFIGURED",
            status_code=503,
            details={"provider": provider},
        )


class ConfigurationError(NimbusException):
    """Raised when application configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message, code="CONFIGURATION_ERROR", status_code=500, details=details
        )
