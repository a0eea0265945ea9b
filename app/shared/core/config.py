from functools import lru_cache
from threading import Lock
from typing import Optional

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"

_WEAK_SECRETS = {
    "change_me",
    "changeme",
    "default",
    "secret",
    "jwt_secret",
    "your-secret-key",
}


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for Nimbus Console.
    Uses Pydantic-Settings for environment variable parsing from .env.

    A provider with no credentials is not an error: it simply runs in
    demo mode and serves static data.
    """

    APP_NAME: str = "Nimbus Console"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False
    API_PREFIX: str = "/api"
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]
    OTEL_EXPORTER_OTLP_ENDPOINT: Optional[str] = None
    OTEL_EXPORTER_OTLP_INSECURE: bool = False

    # Token signing (one shared secret per process)
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24
    JWT_AUDIENCE: str = "authenticated"
    JWT_ISSUER: str = "nimbus-console"
    # Unset: on outside production, off in production. Explicit true is
    # rejected in production.
    DEMO_LOGIN_ENABLED: Optional[bool] = None

    # Rate limiting
    RATELIMIT_ENABLED: bool = True
    AUTH_RATE_LIMIT: str = "20/minute"

    # Database (hosted relational backend or local sqlite)
    DATABASE_URL: Optional[str] = None
    DB_ECHO: bool = False
    DB_SLOW_QUERY_THRESHOLD_SECONDS: float = 0.2

    # AWS
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None
    AWS_REGION: str = "us-east-1"
    AWS_DEFAULT_AMI_PARAMETER: str = (
        "/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64"
    )
    AWS_ENDPOINT_URL: Optional[str] = None  # LocalStack / moto server

    # Google Cloud
    GCP_PROJECT_ID: Optional[str] = None
    GCP_KEY_FILE: Optional[str] = None
    GCP_REGION: str = "us-central1"
    GCP_ZONE: str = "us-central1-a"
    GCP_IMAGE_PROJECT: str = "debian-cloud"
    GCP_IMAGE_FAMILY: str = "debian-11"

    # Azure
    AZURE_TENANT_ID: Optional[str] = None
    AZURE_CLIENT_ID: Optional[str] = None
    AZURE_CLIENT_SECRET: Optional[str] = None
    AZURE_SUBSCRIPTION_ID: Optional[str] = None
    AZURE_RESOURCE_GROUP: str = "nimbus-resources"
    AZURE_LOCATION: str = "eastus"
    AZURE_SUBNET_ID: Optional[str] = None
    AZURE_VM_ADMIN_USERNAME: str = "nimbusadmin"
    AZURE_VM_SSH_PUBLIC_KEY: Optional[str] = None

    # IBM Cloud
    IBM_CLOUD_API_KEY: Optional[str] = None
    IBM_CLOUD_REGION: str = "us-south"
    IBM_CLOUD_RESOURCE_GROUP_ID: Optional[str] = None
    IBM_CLOUD_VPC_ID: Optional[str] = None

    # Provider call resilience
    PROVIDER_CALL_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)
    PROVIDER_READ_RETRY_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    # Creates poll long-running provider operations (VM provisioning).
    # Wait < write deadline <= request deadline, so rollback runs before any
    # outer deadline cancels the call.
    PROVIDER_OPERATION_WAIT_SECONDS: float = Field(default=240.0, gt=0)
    PROVIDER_WRITE_TIMEOUT_SECONDS: float = Field(default=270.0, gt=0)
    REQUEST_TIMEOUT_SECONDS: float = Field(default=300.0, gt=0)
    SECURITY_SCAN_DELAY_SECONDS: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation orchestrator, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        self._validate_provider_timeouts()
        if self.TESTING:
            return self

        self._validate_core_secrets()
        self._validate_environment_safety()
        return self

    def _validate_core_secrets(self) -> None:
        """The token secret signs and verifies every bearer credential."""
        secret = str(self.JWT_SECRET or "")
        if len(secret) < 32:
            raise ValueError("JWT_SECRET must be set to a secure value (>= 32 chars).")
        if secret.strip().lower() in _WEAK_SECRETS:
            raise ValueError("JWT_SECRET must be set to a non-default secure value.")
        if self.JWT_ALGORITHM not in {"HS256", "HS384", "HS512"}:
            raise ValueError("JWT_ALGORITHM must be one of HS256, HS384, HS512.")
        if self.JWT_EXPIRE_MINUTES < 1:
            raise ValueError("JWT_EXPIRE_MINUTES must be >= 1.")

    def _validate_provider_timeouts(self) -> None:
        if not (
            self.PROVIDER_OPERATION_WAIT_SECONDS
            < self.PROVIDER_WRITE_TIMEOUT_SECONDS
            <= self.REQUEST_TIMEOUT_SECONDS
        ):
            raise ValueError(
                "Timeouts must satisfy PROVIDER_OPERATION_WAIT_SECONDS < "
                "PROVIDER_WRITE_TIMEOUT_SECONDS <= REQUEST_TIMEOUT_SECONDS."
            )

    def _validate_environment_safety(self) -> None:
        if self.is_production:
            if self.DEBUG:
                raise ValueError("DEBUG must be false in production.")
            if self.DEMO_LOGIN_ENABLED:
                raise ValueError("DEMO_LOGIN_ENABLED must be false in production.")
            if any("localhost" in o or "127.0.0.1" in o for o in self.CORS_ORIGINS):
                structlog.get_logger().warning("cors_localhost_in_production")

    @property
    def is_production(self) -> bool:
        """True only when ENVIRONMENT is explicitly set to 'production'."""
        return self.ENVIRONMENT == ENV_PRODUCTION

    @property
    def demo_login_enabled(self) -> bool:
        if self.DEMO_LOGIN_ENABLED is None:
            return not self.is_production
        return self.DEMO_LOGIN_ENABLED

    @property
    def aws_configured(self) -> bool:
        return bool(self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)

    @property
    def gcp_configured(self) -> bool:
        return bool(self.GCP_PROJECT_ID)

    @property
    def azure_configured(self) -> bool:
        return bool(
            self.AZURE_TENANT_ID
            and self.AZURE_CLIENT_ID
            and self.AZURE_CLIENT_SECRET
            and self.AZURE_SUBSCRIPTION_ID
        )

    @property
    def ibm_configured(self) -> bool:
        return bool(self.IBM_CLOUD_API_KEY)
