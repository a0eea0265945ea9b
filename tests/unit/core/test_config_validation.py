"""
Tests for app/shared/core/config.py - Configuration management
"""
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from app.shared.core.config import Settings
from app.shared.core.credentials import credentials_from_settings

STRONG_SECRET = "s" * 40


class TestSettingsValidation:
    """Test settings validation and security checks."""

    def test_short_jwt_secret_rejected_outside_tests(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError) as exc:
                Settings(TESTING=False, JWT_SECRET="short", _env_file=None)
        assert "JWT_SECRET" in str(exc.value)

    def test_asymmetric_algorithm_rejected(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError) as exc:
                Settings(
                    TESTING=False,
                    JWT_SECRET=STRONG_SECRET,
                    JWT_ALGORITHM="RS256",
                    _env_file=None,
                )
        assert "JWT_ALGORITHM" in str(exc.value)

    def test_testing_mode_skips_secret_checks(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(TESTING=True, _env_file=None)
        assert settings.JWT_SECRET is None

    def test_testing_forbidden_in_production(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(TESTING=True, ENVIRONMENT="production", _env_file=None)

    def test_debug_forbidden_in_production(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError):
                Settings(
                    TESTING=False,
                    ENVIRONMENT="production",
                    DEBUG=True,
                    JWT_SECRET=STRONG_SECRET,
                    _env_file=None,
                )

    def test_demo_login_forbidden_in_production(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError) as exc:
                Settings(
                    TESTING=False,
                    ENVIRONMENT="production",
                    DEMO_LOGIN_ENABLED=True,
                    JWT_SECRET=STRONG_SECRET,
                    _env_file=None,
                )
        assert "DEMO_LOGIN_ENABLED" in str(exc.value)

    def test_demo_login_off_by_default_in_production(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(
                TESTING=False,
                ENVIRONMENT="production",
                JWT_SECRET=STRONG_SECRET,
                _env_file=None,
            )
        assert settings.demo_login_enabled is False

    def test_demo_login_on_by_default_outside_production(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(
                TESTING=False,
                ENVIRONMENT="development",
                JWT_SECRET=STRONG_SECRET,
                _env_file=None,
            )
            disabled = Settings(
                TESTING=False,
                ENVIRONMENT="development",
                DEMO_LOGIN_ENABLED=False,
                JWT_SECRET=STRONG_SECRET,
                _env_file=None,
            )
        assert settings.demo_login_enabled is True
        assert disabled.demo_login_enabled is False

    @pytest.mark.parametrize(
        "wait,write,request_timeout",
        [(270.0, 270.0, 300.0), (240.0, 310.0, 300.0), (300.0, 270.0, 300.0)],
    )
    def test_provider_timeouts_must_nest(self, wait, write, request_timeout):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValidationError) as exc:
                Settings(
                    TESTING=True,
                    PROVIDER_OPERATION_WAIT_SECONDS=wait,
                    PROVIDER_WRITE_TIMEOUT_SECONDS=write,
                    REQUEST_TIMEOUT_SECONDS=request_timeout,
                    _env_file=None,
                )
        assert "PROVIDER_WRITE_TIMEOUT_SECONDS" in str(exc.value)

    def test_default_timeouts_leave_room_for_rollback(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(TESTING=True, _env_file=None)
        assert (
            settings.PROVIDER_OPERATION_WAIT_SECONDS
            < settings.PROVIDER_WRITE_TIMEOUT_SECONDS
            <= settings.REQUEST_TIMEOUT_SECONDS
        )


class TestProviderConfiguration:
    def test_no_credentials_means_demo_mode_for_every_provider(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(TESTING=True, _env_file=None)
        for provider in ("aws", "gcp", "azure", "ibm"):
            assert credentials_from_settings(provider, settings).is_configured is False

    def test_azure_needs_all_four_values(self):
        with patch.dict("os.environ", {}, clear=True):
            partial = Settings(
                TESTING=True,
                AZURE_TENANT_ID="t",
                AZURE_CLIENT_ID="c",
                AZURE_CLIENT_SECRET="s",
                _env_file=None,
            )
        assert partial.azure_configured is False
        assert credentials_from_settings("azure", partial).is_configured is False

    def test_aws_keys_configure_provider(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(
                TESTING=True,
                AWS_ACCESS_KEY_ID="AKIATEST",
                AWS_SECRET_ACCESS_KEY="secret",
                AWS_REGION="eu-west-1",
                _env_file=None,
            )
        creds = credentials_from_settings("aws", settings)
        assert creds.is_configured is True
        assert creds.region == "eu-west-1"

    def test_unknown_provider_rejected(self):
        with patch.dict("os.environ", {}, clear=True):
            settings = Settings(TESTING=True, _env_file=None)
        with pytest.raises(ValueError):
            credentials_from_settings("oracle", settings)
