import json
from unittest.mock import MagicMock, patch

from starlette.requests import Request

from app.shared.core.error_governance import error_body, handle_exception
from app.shared.core.exceptions import (
    NimbusException,
    ProviderNotConfiguredError,
    UnsupportedOperationError,
    UpstreamProviderError,
    ValidationError,
)


def _request(path: str = "/api/resources/aws", method: str = "GET") -> Request:
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "headers": [],
            "query_string": b"",
            "scheme": "http",
            "server": ("test", 80),
        }
    )


def _body(response) -> dict:
    return json.loads(response.body)


def test_error_body_omits_empty_details():
    assert error_body("Nope", "NOT_FOUND") == {"error": "Nope", "code": "NOT_FOUND"}
    assert error_body("Bad", "VALIDATION_ERROR", {"field": "name"})["details"] == {
        "field": "name"
    }


def test_taxonomy_error_keeps_status_code_and_details():
    exc = ValidationError("Invalid metric", details={"metric": "gpu"})
    response = handle_exception(_request(), exc)

    assert response.status_code == 400
    assert _body(response) == {
        "error": "Invalid metric",
        "code": "VALIDATION_ERROR",
        "details": {"metric": "gpu"},
    }
    assert response.headers["X-Error-ID"]


def test_upstream_error_reports_provider_message():
    exc = UpstreamProviderError(
        "aws create_instance failed",
        provider="aws",
        operation="create_instance",
        upstream="InsufficientInstanceCapacity",
    )
    body = _body(handle_exception(_request(method="POST"), exc))

    assert body["code"] == "UPSTREAM_PROVIDER_ERROR"
    assert body["details"]["upstream"] == "InsufficientInstanceCapacity"
    assert body["details"]["provider"] == "aws"


def test_unsupported_and_not_configured_statuses():
    unsupported = handle_exception(
        _request(), UnsupportedOperationError("gcp", "databases", "create")
    )
    not_configured = handle_exception(_request(), ProviderNotConfiguredError("ibm"))

    assert unsupported.status_code == 501
    assert not_configured.status_code == 503
    assert _body(not_configured)["code"] == "PROVIDER_NOT_CONFIGURED"


def test_value_error_becomes_validation_error():
    response = handle_exception(_request(), ValueError("threshold out of range"))
    assert response.status_code == 400
    assert _body(response)["code"] == "VALIDATION_ERROR"


def test_unhandled_exception_never_leaks_message():
    response = handle_exception(_request(), RuntimeError("db password is hunter2"))
    body = _body(response)

    assert response.status_code == 500
    assert body["code"] == "INTERNAL_ERROR"
    assert "hunter2" not in json.dumps(body)


def test_error_id_is_reused_when_supplied():
    response = handle_exception(_request(), ValidationError("x"), error_id="err-123")
    assert response.headers["X-Error-ID"] == "err-123"


def test_production_masks_codes_outside_safe_list():
    settings = MagicMock(ENVIRONMENT="production")
    exc = NimbusException("secret internals", code="CONFIGURATION_ERROR", details={"k": "v"})
    with patch("app.shared.core.error_governance.get_settings", return_value=settings):
        body = _body(handle_exception(_request(), exc))

    assert body["error"] == "An error occurred while processing your request"
    assert "details" not in body


def test_production_keeps_safe_code_details():
    settings = MagicMock(ENVIRONMENT="production")
    exc = UnsupportedOperationError("azure", "databases", "create")
    with patch("app.shared.core.error_governance.get_settings", return_value=settings):
        body = _body(handle_exception(_request(), exc))

    assert body["details"]["provider"] == "azure"
