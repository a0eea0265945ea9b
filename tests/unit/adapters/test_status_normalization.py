"""
Native status vocabularies map onto the shared one; anything unmapped passes
through untouched and a missing status becomes an empty string.
"""
import pytest

from app.schemas.resources import ResourceKind
from app.shared.adapters.aws import AWSAdapter
from app.shared.adapters.azure import AzureAdapter
from app.shared.adapters.gcp import GCPAdapter
from app.shared.adapters.ibm import IBMAdapter
from app.shared.core.credentials import (
    AWSCredentials,
    AzureCredentials,
    GCPCredentials,
    IBMCredentials,
)


@pytest.fixture
def adapters():
    return {
        "aws": AWSAdapter(AWSCredentials(access_key_id="AKIATEST", secret_access_key="x")),
        "gcp": GCPAdapter(GCPCredentials(project_id="nimbus-test-project")),
        "azure": AzureAdapter(
            AzureCredentials(
                tenant_id="t", client_id="c", client_secret="s", subscription_id="sub"
            )
        ),
        "ibm": IBMAdapter(IBMCredentials(api_key="ibm-test-key")),
    }


@pytest.mark.parametrize(
    "provider,native,expected",
    [
        ("aws", "pending", "creating"),
        ("aws", "shutting-down", "stopping"),
        ("aws", "terminated", "stopped"),
        ("gcp", "PROVISIONING", "creating"),
        ("gcp", "STAGING", "starting"),
        ("gcp", "TERMINATED", "stopped"),
        ("gcp", "SUSPENDED", "stopped"),
        ("azure", "PowerState/running", "running"),
        ("azure", "PowerState/deallocated", "stopped"),
        ("azure", "PowerState/deallocating", "stopping"),
        ("ibm", "pending", "creating"),
        ("ibm", "restarting", "starting"),
        ("ibm", "failed", "error"),
    ],
)
def test_instance_statuses(adapters, provider, native, expected):
    assert adapters[provider].normalize_status(native) == expected


@pytest.mark.parametrize(
    "provider,kind,native,expected",
    [
        ("aws", ResourceKind.DATABASES, "backing-up", "available"),
        ("aws", ResourceKind.DATABASES, "modifying", "maintenance"),
        ("aws", ResourceKind.DATABASES, "storage-full", "error"),
        ("azure", ResourceKind.STORAGE, "Succeeded", "available"),
        ("ibm", ResourceKind.DATABASES, "active", "running"),
        ("ibm", ResourceKind.STORAGE, "active", "active"),
    ],
)
def test_kind_specific_statuses(adapters, provider, kind, native, expected):
    assert adapters[provider].normalize_status(native, kind) == expected


@pytest.mark.parametrize("provider", ["aws", "gcp", "azure", "ibm"])
def test_unmapped_status_passes_through_unchanged(adapters, provider):
    assert adapters[provider].normalize_status("Hibernating") == "Hibernating"


@pytest.mark.parametrize("provider", ["aws", "gcp", "azure", "ibm"])
def test_missing_status_is_empty_string(adapters, provider):
    assert adapters[provider].normalize_status(None) == ""


def test_kind_override_falls_back_to_shared_map(adapters):
    # No database-specific entry for "pending", so the shared map applies.
    assert adapters["ibm"].normalize_status("pending", ResourceKind.DATABASES) == "creating"
