"""
Typed Credential Classes
Standardizes cloud provider credentials into Pydantic models built from
settings, so adapters never read environment variables directly.
"""

from typing import Any, Optional

from pydantic import BaseModel, SecretStr


class CloudCredentials(BaseModel):
    """Base class for all cloud credentials."""

    @property
    def is_configured(self) -> bool:
        return False


class AWSCredentials(CloudCredentials):
    """Static IAM access keys."""

    access_key_id: Optional[str] = None
    secret_access_key: Optional[SecretStr] = None
    session_token: Optional[SecretStr] = None
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    default_ami_parameter: str = (
        "/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64"
    )

    @property
    def is_configured(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)


class GCPCredentials(CloudCredentials):
    """Service account key file or application default credentials."""

    project_id: Optional[str] = None
    key_file: Optional[str] = None
    region: str = "us-central1"
    zone: str = "us-central1-a"
    image_project: str = "debian-cloud"
    image_family: str = "debian-11"

    @property
    def is_configured(self) -> bool:
        return bool(self.project_id)


class AzureCredentials(CloudCredentials):
    """Service principal credentials."""

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    subscription_id: Optional[str] = None
    resource_group: str = "nimbus-resources"
    location: str = "eastus"
    subnet_id: Optional[str] = None
    admin_username: str = "nimbusadmin"
    ssh_public_key: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(
            self.tenant_id
            and self.client_id
            and self.client_secret
            and self.subscription_id
        )


class IBMCredentials(CloudCredentials):
    """IAM API key."""

    api_key: Optional[SecretStr] = None
    region: str = "us-south"
    resource_group_id: Optional[str] = None
    vpc_id: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_key.get_secret_value())


def credentials_from_settings(provider: str, settings: Any) -> CloudCredentials:
    if provider == "aws":
        return AWSCredentials(
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            session_token=settings.AWS_SESSION_TOKEN,
            region=settings.AWS_REGION,
            endpoint_url=settings.AWS_ENDPOINT_URL,
            default_ami_parameter=settings.AWS_DEFAULT_AMI_PARAMETER,
        )
    if provider == "gcp":
        return GCPCredentials(
            project_id=settings.GCP_PROJECT_ID,
            key_file=settings.GCP_KEY_FILE,
            region=settings.GCP_REGION,
            zone=settings.GCP_ZONE,
            image_project=settings.GCP_IMAGE_PROJECT,
            image_family=settings.GCP_IMAGE_FAMILY,
        )
    if provider == "azure":
        return AzureCredentials(
            tenant_id=settings.AZURE_TENANT_ID,
            client_id=settings.AZURE_CLIENT_ID,
            client_secret=settings.AZURE_CLIENT_SECRET,
            subscription_id=settings.AZURE_SUBSCRIPTION_ID,
            resource_group=settings.AZURE_RESOURCE_GROUP,
            location=settings.AZURE_LOCATION,
            subnet_id=settings.AZURE_SUBNET_ID,
            admin_username=settings.AZURE_VM_ADMIN_USERNAME,
            ssh_public_key=settings.AZURE_VM_SSH_PUBLIC_KEY,
        )
    if provider == "ibm":
        return IBMCredentials(
            api_key=settings.IBM_CLOUD_API_KEY,
            region=settings.IBM_CLOUD_REGION,
            resource_group_id=settings.IBM_CLOUD_RESOURCE_GROUP_ID,
            vpc_id=settings.IBM_CLOUD_VPC_ID,
        )
    raise ValueError(f"Unsupported provider: {provider}")
