"""
AWS resource adapter (native async via aioboto3).

EC2 instances, RDS databases and S3 buckets are mapped into the shared
resource shape. Instance creation is a single ``RunInstances`` call carrying
a client token. The token is derived from the caller's idempotency key when
one is sent, so a repeated request with that key launches at most once.
Without a key the token only covers retries inside botocore.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import aioboto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from app.schemas.resources import (
    CreateResourceRequest,
    MetricSample,
    NormalizedResource,
    ResourceAck,
    ResourceKind,
    ResourceLocator,
)
from app.shared.adapters.base import BaseResourceAdapter, isoformat, synthesize_metrics
from app.shared.core.credentials import AWSCredentials
from app.shared.core.exceptions import NimbusException, ResourceNotFoundError
from app.shared.core.pricing import (
    DEFAULT_INSTANCE_SKU,
    estimate_database_cost,
    estimate_instance_cost,
    estimate_storage_cost,
    format_monthly_cost,
)

logger = structlog.get_logger()

# Socket timeouts for all AWS API calls
BOTO_CONFIG = BotoConfig(
    read_timeout=20,
    connect_timeout=5,
    retries={"max_attempts": 2, "mode": "standard"},
)

# Last-resort image when neither the request nor the SSM lookup yields one
FALLBACK_AMI_ID = "ami-0c02fb55956c7d316"

_NOT_FOUND_CODES = {
    "InvalidInstanceID.NotFound",
    "InvalidInstanceID.Malformed",
    "DBInstanceNotFound",
    "DBInstanceNotFoundFault",
    "NoSuchBucket",
}


def _client_token(spec: CreateResourceRequest) -> str:
    """RunInstances accepts at most 64 ASCII characters."""
    if spec.idempotency_key:
        return hashlib.sha256(spec.idempotency_key.encode("utf-8")).hexdigest()
    return uuid.uuid4().hex


class AWSAdapter(BaseResourceAdapter):
    provider = "aws"

    STATUS_MAP = {
        "pending": "creating",
        "running": "running",
        "shutting-down": "stopping",
        "stopping": "stopping",
        "stopped": "stopped",
        "terminated": "stopped",
    }
    KIND_STATUS_MAPS = {
        ResourceKind.DATABASES: {
            "available": "available",
            "backing-up": "available",
            "creating": "creating",
            "starting": "starting",
            "stopping": "stopping",
            "stopped": "stopped",
            "rebooting": "starting",
            "maintenance": "maintenance",
            "modifying": "maintenance",
            "upgrading": "maintenance",
            "failed": "error",
            "incompatible-parameters": "error",
            "storage-full": "error",
        },
    }

    def __init__(self, credentials: AWSCredentials):
        self.credentials = credentials
        self.session = aioboto3.Session(
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=(
                credentials.secret_access_key.get_secret_value()
                if credentials.secret_access_key
                else None
            ),
            aws_session_token=(
                credentials.session_token.get_secret_value()
                if credentials.session_token
                else None
            ),
        )

    def _client(self, service: str, region: Optional[str] = None) -> Any:
        return self.session.client(
            service,
            region_name=region or self.credentials.region,
            endpoint_url=self.credentials.endpoint_url,
            config=BOTO_CONFIG,
        )

    def _translate(self, operation: str, exc: Exception, resource_id: str = "") -> NimbusException:
        if isinstance(exc, ClientError):
            code = exc.response.get("Error", {}).get("Code", "Unknown")
            if code in _NOT_FOUND_CODES:
                return ResourceNotFoundError(
                    f"Resource {resource_id} not found",
                    details={"provider": self.provider, "id": resource_id},
                )
        return self._upstream_error(operation, exc)

    async def verify_connection(self) -> bool:
        try:
            async with self._client("sts") as sts:
                await sts.get_caller_identity()
            return True
        except Exception as e:
            self._set_last_error(str(e))
            logger.warning("aws_verify_failed", error=str(e))
            return False

    # --- mapping ---

    def _map_instance(self, raw: dict[str, Any], region: str) -> NormalizedResource:
        tags = {t["Key"]: t["Value"] for t in raw.get("Tags", []) if "Key" in t}
        sku = raw.get("InstanceType")
        return NormalizedResource(
            id=raw["InstanceId"],
            name=tags.get("Name", raw["InstanceId"]),
            type="instance",
            status=self.normalize_status(raw.get("State", {}).get("Name")),
            region=region,
            zone=raw.get("Placement", {}).get("AvailabilityZone"),
            sku=sku,
            cost=format_monthly_cost(estimate_instance_cost(self.provider, sku)),
            created_at=isoformat(raw.get("LaunchTime")),
            tags=tags,
        )

    def _map_database(self, raw: dict[str, Any], region: str) -> NormalizedResource:
        return NormalizedResource(
            id=raw["DBInstanceIdentifier"],
            name=raw["DBInstanceIdentifier"],
            type="database",
            status=self.normalize_status(
                raw.get("DBInstanceStatus"), ResourceKind.DATABASES
            ),
            region=region,
            zone=raw.get("AvailabilityZone"),
            sku=raw.get("DBInstanceClass"),
            engine=raw.get("Engine"),
            cost=format_monthly_cost(
                estimate_database_cost(self.provider, raw.get("DBInstanceClass"))
            ),
            created_at=isoformat(raw.get("InstanceCreateTime")),
        )

    def _map_bucket(self, raw: dict[str, Any], region: str) -> NormalizedResource:
        return NormalizedResource(
            id=raw["Name"],
            name=raw["Name"],
            type="storage",
            status="active",
            region=region,
            cost=format_monthly_cost(estimate_storage_cost(self.provider)),
            created_at=isoformat(raw.get("CreationDate")),
        )

    # --- reads ---

    async def list_resources(self, kind: ResourceKind) -> list[NormalizedResource]:
        region = self.credentials.region
        operation = f"list_{kind.value}"
        try:
            if kind is ResourceKind.INSTANCES:
                items: list[NormalizedResource] = []
                async with self._client("ec2") as ec2:
                    paginator = ec2.get_paginator("describe_instances")
                    async for page in paginator.paginate():
                        for reservation in page.get("Reservations", []):
                            for raw in reservation.get("Instances", []):
                                items.append(self._map_instance(raw, region))
                return items
            if kind is ResourceKind.DATABASES:
                async with self._client("rds") as rds:
                    response = await rds.describe_db_instances()
                return [
                    self._map_database(raw, region)
                    for raw in response.get("DBInstances", [])
                ]
            async with self._client("s3") as s3:
                response = await s3.list_buckets()
            return [self._map_bucket(raw, region) for raw in response.get("Buckets", [])]
        except Exception as e:
            raise self._translate(operation, e) from e

    async def get_metrics(self, resource_id: str, locator: ResourceLocator) -> MetricSample:
        """CloudWatch reports CPU only; memory, network and disk are synthesised."""
        now = datetime.now(timezone.utc)
        try:
            async with self._client("cloudwatch", locator.region) as cloudwatch:
                response = await cloudwatch.get_metric_statistics(
                    Namespace="AWS/EC2",
                    MetricName="CPUUtilization",
                    Dimensions=[{"Name": "InstanceId", "Value": resource_id}],
                    StartTime=now - timedelta(minutes=15),
                    EndTime=now,
                    Period=300,
                    Statistics=["Average"],
                )
        except Exception as e:
            raise self._translate("get_metrics", e, resource_id) from e

        datapoints = sorted(
            response.get("Datapoints", []), key=lambda d: d.get("Timestamp", now)
        )
        measured = {"cpu": datapoints[-1]["Average"]} if datapoints else {}
        return synthesize_metrics(resource_id, measured, source="provider")

    # --- writes ---

    async def _resolve_image(self, spec: CreateResourceRequest, region: str) -> str:
        """Explicit image, then the SSM public parameter, then a fixed AMI."""
        if spec.image:
            return spec.image
        try:
            async with self._client("ssm", region) as ssm:
                response = await ssm.get_parameter(
                    Name=self.credentials.default_ami_parameter
                )
            image_id = response["Parameter"]["Value"]
            if image_id:
                return str(image_id)
        except Exception as e:
            logger.warning("aws_default_image_lookup_failed", error=str(e))
        return FALLBACK_AMI_ID

    async def create_resource(
        self, kind: ResourceKind, spec: CreateResourceRequest
    ) -> NormalizedResource:
        region = spec.region or self.credentials.region
        if kind is ResourceKind.DATABASES:
            raise self._unsupported(kind, "create")

        if kind is ResourceKind.STORAGE:
            bucket = (spec.name or f"nimbus-{uuid.uuid4().hex[:8]}").lower()
            params: dict[str, Any] = {"Bucket": bucket}
            if region != "us-east-1":
                params["CreateBucketConfiguration"] = {"LocationConstraint": region}
            try:
                async with self._client("s3", region) as s3:
                    await s3.create_bucket(**params)
            except Exception as e:
                raise self._translate("create_storage", e) from e
            return self._map_bucket(
                {"Name": bucket, "CreationDate": datetime.now(timezone.utc)}, region
            )

        image_id = await self._resolve_image(spec, region)
        instance_type = spec.instance_type or DEFAULT_INSTANCE_SKU[self.provider]
        name = spec.name or f"nimbus-{uuid.uuid4().hex[:8]}"
        tags = [{"Key": "Name", "Value": name}] + [
            {"Key": k, "Value": v} for k, v in spec.tags.items() if k != "Name"
        ]
        try:
            async with self._client("ec2", region) as ec2:
                response = await ec2.run_instances(
                    ImageId=image_id,
                    InstanceType=instance_type,
                    MinCount=1,
                    MaxCount=1,
                    ClientToken=_client_token(spec),
                    TagSpecifications=[{"ResourceType": "instance", "Tags": tags}],
                )
        except Exception as e:
            raise self._translate("create_instance", e) from e

        logger.info("aws_instance_launched", image_id=image_id, instance_type=instance_type)
        return self._map_instance(response["Instances"][0], region)

    async def update_resource_state(
        self,
        kind: ResourceKind,
        resource_id: str,
        desired_state: str,
        locator: ResourceLocator,
    ) -> ResourceAck:
        operation = f"{desired_state}_{kind.resource_type}"
        try:
            if kind is ResourceKind.INSTANCES:
                async with self._client("ec2", locator.region) as ec2:
                    if desired_state == "start":
                        await ec2.start_instances(InstanceIds=[resource_id])
                        status = "starting"
                    elif desired_state == "stop":
                        await ec2.stop_instances(InstanceIds=[resource_id])
                        status = "stopping"
                    else:
                        await ec2.reboot_instances(InstanceIds=[resource_id])
                        status = "starting"
            elif kind is ResourceKind.DATABASES:
                async with self._client("rds", locator.region) as rds:
                    if desired_state == "start":
                        await rds.start_db_instance(DBInstanceIdentifier=resource_id)
                        status = "starting"
                    elif desired_state == "stop":
                        await rds.stop_db_instance(DBInstanceIdentifier=resource_id)
                        status = "stopping"
                    else:
                        await rds.reboot_db_instance(DBInstanceIdentifier=resource_id)
                        status = "starting"
            else:
                raise self._unsupported(kind, desired_state)
        except Exception as e:
            raise self._translate(operation, e, resource_id) from e

        return ResourceAck(
            message=f"{kind.resource_type.capitalize()} {resource_id} {desired_state} requested",
            resource_id=resource_id,
            status=status,
        )

    async def delete_resource(
        self, kind: ResourceKind, resource_id: str, locator: ResourceLocator
    ) -> ResourceAck:
        try:
            if kind is ResourceKind.INSTANCES:
                async with self._client("ec2", locator.region) as ec2:
                    await ec2.terminate_instances(InstanceIds=[resource_id])
            elif kind is ResourceKind.STORAGE:
                async with self._client("s3", locator.region) as s3:
                    await s3.delete_bucket(Bucket=resource_id)
            else:
                raise self._unsupported(kind, "delete")
        except Exception as e:
            raise self._translate(f"delete_{kind.resource_type}", e, resource_id) from e

        return ResourceAck(
            message=f"{kind.resource_type.capitalize()} {resource_id} deleted successfully",
            resource_id=resource_id,
        )
