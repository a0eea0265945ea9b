from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.shared.core.exceptions import NotFoundError, ValidationError


class ResourceKind(str, Enum):
    """Route segment for a resource collection."""

    INSTANCES = "instances"
    DATABASES = "databases"
    STORAGE = "storage"

    @property
    def resource_type(self) -> str:
        return _KIND_TO_TYPE[self]


_KIND_TO_TYPE = {
    ResourceKind.INSTANCES: "instance",
    ResourceKind.DATABASES: "database",
    ResourceKind.STORAGE: "storage",
}
_KIND_ALIASES = {
    "instances": ResourceKind.INSTANCES,
    "instance": ResourceKind.INSTANCES,
    "databases": ResourceKind.DATABASES,
    "database": ResourceKind.DATABASES,
    "storage": ResourceKind.STORAGE,
}


def parse_kind(value: Any) -> ResourceKind:
    kind = _KIND_ALIASES.get(str(value or "").strip().lower())
    if kind is None:
        raise NotFoundError(
            "Resource type not found",
            details={"type": str(value), "supported": [k.value for k in ResourceKind]},
        )
    return kind


class ResourceStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    CREATING = "creating"
    STARTING = "starting"
    STOPPING = "stopping"
    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    ACTIVE = "active"
    ERROR = "error"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NormalizedResource(CamelModel):
    """
    Vendor-agnostic resource record.

    ``status`` is a string rather than ResourceStatus: native statuses without
    a mapping pass through unchanged.
    """

    id: str
    name: str
    type: Literal["instance", "database", "storage"]
    status: str
    region: str
    cost: str
    created_at: Optional[str] = None
    zone: Optional[str] = None
    sku: Optional[str] = None
    engine: Optional[str] = None
    size: Optional[str] = None
    resource_group: Optional[str] = None
    tags: dict[str, str] = Field(default_factory=dict)
    created_by: Optional[str] = None
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None


class MetricSample(CamelModel):
    """
    One point-in-time utilisation sample.

    Values the provider did not measure are synthesised and listed in
    ``synthetic_fields``; ``synthetic`` is true whenever that list is non-empty.
    """

    resource_id: str
    cpu: float = Field(ge=0, le=100)
    memory: float = Field(ge=0, le=100)
    network: float = Field(ge=0)
    disk: float = Field(ge=0, le=100)
    source: Literal["provider", "synthetic", "derived"] = "synthetic"
    synthetic_fields: list[str] = Field(default_factory=list)
    synthetic: bool = False
    collected_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @model_validator(mode="after")
    def _flag_synthetic(self) -> "MetricSample":
        self.synthetic = bool(self.synthetic_fields)
        return self


class ResourceLocator(CamelModel):
    """Extra coordinates some providers need to address a resource by id."""

    zone: Optional[str] = None
    resource_group: Optional[str] = None
    region: Optional[str] = None


class CreateResourceRequest(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    name: Optional[str] = Field(default=None, max_length=63)
    instance_type: Optional[str] = Field(default=None, max_length=64)
    region: Optional[str] = Field(default=None, max_length=40)
    zone: Optional[str] = Field(default=None, max_length=40)
    image: Optional[str] = Field(default=None, max_length=255)
    storage_class: Optional[str] = Field(default=None, max_length=40)
    engine: Optional[str] = Field(default=None, max_length=40)
    size: Optional[str] = Field(default=None, max_length=20)
    tags: dict[str, str] = Field(default_factory=dict)
    # Caller-chosen key; a repeated create with the same key launches at most once
    # on providers with native request tokens.
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=64)

    @field_validator("name")
    @classmethod
    def _name_shape(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not all(ch.isalnum() or ch in "-_." for ch in value):
            raise ValueError(
                "name may only contain letters, digits, '-', '_' and '.'"
            )
        return value


_STATE_ACTIONS = {"start", "stop", "restart"}
_STATUS_TO_ACTION = {"running": "start", "stopped": "stop"}


class UpdateResourceRequest(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    action: Optional[str] = None
    status: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=63)

    def desired_state(self) -> Optional[str]:
        """Resolve the request to one of start/stop/restart, or None for renames."""
        if self.action:
            action = self.action.strip().lower()
            if action not in _STATE_ACTIONS:
                raise ValidationError(
                    f"Unsupported action: {self.action}",
                    details={"allowed": sorted(_STATE_ACTIONS)},
                )
            return action
        if self.status:
            action = _STATUS_TO_ACTION.get(self.status.strip().lower())
            if action is None:
                raise ValidationError(
                    f"Unsupported status: {self.status}",
                    details={"allowed": sorted(_STATUS_TO_ACTION)},
                )
            return action
        if not self.name:
            raise ValidationError("One of action, status or name is required")
        return None


class ResourceAck(CamelModel):
    success: bool = True
    message: str
    resource_id: str
    status: Optional[str] = None


class ResourceListing(CamelModel):
    """Result of listing one provider, possibly mixing live and fallback data."""

    provider: str
    resources: dict[str, list[NormalizedResource]]
    sources: dict[str, Literal["live", "demo", "fallback"]]
    synthetic: bool = False
    note: Optional[str] = None
