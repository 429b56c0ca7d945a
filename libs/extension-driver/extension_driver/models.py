"""Extension resource models for the extension driver."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

OPERATION_ANNOTATION = "gardener.cloud/operation"
TIMESTAMP_ANNOTATION = "gardener.cloud/timestamp"
DELETION_CONFIRMATION_ANNOTATION = "confirmation.gardener.cloud/deletion"


def utc_now() -> datetime:
    """Default clock used by drivers."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an RFC 3339 UTC string with microsecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a timestamp annotation, returning None for missing or foreign formats."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class OperationAnnotation(str, Enum):
    """Values of the operation annotation read by extension controllers."""

    RECONCILE = "reconcile"
    MIGRATE = "migrate"
    RESTORE = "restore"
    WAIT_FOR_STATE = "wait-for-state"


class LastOperationType(str, Enum):
    """Type of the last operation reported by an extension controller."""

    CREATE = "Create"
    RECONCILE = "Reconcile"
    DELETE = "Delete"
    MIGRATE = "Migrate"
    RESTORE = "Restore"


class LastOperationState(str, Enum):
    """State of the last operation reported by an extension controller."""

    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    ERROR = "Error"
    FAILED = "Failed"
    PENDING = "Pending"
    ABORTED = "Aborted"


class Purpose(str, Enum):
    """Purpose discriminator for kinds deployed more than once per shoot."""

    NORMAL = "normal"
    EXPOSURE = "exposure"


class KubeModel(BaseModel):
    """Base model mapping snake_case fields to the camelCase wire format."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the Kubernetes JSON representation."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ObjectMeta(KubeModel):
    """Subset of Kubernetes object metadata used by the driver."""

    model_config = ConfigDict(extra="allow")

    name: str
    namespace: str
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    generation: int = 0
    resource_version: Optional[str] = None
    uid: Optional[str] = None
    deletion_timestamp: Optional[datetime] = None
    finalizers: list[str] = Field(default_factory=list)


class ExtensionSpec(KubeModel):
    """Desired state of an extension resource.

    ``provider_config`` is an opaque payload for the extension controller and
    is never interpreted here. Kind-specific fields (region, workerPool,
    secretRef, ...) are kept as extra fields in their wire form.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    provider_config: Optional[Any] = None
    purpose: Optional[Purpose] = None


class LastOperation(KubeModel):
    """Last operation performed by the extension controller."""

    type: LastOperationType
    state: LastOperationState
    description: str = ""
    last_update_time: Optional[datetime] = None
    progress: int = 0


class LastError(KubeModel):
    """Last error reported by the extension controller."""

    description: str
    codes: list[str] = Field(default_factory=list)
    task_id: Optional[str] = None
    first_observed_at: Optional[datetime] = None
    last_update_time: Optional[datetime] = None


class NamedResourceReference(KubeModel):
    """Reference to a resource the extension controller stored alongside its state."""

    name: str
    resource_ref: dict[str, Any] = Field(default_factory=dict)


class ExtensionStatus(KubeModel):
    """Observed state written by the extension controller."""

    model_config = ConfigDict(extra="allow")

    last_operation: Optional[LastOperation] = None
    last_error: Optional[LastError] = None
    observed_generation: int = 0
    provider_status: Optional[Any] = None
    state: Optional[Any] = None
    resources: list[NamedResourceReference] = Field(default_factory=list)
    nodes_cidr: Optional[str] = Field(default=None, alias="nodesCIDR")


class ExtensionResource(KubeModel):
    """An extension custom resource as exchanged with the API server."""

    api_version: str = "extensions.gardener.cloud/v1alpha1"
    kind: str
    metadata: ObjectMeta
    spec: ExtensionSpec
    status: ExtensionStatus = Field(default_factory=ExtensionStatus)

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "ExtensionResource":
        """Build a resource from the API server's JSON representation."""
        return cls.model_validate(obj)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> str:
        """Human readable identity used in log and error messages."""
        return f"{self.kind} {self.metadata.namespace}/{self.metadata.name}"

    def operation(
        self, annotation_key: str = OPERATION_ANNOTATION
    ) -> Optional[str]:
        """Return the pending operation annotation, if any."""
        return self.metadata.annotations.get(annotation_key)

    def copy_resource(self) -> "ExtensionResource":
        """Return a deep copy suitable for computing patches."""
        return self.model_copy(deep=True)


def set_operation(
    resource: ExtensionResource,
    operation: OperationAnnotation,
    now: datetime,
    operation_annotation: str = OPERATION_ANNOTATION,
    timestamp_annotation: str = TIMESTAMP_ANNOTATION,
) -> None:
    """
    Write the operation annotation and refresh the timestamp annotation.

    The operation annotation is a single key, so setting one operation always
    replaces the previous one. The timestamp never moves backwards for a
    resource, even with a coarse or frozen clock.

    Args:
        resource: Resource to mutate in place
        operation: Operation to request
        now: Current time
        operation_annotation: Annotation key for the operation
        timestamp_annotation: Annotation key for the timestamp
    """
    annotations = resource.metadata.annotations
    refresh_timestamp(annotations, now, timestamp_annotation)
    annotations[operation_annotation] = OperationAnnotation(operation).value


def refresh_timestamp(
    annotations: dict[str, str],
    now: datetime,
    timestamp_annotation: str = TIMESTAMP_ANNOTATION,
) -> str:
    """Set a timestamp annotation strictly later than the previous one."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    previous = parse_timestamp(annotations.get(timestamp_annotation))
    if previous is not None and now <= previous:
        now = previous + timedelta(microseconds=1)
    value = format_timestamp(now)
    annotations[timestamp_annotation] = value
    return value


class ExtensionResourceState(KubeModel):
    """Persisted state of one extension resource inside a shoot state snapshot."""

    kind: str
    name: Optional[str] = None
    purpose: Optional[str] = None
    state: Optional[Any] = None
    resources: list[NamedResourceReference] = Field(default_factory=list)


class ResourceData(KubeModel):
    """Saved copy of a resource referenced by an extension's state."""

    api_version: str
    kind: str
    name: str
    data: dict[str, Any] = Field(default_factory=dict)

    def matches(self, ref: dict[str, Any]) -> bool:
        return (
            ref.get("apiVersion") == self.api_version
            and ref.get("kind") == self.kind
            and ref.get("name") == self.name
        )


class ShootState(KubeModel):
    """Snapshot of extension states used to seed resources during restore."""

    extensions: list[ExtensionResourceState] = Field(default_factory=list)
    resources: list[ResourceData] = Field(default_factory=list)

    def get(
        self, kind: str, name: Optional[str], purpose: Optional[str] = None
    ) -> Optional[ExtensionResourceState]:
        """
        Look up the state entry for a resource.

        Args:
            kind: Extension kind
            name: Resource name
            purpose: Purpose discriminator, for kinds that have one

        Returns:
            Matching entry or None
        """
        for entry in self.extensions:
            if entry.kind == kind and entry.name == name and entry.purpose == purpose:
                return entry
        return None

    def resource_data(self, ref: dict[str, Any]) -> Optional[ResourceData]:
        """Look up the saved copy of a referenced resource."""
        for data in self.resources:
            if data.matches(ref):
                return data
        return None


class ClusterConfig(BaseModel):
    """Host cluster configuration."""

    name: str
    kubeconfig_path: Optional[str] = None
    kubeconfig_data: Optional[str] = None  # Base64 encoded kubeconfig
    context: Optional[str] = None  # Specific context to use
