"""Kind descriptors for the extension resources the driver manages."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .models import ExtensionResource, ExtensionStatus, Purpose

WORKER_POOL_LABEL = "worker.gardener.cloud/pool"
CONTAINER_RUNTIME_BINARY_PATH = "/var/bin/containerruntimes"


class SecretReference(BaseModel):
    """Reference to the cloud provider credentials."""

    name: str
    namespace: str


class InfrastructureValues(BaseModel):
    """Values used to create an Infrastructure resource."""

    namespace: str
    name: str
    type: str
    region: str
    provider_config: Optional[Any] = None
    secret_ref: Optional[SecretReference] = None
    ssh_public_key: Optional[str] = None


class ControlPlaneValues(BaseModel):
    """Values used to create a ControlPlane resource."""

    namespace: str
    name: str
    type: str
    region: str
    purpose: Purpose = Purpose.NORMAL
    provider_config: Optional[Any] = None
    infrastructure_provider_status: Optional[Any] = None
    secret_ref: Optional[SecretReference] = None


class WorkerPool(BaseModel):
    """Worker pool with the container runtimes it requests."""

    name: str
    cri_name: str = "containerd"
    container_runtimes: list[str] = Field(default_factory=list)


class ContainerRuntimeValues(BaseModel):
    """Values used to create ContainerRuntime resources."""

    namespace: str
    workers: list[WorkerPool] = Field(default_factory=list)


class ExtensionConfig(BaseModel):
    """Desired state of one generic extension."""

    type: str
    name: Optional[str] = None
    provider_config: Optional[Any] = None
    timeout_seconds: Optional[float] = None

    @property
    def resource_name(self) -> str:
        return self.name or self.type


class ExtensionValues(BaseModel):
    """Values used to create generic Extension resources."""

    namespace: str
    extensions: list[ExtensionConfig] = Field(default_factory=list)

    @field_validator("extensions")
    @classmethod
    def validate_unique_types(cls, v: list[ExtensionConfig]) -> list[ExtensionConfig]:
        """Reject two extensions of the same type; resources are keyed by type."""
        types = [e.type for e in v]
        duplicates = sorted({t for t in types if types.count(t) > 1})
        if duplicates:
            raise ValueError(f"duplicate extension types: {', '.join(duplicates)}")
        return v


class KindDescriptor(ABC):
    """
    Describes how one extension resource is named, built and read back.

    A descriptor is bound to the values of a single resource; the generic
    driver only talks to the store through it.
    """

    kind: str = ""
    plural: str = ""

    @property
    @abstractmethod
    def namespace(self) -> str:
        """Namespace the resource lives in."""

    @abstractmethod
    def name(self) -> str:
        """
        Deterministic resource name.

        Returns:
            Name computed from the values alone
        """

    @abstractmethod
    def build_spec(self) -> dict[str, Any]:
        """
        Build the desired spec in wire form.

        Returns:
            Spec dict with at least ``type``
        """

    def purpose(self) -> Optional[str]:
        """Purpose discriminator used for snapshot lookups."""
        return None

    def labels(self) -> dict[str, str]:
        """Labels to set on the resource."""
        return {}

    def key(self) -> str:
        """Key of this unit in the desired set."""
        return self.name()

    @classmethod
    def key_of(cls, resource: ExtensionResource) -> str:
        """Key of an existing resource, comparable to :meth:`key`."""
        return resource.name

    def extract_status(self, status: ExtensionStatus) -> dict[str, Any]:
        """Kind-specific status fields cached by the driver once ready."""
        return {"provider_status": status.provider_status}


class InfrastructureKind(KindDescriptor):
    """Infrastructure provisioning."""

    kind = "Infrastructure"
    plural = "infrastructures"

    def __init__(self, values: InfrastructureValues):
        self.values = values

    @property
    def namespace(self) -> str:
        return self.values.namespace

    def name(self) -> str:
        return self.values.name

    def build_spec(self) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "type": self.values.type,
            "region": self.values.region,
        }
        if self.values.provider_config is not None:
            spec["providerConfig"] = self.values.provider_config
        if self.values.secret_ref is not None:
            spec["secretRef"] = self.values.secret_ref.model_dump()
        if self.values.ssh_public_key is not None:
            spec["sshPublicKey"] = self.values.ssh_public_key
        return spec

    def extract_status(self, status: ExtensionStatus) -> dict[str, Any]:
        return {
            "provider_status": status.provider_status,
            "nodes_cidr": status.nodes_cidr,
        }


class ControlPlaneKind(KindDescriptor):
    """Control plane provider hooks, optionally for the exposure purpose."""

    kind = "ControlPlane"
    plural = "controlplanes"

    def __init__(self, values: ControlPlaneValues):
        self.values = values

    @property
    def namespace(self) -> str:
        return self.values.namespace

    def name(self) -> str:
        if self.values.purpose == Purpose.EXPOSURE:
            return f"{self.values.name}-exposure"
        return self.values.name

    def purpose(self) -> Optional[str]:
        return self.values.purpose.value

    def build_spec(self) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "type": self.values.type,
            "region": self.values.region,
            "purpose": self.values.purpose.value,
        }
        if self.values.provider_config is not None:
            spec["providerConfig"] = self.values.provider_config
        if self.values.infrastructure_provider_status is not None:
            spec["infrastructureProviderStatus"] = self.values.infrastructure_provider_status
        if self.values.secret_ref is not None:
            spec["secretRef"] = self.values.secret_ref.model_dump()
        return spec


class ContainerRuntimeKind(KindDescriptor):
    """One container runtime installed on one worker pool."""

    kind = "ContainerRuntime"
    plural = "containerruntimes"

    def __init__(self, values: ContainerRuntimeValues, worker: WorkerPool, runtime_type: str):
        self.values = values
        self.worker = worker
        self.runtime_type = runtime_type

    @property
    def namespace(self) -> str:
        return self.values.namespace

    def name(self) -> str:
        return container_runtime_key(self.runtime_type, self.worker.name)

    def build_spec(self) -> dict[str, Any]:
        return {
            "type": self.runtime_type,
            "binaryPath": CONTAINER_RUNTIME_BINARY_PATH,
            "workerPool": {
                "name": self.worker.name,
                "selector": {"matchLabels": {WORKER_POOL_LABEL: self.worker.name}},
            },
        }

    @classmethod
    def key_of(cls, resource: ExtensionResource) -> str:
        worker_pool = (resource.spec.model_extra or {}).get("workerPool") or {}
        return container_runtime_key(resource.spec.type, worker_pool.get("name", ""))

    def extract_status(self, status: ExtensionStatus) -> dict[str, Any]:
        return {}


class ExtensionKind(KindDescriptor):
    """Generic out-of-tree extension, keyed by its type."""

    kind = "Extension"
    plural = "extensions"

    def __init__(self, values: ExtensionValues, extension: ExtensionConfig):
        self.values = values
        self.extension = extension

    @property
    def namespace(self) -> str:
        return self.values.namespace

    def name(self) -> str:
        return self.extension.resource_name

    def key(self) -> str:
        return self.extension.type

    @classmethod
    def key_of(cls, resource: ExtensionResource) -> str:
        return resource.spec.type

    def build_spec(self) -> dict[str, Any]:
        spec: dict[str, Any] = {"type": self.extension.type}
        if self.extension.provider_config is not None:
            spec["providerConfig"] = self.extension.provider_config
        return spec


def container_runtime_key(runtime_type: str, worker_pool_name: str) -> str:
    """Name and desired-set key of a ContainerRuntime resource."""
    return f"{runtime_type}-{worker_pool_name}"


def container_runtime_kinds(values: ContainerRuntimeValues) -> list[ContainerRuntimeKind]:
    """One descriptor per configured (worker pool, runtime type) pair."""
    return [
        ContainerRuntimeKind(values, worker, runtime_type)
        for worker in values.workers
        for runtime_type in worker.container_runtimes
    ]


def extension_kinds(values: ExtensionValues) -> list[ExtensionKind]:
    """One descriptor per configured extension."""
    return [ExtensionKind(values, extension) for extension in values.extensions]
