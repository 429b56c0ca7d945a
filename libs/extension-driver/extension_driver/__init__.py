"""Extension Driver - client side of the extension resource protocol."""

from .classifier import Classification, ResourceState, StatusClassifier
from .client import ExtensionResourceClient, create_merge_patch
from .cluster import ClusterConnection
from .config import DriverSettings, WaitTimings, get_settings
from .driver import ExtensionDriver, InfrastructureDriver
from .errors import (
    ExtensionDriverError,
    FanOutError,
    MigrationFailedError,
    NotFoundError,
    ReconcileError,
    RetryableReconcileError,
    SevereReconcileError,
    TypeMismatchError,
    WaitTimeoutError,
)
from .fanout import run_best_effort, run_exit_on_first_error
from .kinds import (
    ContainerRuntimeKind,
    ContainerRuntimeValues,
    ControlPlaneKind,
    ControlPlaneValues,
    ExtensionConfig,
    ExtensionKind,
    ExtensionValues,
    InfrastructureKind,
    InfrastructureValues,
    KindDescriptor,
    SecretReference,
    WorkerPool,
)
from .migration import (
    annotate_with_operation,
    delete_resource,
    load_shoot_state,
    migrate_resource,
    restore_resource,
)
from .models import (
    ClusterConfig,
    ExtensionResource,
    ExtensionResourceState,
    ExtensionSpec,
    ExtensionStatus,
    LastError,
    LastOperation,
    LastOperationState,
    LastOperationType,
    ObjectMeta,
    OperationAnnotation,
    Purpose,
    ResourceData,
    ShootState,
)
from .multi import (
    MultiResourceDriver,
    new_container_runtime_driver,
    new_control_plane_driver,
    new_extension_driver_set,
    new_infrastructure_driver,
)
from .poll import WaitMode, wait_until
from .resources import ReferencedResourceWriter
from .stale import StaleResourceReconciler

__version__ = "0.1.0"

__all__ = [
    # Cluster access
    "ClusterConnection",
    "ExtensionResourceClient",
    "create_merge_patch",
    "ReferencedResourceWriter",
    # Drivers
    "ExtensionDriver",
    "InfrastructureDriver",
    "MultiResourceDriver",
    "StaleResourceReconciler",
    "new_container_runtime_driver",
    "new_control_plane_driver",
    "new_extension_driver_set",
    "new_infrastructure_driver",
    # Kinds
    "KindDescriptor",
    "InfrastructureKind",
    "InfrastructureValues",
    "ControlPlaneKind",
    "ControlPlaneValues",
    "ContainerRuntimeKind",
    "ContainerRuntimeValues",
    "WorkerPool",
    "ExtensionKind",
    "ExtensionValues",
    "ExtensionConfig",
    "SecretReference",
    # Status and waiting
    "StatusClassifier",
    "Classification",
    "ResourceState",
    "WaitMode",
    "wait_until",
    "run_best_effort",
    "run_exit_on_first_error",
    # Migrate and restore
    "annotate_with_operation",
    "delete_resource",
    "migrate_resource",
    "restore_resource",
    "load_shoot_state",
    # Configuration
    "DriverSettings",
    "WaitTimings",
    "get_settings",
    # Errors
    "ExtensionDriverError",
    "NotFoundError",
    "ReconcileError",
    "RetryableReconcileError",
    "SevereReconcileError",
    "MigrationFailedError",
    "WaitTimeoutError",
    "TypeMismatchError",
    "FanOutError",
    # Models
    "ClusterConfig",
    "ExtensionResource",
    "ExtensionSpec",
    "ExtensionStatus",
    "ObjectMeta",
    "LastOperation",
    "LastError",
    "LastOperationType",
    "LastOperationState",
    "OperationAnnotation",
    "Purpose",
    "ShootState",
    "ResourceData",
    "ExtensionResourceState",
]
