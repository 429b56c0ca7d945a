"""Drivers for kinds that are deployed once per configured unit."""

import logging
from functools import partial
from typing import Optional, Sequence

from .client import ExtensionResourceClient
from .config import DriverSettings, get_settings
from .driver import ExtensionDriver, InfrastructureDriver
from .fanout import run_best_effort, run_exit_on_first_error
from .kinds import (
    ContainerRuntimeKind,
    ContainerRuntimeValues,
    ControlPlaneKind,
    ControlPlaneValues,
    ExtensionKind,
    ExtensionValues,
    InfrastructureKind,
    InfrastructureValues,
    container_runtime_kinds,
    extension_kinds,
)
from .migration import Clock, annotate_with_operation
from .models import OperationAnnotation, ShootState, utc_now
from .poll import WaitMode
from .resources import ReferencedResourceWriter
from .stale import KeyFn, StaleResourceReconciler, wait_for_all

logger = logging.getLogger(__name__)


class MultiResourceDriver:
    """
    Fans driver operations out over the resources of one kind.

    Deploy, wait and restore run per configured sub-driver. Migrate, destroy
    and their waits work on whatever exists in the namespace, found with a
    single list call, so resources that are no longer configured are
    covered too.
    """

    def __init__(
        self,
        client: ExtensionResourceClient,
        drivers: Sequence[ExtensionDriver],
        kind: str,
        plural: str,
        namespace: str,
        key_fn: KeyFn,
        settings: Optional[DriverSettings] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize multi-resource driver.

        Args:
            client: Extension resource client
            drivers: One driver per configured unit
            kind: Resource kind
            plural: Resource plural
            namespace: Namespace of the resources
            key_fn: Computes the desired-set key of an existing resource
            settings: Driver settings
            clock: Source of the current time

        Raises:
            ValueError: If two sub-drivers share a key
        """
        keys = [d.key for d in drivers]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"Duplicate {kind} keys: {', '.join(duplicates)}")

        self.client = client
        self.drivers = list(drivers)
        self.kind = kind
        self.plural = plural
        self.namespace = namespace
        self.settings = settings or get_settings()
        self.clock = clock
        self.timings = self.settings.timings_for(kind)
        self.stale = StaleResourceReconciler(
            client, kind, plural, namespace, key_fn, self.settings, clock
        )

    @property
    def keys(self) -> list[str]:
        """Keys of the configured sub-drivers."""
        return [d.key for d in self.drivers]

    async def deploy(self) -> None:
        """Deploy all configured resources; one failure does not stop the others."""
        logger.debug(f"Deploying {len(self.drivers)} {self.kind}(s) in {self.namespace}")
        await run_best_effort({d.key: d.deploy for d in self.drivers})

    async def wait(self) -> None:
        """Wait for all configured resources, failing fast on the first error."""
        await run_exit_on_first_error({d.key: d.wait for d in self.drivers})

    async def restore(self, shoot_state: ShootState) -> None:
        """Restore all configured resources from a shoot state snapshot."""
        await run_best_effort({d.key: partial(d.restore, shoot_state) for d in self.drivers})

    async def migrate(self) -> None:
        """Request migration of every existing resource of the kind."""
        resources = await self.client.list(self.kind, self.plural, self.namespace)
        await run_best_effort(
            {
                r.name: partial(
                    annotate_with_operation,
                    self.client,
                    self.plural,
                    r,
                    OperationAnnotation.MIGRATE,
                    self.clock,
                    self.settings,
                )
                for r in resources
            }
        )

    async def wait_migrate(self) -> None:
        """Wait until every existing resource of the kind is migrated."""
        resources = await self.client.list(self.kind, self.plural, self.namespace)
        await wait_for_all(
            self.client,
            self.plural,
            resources,
            WaitMode.MIGRATE,
            self.timings,
            self.clock,
            self.settings,
        )

    async def destroy(self) -> None:
        """Delete every existing resource of the kind."""
        await self.stale.delete_stale_resources(set())

    async def wait_cleanup(self) -> None:
        """Wait until every existing resource of the kind is gone."""
        resources = await self.client.list(self.kind, self.plural, self.namespace)
        await wait_for_all(
            self.client,
            self.plural,
            resources,
            WaitMode.CLEANUP,
            self.timings,
            self.clock,
            self.settings,
        )

    async def delete_stale_resources(self, wanted: Optional[set[str]] = None) -> list[str]:
        """
        Delete resources that are no longer configured.

        Args:
            wanted: Keys to keep (defaults to the configured sub-drivers)

        Returns:
            Names of the deleted resources
        """
        if wanted is None:
            wanted = set(self.keys)
        return await self.stale.delete_stale_resources(wanted)

    async def wait_cleanup_stale_resources(self, wanted: Optional[set[str]] = None) -> None:
        """Wait until stale resources being deleted are gone."""
        if wanted is None:
            wanted = set(self.keys)
        await self.stale.wait_cleanup_stale_resources(wanted, self.timings)


def new_container_runtime_driver(
    client: ExtensionResourceClient,
    values: ContainerRuntimeValues,
    settings: Optional[DriverSettings] = None,
    clock: Clock = utc_now,
    resource_writer: Optional[ReferencedResourceWriter] = None,
) -> MultiResourceDriver:
    """Create a driver for one ContainerRuntime per worker pool and runtime type."""
    settings = settings or get_settings()
    drivers = [
        ExtensionDriver(
            client, descriptor, settings=settings, clock=clock, resource_writer=resource_writer
        )
        for descriptor in container_runtime_kinds(values)
    ]
    return MultiResourceDriver(
        client,
        drivers,
        ContainerRuntimeKind.kind,
        ContainerRuntimeKind.plural,
        values.namespace,
        ContainerRuntimeKind.key_of,
        settings,
        clock,
    )


def new_extension_driver_set(
    client: ExtensionResourceClient,
    values: ExtensionValues,
    settings: Optional[DriverSettings] = None,
    clock: Clock = utc_now,
    resource_writer: Optional[ReferencedResourceWriter] = None,
) -> MultiResourceDriver:
    """Create a driver for the configured generic extensions."""
    settings = settings or get_settings()
    drivers = []
    for descriptor in extension_kinds(values):
        timings = settings.timings_for(ExtensionKind.kind)
        if descriptor.extension.timeout_seconds is not None:
            timings = timings.model_copy(
                update={"timeout_seconds": descriptor.extension.timeout_seconds}
            )
        drivers.append(
            ExtensionDriver(
                client,
                descriptor,
                timings=timings,
                settings=settings,
                clock=clock,
                resource_writer=resource_writer,
            )
        )
    return MultiResourceDriver(
        client,
        drivers,
        ExtensionKind.kind,
        ExtensionKind.plural,
        values.namespace,
        ExtensionKind.key_of,
        settings,
        clock,
    )


def new_infrastructure_driver(
    client: ExtensionResourceClient,
    values: InfrastructureValues,
    settings: Optional[DriverSettings] = None,
    clock: Clock = utc_now,
    resource_writer: Optional[ReferencedResourceWriter] = None,
) -> InfrastructureDriver:
    """Create a driver for the Infrastructure resource."""
    return InfrastructureDriver(
        client,
        InfrastructureKind(values),
        settings=settings,
        clock=clock,
        resource_writer=resource_writer,
    )


def new_control_plane_driver(
    client: ExtensionResourceClient,
    values: ControlPlaneValues,
    settings: Optional[DriverSettings] = None,
    clock: Clock = utc_now,
    resource_writer: Optional[ReferencedResourceWriter] = None,
) -> ExtensionDriver:
    """Create a driver for a ControlPlane resource of the given purpose."""
    return ExtensionDriver(
        client,
        ControlPlaneKind(values),
        settings=settings,
        clock=clock,
        resource_writer=resource_writer,
    )
