"""Generic driver for a single extension resource."""

import logging
from typing import Any, Optional

from .classifier import StatusClassifier
from .client import ExtensionResourceClient
from .config import DriverSettings, WaitTimings, get_settings
from .errors import NotFoundError
from .kinds import KindDescriptor
from .migration import (
    Clock,
    delete_resource,
    migrate_resource,
    restore_resource,
)
from .models import (
    ExtensionResource,
    ExtensionSpec,
    ObjectMeta,
    OperationAnnotation,
    ShootState,
    set_operation,
    utc_now,
)
from .poll import WaitMode, wait_until
from .resources import ReferencedResourceWriter

logger = logging.getLogger(__name__)


class ExtensionDriver:
    """
    Deploys, waits for, migrates, restores and destroys one extension resource.

    What is deployed is defined by the kind descriptor; this class only
    implements the protocol with the extension controller.

    A driver instance must not be used by two tasks at the same time. The
    cached status is written by :meth:`wait` and :meth:`get` only.
    """

    def __init__(
        self,
        client: ExtensionResourceClient,
        descriptor: KindDescriptor,
        timings: Optional[WaitTimings] = None,
        settings: Optional[DriverSettings] = None,
        clock: Clock = utc_now,
        resource_writer: Optional[ReferencedResourceWriter] = None,
    ):
        """
        Initialize extension driver.

        Args:
            client: Extension resource client
            descriptor: Kind descriptor bound to the desired values
            timings: Wait timings (defaults to the kind's configured timings)
            settings: Driver settings
            clock: Source of the current time
            resource_writer: Recreates referenced resources on restore
        """
        self.client = client
        self.descriptor = descriptor
        self.resource_writer = resource_writer
        self.settings = settings or get_settings()
        self.timings = timings or self.settings.timings_for(descriptor.kind)
        self.clock = clock
        self.classifier = StatusClassifier(
            self.timings.severe_threshold,
            clock=clock,
            operation_annotation=self.settings.operation_annotation,
        )
        self._extracted: dict[str, Any] = {}

    @property
    def kind(self) -> str:
        return self.descriptor.kind

    @property
    def plural(self) -> str:
        return self.descriptor.plural

    @property
    def name(self) -> str:
        return self.descriptor.name()

    @property
    def namespace(self) -> str:
        return self.descriptor.namespace

    @property
    def key(self) -> str:
        """Key of this resource in the desired set of its kind."""
        return self.descriptor.key()

    @property
    def provider_status(self) -> Optional[Any]:
        """Provider status extracted by the last successful wait."""
        return self._extracted.get("provider_status")

    @property
    def extracted_status(self) -> dict[str, Any]:
        """All kind-specific status fields extracted by the last successful wait."""
        return dict(self._extracted)

    def desired_resource(self) -> ExtensionResource:
        """
        Build the resource as it should exist, without operation annotations.

        Returns:
            New ExtensionResource with metadata and spec from the descriptor
        """
        return ExtensionResource(
            api_version=self.settings.api_version_str,
            kind=self.kind,
            metadata=ObjectMeta(
                name=self.name,
                namespace=self.namespace,
                labels=self.descriptor.labels(),
            ),
            spec=ExtensionSpec.model_validate(self.descriptor.build_spec()),
        )

    async def deploy(self) -> ExtensionResource:
        """
        Create or update the resource and request a reconciliation.

        Store errors are returned unchanged; retrying is left to the caller.

        Returns:
            Resource as written to the API server
        """
        existing = await self.client.get(self.kind, self.plural, self.namespace, self.name)
        if existing is None:
            resource = self.desired_resource()
            self._request(resource, OperationAnnotation.RECONCILE)
            return await self.client.create(resource, self.plural)

        modified = existing.copy_resource()
        self._apply_desired(modified)
        self._request(modified, OperationAnnotation.RECONCILE)
        return await self.client.patch_from(existing, modified, self.plural)

    async def destroy(self) -> None:
        """Delete the resource. A missing resource is not an error."""
        existing = await self.client.get(self.kind, self.plural, self.namespace, self.name)
        if existing is None:
            logger.debug(f"{self.kind} {self.namespace}/{self.name} already deleted")
            return
        await delete_resource(self.client, self.plural, existing, self.clock, self.settings)

    async def wait(self) -> None:
        """
        Wait until the extension controller reports the resource as ready.

        Raises:
            NotFoundError: Resource does not exist
            SevereReconcileError: Error persisted past the severe threshold
            WaitTimeoutError: Not ready before the timeout
        """
        await self._wait(WaitMode.READY, on_ready=self._store_status)

    async def wait_cleanup(self) -> None:
        """Wait until the resource is gone."""
        await self._wait(WaitMode.CLEANUP)

    async def migrate(self) -> None:
        """Request migration. A missing resource is not an error."""
        await migrate_resource(
            self.client,
            self.kind,
            self.plural,
            self.namespace,
            self.name,
            self.clock,
            self.settings,
        )

    async def wait_migrate(self) -> None:
        """Wait until the extension controller finished the migration."""
        await self._wait(WaitMode.MIGRATE)

    async def restore(self, shoot_state: ShootState) -> ExtensionResource:
        """
        Restore the resource from a shoot state snapshot.

        Args:
            shoot_state: Snapshot of the source cluster

        Returns:
            Restored resource
        """
        return await restore_resource(
            self.client,
            self.plural,
            self.desired_resource(),
            shoot_state,
            purpose=self.descriptor.purpose(),
            clock=self.clock,
            settings=self.settings,
            writer=self.resource_writer,
        )

    async def get(self) -> ExtensionResource:
        """
        Fetch the live resource and refresh the cached status from it.

        Raises:
            NotFoundError: Resource does not exist
        """
        resource = await self._fetch()
        if resource is None:
            raise NotFoundError(self.kind, self.namespace, self.name)
        self._store_status(resource)
        return resource

    async def _fetch(self) -> Optional[ExtensionResource]:
        return await self.client.get(self.kind, self.plural, self.namespace, self.name)

    async def _wait(self, mode: WaitMode, on_ready=None) -> None:
        await wait_until(
            self._fetch,
            self.classifier,
            interval=self.timings.interval_seconds,
            timeout=self.timings.timeout_seconds,
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
            mode=mode,
            on_ready=on_ready,
        )

    def _apply_desired(self, resource: ExtensionResource) -> None:
        resource.spec = ExtensionSpec.model_validate(self.descriptor.build_spec())
        resource.metadata.labels.update(self.descriptor.labels())

    def _request(self, resource: ExtensionResource, operation: OperationAnnotation) -> None:
        set_operation(
            resource,
            operation,
            self.clock(),
            self.settings.operation_annotation,
            self.settings.timestamp_annotation,
        )

    def _store_status(self, resource: ExtensionResource) -> None:
        self._extracted = self.descriptor.extract_status(resource.status)


class InfrastructureDriver(ExtensionDriver):
    """Driver for the Infrastructure resource, exposing its nodes CIDR."""

    @property
    def nodes_cidr(self) -> Optional[str]:
        """Nodes CIDR reported by the infrastructure provider."""
        return self._extracted.get("nodes_cidr")
