"""Operation annotations, guarded deletion and the migrate/restore protocol."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from kubernetes.client import CustomObjectsApi
from kubernetes.client.exceptions import ApiException

from .client import ExtensionResourceClient
from .config import DriverSettings, get_settings
from .models import (
    ExtensionResource,
    OperationAnnotation,
    ShootState,
    refresh_timestamp,
    set_operation,
    utc_now,
)
from .resources import ReferencedResourceWriter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


async def annotate_with_operation(
    client: ExtensionResourceClient,
    plural: str,
    resource: ExtensionResource,
    operation: OperationAnnotation,
    clock: Clock = utc_now,
    settings: Optional[DriverSettings] = None,
) -> ExtensionResource:
    """
    Set the operation annotation on a resource with a merge patch.

    The patch is computed against ``resource`` as known locally, so a caller
    holding the object returned by a previous write does not need to fetch it
    again.

    Args:
        client: Extension resource client
        plural: Resource plural
        resource: Last known version of the resource
        operation: Operation to request
        clock: Source of the current time
        settings: Driver settings (annotation keys)

    Returns:
        Patched resource
    """
    settings = settings or get_settings()
    modified = resource.copy_resource()
    set_operation(
        modified,
        operation,
        clock(),
        settings.operation_annotation,
        settings.timestamp_annotation,
    )
    patched = await client.patch_from(resource, modified, plural)
    logger.info(f"Annotated {resource.key} with operation {operation.value}")
    return patched


async def delete_resource(
    client: ExtensionResourceClient,
    plural: str,
    resource: ExtensionResource,
    clock: Clock = utc_now,
    settings: Optional[DriverSettings] = None,
) -> bool:
    """
    Confirm and delete a resource.

    The deletion-confirmation annotation and a fresh timestamp are patched
    first so the extension controller can tell an intended deletion from
    garbage collection; only then is the delete issued.

    Args:
        client: Extension resource client
        plural: Resource plural
        resource: Resource to delete
        clock: Source of the current time
        settings: Driver settings (annotation keys)

    Returns:
        True if deleted, False if the resource was already gone
    """
    settings = settings or get_settings()
    modified = resource.copy_resource()
    annotations = modified.metadata.annotations
    annotations[settings.deletion_confirmation_annotation] = "true"
    refresh_timestamp(annotations, clock(), settings.timestamp_annotation)

    try:
        await client.patch_from(resource, modified, plural)
    except ApiException as e:
        if e.status == 404:
            return False
        raise
    return await client.delete(resource.kind, plural, resource.namespace, resource.name)


async def migrate_resource(
    client: ExtensionResourceClient,
    kind: str,
    plural: str,
    namespace: str,
    name: str,
    clock: Clock = utc_now,
    settings: Optional[DriverSettings] = None,
) -> Optional[ExtensionResource]:
    """
    Request migration of a resource.

    Returns:
        Annotated resource, or None if there is nothing to migrate
    """
    resource = await client.get(kind, plural, namespace, name)
    if resource is None:
        logger.debug(f"{kind} {namespace}/{name} not found, nothing to migrate")
        return None
    return await annotate_with_operation(
        client, plural, resource, OperationAnnotation.MIGRATE, clock, settings
    )


async def restore_resource(
    client: ExtensionResourceClient,
    plural: str,
    desired: ExtensionResource,
    shoot_state: ShootState,
    purpose: Optional[str] = None,
    clock: Clock = utc_now,
    settings: Optional[DriverSettings] = None,
    writer: Optional[ReferencedResourceWriter] = None,
) -> ExtensionResource:
    """
    Restore a resource from a shoot state snapshot.

    A missing resource is created with ``wait-for-state``, its status is
    seeded from the snapshot entry matching (kind, name, purpose), the
    resources the entry references are recreated from their saved copies,
    and the operation is then flipped to ``restore``.

    An existing resource still annotated ``wait-for-state`` is left over from
    an interrupted restore; it gets the same seeding before the flip. Any
    other existing resource only gets the flip, and nothing is written if it
    already carries ``restore``.

    The flip is patched against the object returned by the status write
    without fetching it again. A concurrent write to metadata or spec by
    the extension controller in that window would be overwritten.

    Args:
        client: Extension resource client
        plural: Resource plural
        desired: Resource with desired metadata and spec
        shoot_state: Snapshot to seed the status from
        purpose: Purpose discriminator for the snapshot lookup
        clock: Source of the current time
        settings: Driver settings (annotation keys)
        writer: Writer for referenced resources; without one they are not recreated

    Returns:
        Restored resource
    """
    settings = settings or get_settings()
    existing = await client.get(desired.kind, plural, desired.namespace, desired.name)

    if existing is not None:
        operation = existing.operation(settings.operation_annotation)
        if operation == OperationAnnotation.RESTORE.value:
            logger.debug(f"{existing.key} is already being restored")
            return existing
        if operation == OperationAnnotation.WAIT_FOR_STATE.value:
            existing = await _seed_state(client, plural, existing, shoot_state, purpose, writer)
        return await annotate_with_operation(
            client, plural, existing, OperationAnnotation.RESTORE, clock, settings
        )

    resource = desired.copy_resource()
    set_operation(
        resource,
        OperationAnnotation.WAIT_FOR_STATE,
        clock(),
        settings.operation_annotation,
        settings.timestamp_annotation,
    )
    created = await client.create(resource, plural)
    created = await _seed_state(client, plural, created, shoot_state, purpose, writer)
    return await annotate_with_operation(
        client, plural, created, OperationAnnotation.RESTORE, clock, settings
    )


async def _seed_state(
    client: ExtensionResourceClient,
    plural: str,
    resource: ExtensionResource,
    shoot_state: ShootState,
    purpose: Optional[str],
    writer: Optional[ReferencedResourceWriter],
) -> ExtensionResource:
    entry = shoot_state.get(resource.kind, resource.name, purpose)
    if entry is None:
        logger.warning(f"No state found for {resource.key}, restoring without state")
        return resource

    status = {}
    if entry.state is not None:
        status["state"] = entry.state
    if entry.resources:
        status["resources"] = [ref.to_dict() for ref in entry.resources]
    if status:
        resource = await client.patch_status(resource, plural, status)

    if writer is None:
        return resource
    for ref in entry.resources:
        data = shoot_state.resource_data(ref.resource_ref)
        if data is None:
            logger.warning(f"No saved copy of {ref.name} referenced by {resource.key}")
            continue
        await writer.apply(data, resource.namespace)
    return resource


async def load_shoot_state(
    custom_objects: CustomObjectsApi,
    namespace: str,
    name: str,
    group: Optional[str] = None,
    version: Optional[str] = None,
    plural: Optional[str] = None,
) -> ShootState:
    """
    Read the shoot state snapshot used by restore.

    Args:
        custom_objects: Kubernetes custom objects API of the cluster holding the snapshot
        namespace: Namespace of the snapshot
        name: Name of the snapshot
        group: API group (defaults from settings)
        version: API version (defaults from settings)
        plural: Resource plural (defaults from settings)

    Returns:
        ShootState, empty if no snapshot exists
    """
    settings = get_settings()
    try:
        obj = await asyncio.to_thread(
            custom_objects.get_namespaced_custom_object,
            group or settings.shoot_state_group,
            version or settings.shoot_state_version,
            namespace,
            plural or settings.shoot_state_plural,
            name,
        )
    except ApiException as e:
        if e.status == 404:
            logger.warning(f"ShootState {namespace}/{name} not found")
            return ShootState()
        raise
    return ShootState.model_validate(obj.get("spec") or {})
