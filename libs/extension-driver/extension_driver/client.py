"""Extension resource access through the Kubernetes custom objects API."""

import asyncio
import logging
from typing import Any, Optional

from kubernetes.client import CustomObjectsApi
from kubernetes.client.exceptions import ApiException

from .errors import TypeMismatchError
from .models import ExtensionResource

logger = logging.getLogger(__name__)


def create_merge_patch(original: dict[str, Any], modified: dict[str, Any]) -> dict[str, Any]:
    """
    Compute a JSON merge patch (RFC 7386) turning ``original`` into ``modified``.

    Args:
        original: Object before mutation
        modified: Object after mutation

    Returns:
        Merge patch; keys removed in ``modified`` map to None
    """
    patch: dict[str, Any] = {}
    for key in original.keys() - modified.keys():
        patch[key] = None
    for key, value in modified.items():
        old = original.get(key)
        if isinstance(value, dict) and isinstance(old, dict):
            nested = create_merge_patch(old, value)
            if nested:
                patch[key] = nested
        elif key not in original or old != value:
            patch[key] = value
    return patch


class ExtensionResourceClient:
    """
    Typed access to extension resources of one API group/version.

    Store errors are propagated unchanged, there is no retry at this layer.
    Not-found is mapped to None/False only where absence is meaningful.
    """

    def __init__(self, custom_objects: CustomObjectsApi, group: str, version: str):
        """
        Initialize extension resource client.

        Args:
            custom_objects: Kubernetes custom objects API
            group: API group of the extension resources
            version: API version of the extension resources
        """
        self.custom_objects = custom_objects
        self.group = group
        self.version = version

    async def get(
        self, kind: str, plural: str, namespace: str, name: str
    ) -> Optional[ExtensionResource]:
        """
        Get an extension resource.

        Args:
            kind: Expected kind
            plural: Resource plural
            namespace: Kubernetes namespace
            name: Resource name

        Returns:
            ExtensionResource or None if not found

        Raises:
            TypeMismatchError: If the object is not of the expected kind
            ApiException: For any other API error
        """
        try:
            obj = await asyncio.to_thread(
                self.custom_objects.get_namespaced_custom_object,
                self.group,
                self.version,
                namespace,
                plural,
                name,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return self._to_resource(kind, obj)

    async def create(self, resource: ExtensionResource, plural: str) -> ExtensionResource:
        """
        Create an extension resource.

        Args:
            resource: Resource to create (status is not sent)
            plural: Resource plural

        Returns:
            Created resource as returned by the API server
        """
        body = resource.to_dict()
        body.pop("status", None)
        obj = await asyncio.to_thread(
            self.custom_objects.create_namespaced_custom_object,
            self.group,
            self.version,
            resource.namespace,
            plural,
            body,
        )
        logger.info(f"Created {resource.key}")
        return self._to_resource(resource.kind, obj)

    async def patch(
        self, resource: ExtensionResource, plural: str, patch: dict[str, Any]
    ) -> ExtensionResource:
        """
        Apply a merge patch to an extension resource.

        Args:
            resource: Resource identity
            plural: Resource plural
            patch: JSON merge patch

        Returns:
            Patched resource
        """
        obj = await asyncio.to_thread(
            self.custom_objects.patch_namespaced_custom_object,
            self.group,
            self.version,
            resource.namespace,
            plural,
            resource.name,
            patch,
        )
        logger.info(f"Patched {resource.key}")
        return self._to_resource(resource.kind, obj)

    async def patch_from(
        self,
        original: ExtensionResource,
        modified: ExtensionResource,
        plural: str,
    ) -> ExtensionResource:
        """
        Patch the difference of metadata and spec between two versions.

        The patch is computed against ``original`` as known locally; the
        object is not re-fetched first.

        Args:
            original: Object before mutation
            modified: Object after mutation
            plural: Resource plural

        Returns:
            Patched resource, or ``modified`` if there is nothing to patch
        """
        before = original.to_dict()
        after = modified.to_dict()
        before.pop("status", None)
        after.pop("status", None)
        patch = create_merge_patch(before, after)
        if not patch:
            return modified
        return await self.patch(modified, plural, patch)

    async def patch_status(
        self, resource: ExtensionResource, plural: str, status: dict[str, Any]
    ) -> ExtensionResource:
        """
        Merge-patch the status subresource of an extension resource.

        Args:
            resource: Resource identity
            plural: Resource plural
            status: Status fields to merge

        Returns:
            Resource with updated status
        """
        obj = await asyncio.to_thread(
            self.custom_objects.patch_namespaced_custom_object_status,
            self.group,
            self.version,
            resource.namespace,
            plural,
            resource.name,
            {"status": status},
        )
        logger.info(f"Patched status of {resource.key}")
        return self._to_resource(resource.kind, obj)

    async def delete(self, kind: str, plural: str, namespace: str, name: str) -> bool:
        """
        Delete an extension resource.

        Args:
            kind: Resource kind, for logging
            plural: Resource plural
            namespace: Kubernetes namespace
            name: Resource name

        Returns:
            True if deleted, False if not found
        """
        try:
            await asyncio.to_thread(
                self.custom_objects.delete_namespaced_custom_object,
                self.group,
                self.version,
                namespace,
                plural,
                name,
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        logger.info(f"Deleted {kind} {namespace}/{name}")
        return True

    async def list(
        self,
        kind: str,
        plural: str,
        namespace: str,
        labels: Optional[dict[str, str]] = None,
    ) -> list[ExtensionResource]:
        """
        List extension resources.

        Args:
            kind: Expected kind
            plural: Resource plural
            namespace: Kubernetes namespace
            labels: Label selector dict

        Returns:
            List of ExtensionResource objects
        """
        label_selector = None
        if labels:
            label_selector = ",".join([f"{k}={v}" for k, v in labels.items()])

        result = await asyncio.to_thread(
            self.custom_objects.list_namespaced_custom_object,
            self.group,
            self.version,
            namespace,
            plural,
            label_selector=label_selector,
        )
        return [self._to_resource(kind, item) for item in result.get("items") or []]

    def _to_resource(self, kind: str, obj: Any) -> ExtensionResource:
        if not isinstance(obj, dict):
            raise TypeMismatchError(kind, type(obj).__name__)
        # List items may omit kind, the list itself carries it.
        actual = obj.get("kind") or kind
        if actual != kind:
            raise TypeMismatchError(kind, actual)
        return ExtensionResource.from_dict({**obj, "kind": actual})
