"""Recreating resources saved alongside an extension's state."""

import asyncio
import copy
import logging
from typing import Any

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient

from .models import ResourceData

logger = logging.getLogger(__name__)

# Server-populated metadata that must not be sent back on create
SERVER_FIELDS = ("resourceVersion", "uid", "creationTimestamp", "generation", "managedFields", "selfLink")


class ReferencedResourceWriter:
    """
    Creates or updates arbitrary resources from their saved copies.

    Used during restore for resources an extension controller referenced in
    its status (secrets, config maps, machine state and so on).
    """

    def __init__(self, dynamic_client: DynamicClient):
        """
        Initialize referenced resource writer.

        Args:
            dynamic_client: Kubernetes dynamic client of the destination cluster
        """
        self.dynamic_client = dynamic_client

    async def apply(self, data: ResourceData, namespace: str) -> None:
        """
        Create the resource, or merge-patch it if it already exists.

        Args:
            data: Saved copy of the resource
            namespace: Namespace to restore it into

        Raises:
            ApiException: For any API error other than a conflict on create
        """
        body = self._body(data, namespace)
        api = await asyncio.to_thread(
            self.dynamic_client.resources.get, api_version=data.api_version, kind=data.kind
        )
        try:
            await asyncio.to_thread(api.create, body=body, namespace=namespace)
        except ApiException as e:
            if e.status != 409:
                raise
            await asyncio.to_thread(
                api.patch,
                body=body,
                name=data.name,
                namespace=namespace,
                content_type="application/merge-patch+json",
            )
            logger.info(f"Updated {data.kind} {namespace}/{data.name}")
            return
        logger.info(f"Created {data.kind} {namespace}/{data.name}")

    @staticmethod
    def _body(data: ResourceData, namespace: str) -> dict[str, Any]:
        body = copy.deepcopy(data.data)
        body["apiVersion"] = data.api_version
        body["kind"] = data.kind
        body.pop("status", None)
        metadata = body.get("metadata") or {}
        for field in SERVER_FIELDS:
            metadata.pop(field, None)
        metadata["name"] = data.name
        metadata["namespace"] = namespace
        body["metadata"] = metadata
        return body
