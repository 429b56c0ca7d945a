"""Host cluster connections for the extension driver."""

import base64
import logging
import tempfile
from pathlib import Path
from typing import Optional

from kubernetes import config
from kubernetes.client import ApiClient, CustomObjectsApi
from kubernetes.dynamic import DynamicClient

from .client import ExtensionResourceClient
from .config import DriverSettings, get_settings
from .models import ClusterConfig
from .resources import ReferencedResourceWriter

logger = logging.getLogger(__name__)


class ClusterConnection:
    """
    Connection to a single host cluster.

    Migration involves two of them: the source cluster the resources are
    migrated away from and the destination cluster they are restored into.
    """

    def __init__(self, cluster_config: ClusterConfig):
        """
        Initialize cluster connection.

        Args:
            cluster_config: Cluster configuration

        Raises:
            ValueError: If kubeconfig is invalid
        """
        self.config = cluster_config
        self._api_client: Optional[ApiClient] = None
        self._custom_objects: Optional[CustomObjectsApi] = None
        self._temp_kubeconfig: Optional[Path] = None

        self._initialize_client()

    def _initialize_client(self):
        """Load the kubeconfig and build the API client."""
        try:
            client_config = None
            if self.config.kubeconfig_data:
                kubeconfig_content = base64.b64decode(self.config.kubeconfig_data)
                with tempfile.NamedTemporaryFile(mode="wb", delete=False) as f:
                    f.write(kubeconfig_content)
                    self._temp_kubeconfig = Path(f.name)
                client_config = config.new_client_from_config(
                    config_file=str(self._temp_kubeconfig),
                    context=self.config.context,
                )
            elif self.config.kubeconfig_path:
                client_config = config.new_client_from_config(
                    config_file=self.config.kubeconfig_path,
                    context=self.config.context,
                )
            else:
                # In-cluster service account
                config.load_incluster_config()
                client_config = ApiClient()

            self._api_client = client_config
            self._custom_objects = CustomObjectsApi(self._api_client)
            logger.info(f"Connected to host cluster {self.config.name}")

        except Exception as e:
            self.close()
            raise ValueError(f"Failed to initialize cluster connection: {e}") from e

    @property
    def api_client(self) -> ApiClient:
        """Get ApiClient instance."""
        if not self._api_client:
            raise RuntimeError("Cluster connection not initialized")
        return self._api_client

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """Get CustomObjectsApi instance."""
        if not self._custom_objects:
            raise RuntimeError("Cluster connection not initialized")
        return self._custom_objects

    def extension_client(self, settings: Optional[DriverSettings] = None) -> ExtensionResourceClient:
        """
        Build an extension resource client for this cluster.

        Args:
            settings: Driver settings (API group and version)

        Returns:
            ExtensionResourceClient bound to this cluster
        """
        settings = settings or get_settings()
        return ExtensionResourceClient(
            self.custom_objects, settings.api_group, settings.api_version
        )

    def resource_writer(self) -> ReferencedResourceWriter:
        """
        Build a writer for resources referenced by extension state.

        Creating the dynamic client runs API discovery against the cluster.

        Returns:
            ReferencedResourceWriter bound to this cluster
        """
        return ReferencedResourceWriter(DynamicClient(self.api_client))

    def close(self):
        """Close the cluster connection and clean up resources."""
        if self._api_client:
            self._api_client.close()
            self._api_client = None

        if self._temp_kubeconfig and self._temp_kubeconfig.exists():
            self._temp_kubeconfig.unlink()
            self._temp_kubeconfig = None

        self._custom_objects = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
