"""Azure management SDK clients.

Clients are created on first use and share one credential.
"""

from __future__ import annotations

import logging
from typing import Any

from azure.mgmt.servicefabricmanagedclusters import ServiceFabricManagedClustersManagementClient
from azure.mgmt.streamanalytics import StreamAnalyticsManagementClient

from .config import ProviderConfig
from .security import get_managed_identity_credential

logger = logging.getLogger(__name__)


class ProviderClients:
    """Lazily constructed management clients for one subscription."""

    def __init__(self, config: ProviderConfig, credential: Any | None = None) -> None:
        """Initialize clients.

        Args:
            config: Validated provider configuration.
            credential: Token credential; a managed identity credential when None.

        Raises:
            SecretlessViolationError: If credential secrets are in the environment.
        """
        self._config = config
        self._credential = credential or get_managed_identity_credential(config.client_id)
        self._stream_analytics: StreamAnalyticsManagementClient | None = None
        self._service_fabric_managed_clusters: (
            ServiceFabricManagedClustersManagementClient | None
        ) = None

    @property
    def subscription_id(self) -> str:
        return self._config.subscription_id

    @property
    def stream_analytics(self) -> StreamAnalyticsManagementClient:
        """Client for Microsoft.StreamAnalytics."""
        if self._stream_analytics is None:
            logger.debug("Creating Stream Analytics client")
            self._stream_analytics = StreamAnalyticsManagementClient(
                credential=self._credential,
                subscription_id=self._config.subscription_id,
            )
        return self._stream_analytics

    @property
    def service_fabric_managed_clusters(self) -> ServiceFabricManagedClustersManagementClient:
        """Client for Microsoft.ServiceFabric managed clusters."""
        if self._service_fabric_managed_clusters is None:
            logger.debug("Creating Service Fabric managed clusters client")
            self._service_fabric_managed_clusters = ServiceFabricManagedClustersManagementClient(
                credential=self._credential,
                subscription_id=self._config.subscription_id,
            )
        return self._service_fabric_managed_clusters
