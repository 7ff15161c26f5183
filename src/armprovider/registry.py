"""Resource type registry."""

from __future__ import annotations

from .clients import ProviderClients
from .config import ProviderConfig
from .reconciler import ResourceReconciler
from .service_fabric_managed_cluster import ManagedClusterResource
from .stream_analytics_job import StreamAnalyticsJobResource

RESOURCE_TYPES: dict[str, type[ResourceReconciler]] = {
    StreamAnalyticsJobResource.resource_type: StreamAnalyticsJobResource,
    ManagedClusterResource.resource_type: ManagedClusterResource,
}


def get_resource_class(resource_type: str) -> type[ResourceReconciler]:
    """Look up the reconciler class for a resource type name.

    Raises:
        ValueError: If the resource type is not supported.
    """
    resource_class = RESOURCE_TYPES.get(resource_type)
    if resource_class is None:
        raise ValueError(
            f"Unknown resource type '{resource_type}'. Valid types: {sorted(RESOURCE_TYPES)}"
        )
    return resource_class


def build_reconciler(
    resource_type: str, clients: ProviderClients, config: ProviderConfig
) -> ResourceReconciler:
    """Create a reconciler wired to the right management client."""
    resource_class = get_resource_class(resource_type)

    match resource_class.resource_type:
        case StreamAnalyticsJobResource.resource_type:
            client = clients.stream_analytics
        case ManagedClusterResource.resource_type:
            client = clients.service_fabric_managed_clusters
        case _:
            raise ValueError(f"No client registered for '{resource_type}'")

    return resource_class(client, config.subscription_id, config.timeouts)
