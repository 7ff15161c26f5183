"""Service Fabric Managed Cluster resource (azurerm_service_fabric_managed_cluster).

Node types are separate sub-resources of the cluster. The cluster is written
first, then node types are reconciled by name:

- desired but absent: created
- present and different: updated
- present and identical: left alone
- present but no longer desired: deleted, after all writes so the cluster
  always keeps a primary node type

Read lists the node types and orders them by the prior (or desired) order;
node types unknown to the caller are appended sorted by name.
"""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, ClassVar, Literal

from pydantic import AfterValidator, Field, field_validator

from .ids import ManagedClusterId, NodeTypeId
from .reconciler import Deadline, ResourceReconciler
from .schema import (
    Block,
    Location,
    NonEmptyStr,
    ResourceConfig,
    ResourceGroupName,
    Tags,
    attribute,
    normalize_location,
    strip_read_only,
)

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "azurerm_service_fabric_managed_cluster"

DEFAULT_CLIENT_CONNECTION_PORT = 19000
DEFAULT_HTTP_GATEWAY_PORT = 19080

ADDON_DNS_SERVICE = "DnsService"
ADDON_BACKUP_RESTORE_SERVICE = "BackupRestoreService"

PORT_RANGE_PATTERN = re.compile(r"^(\d+)-(\d+)$")

_WAIT_OPERATIONS = {
    "creating": "waiting for creation of",
    "updating": "waiting for update of",
    "creating node type": "waiting for creation of node type",
    "updating node type": "waiting for update of node type",
}

Port = Annotated[int, Field(ge=1, le=65535)]


def parse_port_range(value: str) -> tuple[int, int]:
    """Parse "start-end" into a pair of ports."""
    match = PORT_RANGE_PATTERN.match(value)
    if match is None:
        raise ValueError(f"port range must be in the form 'start-end': {value!r}")
    start, end = int(match.group(1)), int(match.group(2))
    if start > end:
        raise ValueError(f"port range start must not exceed its end: {value!r}")
    if end > 65535:
        raise ValueError(f"port range exceeds 65535: {value!r}")
    return start, end


def _validate_port_range(value: str) -> str:
    parse_port_range(value)
    return value


PortRange = Annotated[str, AfterValidator(_validate_port_range)]
ClusterName = Annotated[str, Field(pattern=r"^[a-z][a-z0-9-]{2,21}[a-z0-9]$")]


class LoadBalancingRule(Block):
    """Load balancer rule block (lb_rule)."""

    backend_port: Port
    frontend_port: Port
    protocol: Literal["tcp", "udp"]
    probe_protocol: Literal["tcp", "http", "https"]
    probe_request_path: str | None = None


class CustomFabricSetting(Block):
    """Fabric setting block (custom_fabric_setting)."""

    section: NonEmptyStr
    parameter: NonEmptyStr
    value: NonEmptyStr


class NodeType(Block):
    """Node type block (node_type)."""

    name: NonEmptyStr
    primary: bool = False
    data_disk_size_gb: int = Field(ge=1)
    data_disk_type: Literal["Standard_LRS", "StandardSSD_LRS", "Premium_LRS"] = "Standard_LRS"
    application_port_range: PortRange
    ephemeral_port_range: PortRange
    vm_size: NonEmptyStr
    vm_image_publisher: NonEmptyStr
    vm_image_offer: NonEmptyStr
    vm_image_sku: NonEmptyStr
    vm_image_version: NonEmptyStr
    vm_instance_count: int = Field(ge=1, le=1000)
    stateless: bool = False
    multiple_placement_groups_enabled: bool = False
    placement_properties: dict[str, str] = Field(default_factory=dict)
    capacities: dict[str, str] = Field(default_factory=dict)
    id: str | None = attribute(None, read_only=True)


class ServiceFabricManagedCluster(ResourceConfig):
    """Desired configuration of a Service Fabric Managed Cluster."""

    name: ClusterName = attribute(force_new=True)
    resource_group_name: ResourceGroupName = attribute(force_new=True)
    location: Location = attribute(force_new=True)
    sku: Literal["Basic", "Standard"] = attribute("Basic", force_new=True)

    username: NonEmptyStr
    password: NonEmptyStr | None = attribute(None, sensitive=True)

    dns_name: NonEmptyStr | None = attribute(None, computed=True)
    dns_service_enabled: bool = False
    backup_service_enabled: bool = False
    client_connection_port: Port = DEFAULT_CLIENT_CONNECTION_PORT
    http_gateway_port: Port = DEFAULT_HTTP_GATEWAY_PORT

    lb_rule: list[LoadBalancingRule] = Field(default_factory=list)
    custom_fabric_setting: list[CustomFabricSetting] = Field(default_factory=list)
    node_type: list[NodeType] = Field(default_factory=list)

    fqdn: str | None = attribute(None, read_only=True)
    cluster_id: str | None = attribute(None, read_only=True)
    tags: Tags = Field(default_factory=dict)

    @field_validator("node_type")
    @classmethod
    def validate_unique_node_types(cls, v: list[NodeType]) -> list[NodeType]:
        names = [nt.name for nt in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"node type names must be unique: {', '.join(duplicates)}")
        return v


# =============================================================================
# Payload translation
# =============================================================================


def _port_range_body(value: str) -> dict[str, int]:
    start, end = parse_port_range(value)
    return {"startPort": start, "endPort": end}


def expand_cluster(values: dict[str, Any]) -> dict[str, Any]:
    """Build the managed cluster body (node types excluded)."""
    addons = []
    if values.get("dns_service_enabled"):
        addons.append(ADDON_DNS_SERVICE)
    if values.get("backup_service_enabled"):
        addons.append(ADDON_BACKUP_RESTORE_SERVICE)

    sections: dict[str, list[dict[str, str]]] = {}
    for setting in values.get("custom_fabric_setting") or []:
        sections.setdefault(setting["section"], []).append(
            {"name": setting["parameter"], "value": setting["value"]}
        )

    properties: dict[str, Any] = {
        "adminUserName": values["username"],
        "clientConnectionPort": values["client_connection_port"],
        "httpGatewayConnectionPort": values["http_gateway_port"],
        "addonFeatures": addons,
        "loadBalancingRules": [
            {
                "backendPort": rule["backend_port"],
                "frontendPort": rule["frontend_port"],
                "protocol": rule["protocol"],
                "probeProtocol": rule["probe_protocol"],
                **(
                    {"probeRequestPath": rule["probe_request_path"]}
                    if rule.get("probe_request_path")
                    else {}
                ),
            }
            for rule in values.get("lb_rule") or []
        ],
        "fabricSettings": [
            {"name": section, "parameters": parameters} for section, parameters in sections.items()
        ],
    }
    if values.get("dns_name"):
        properties["dnsName"] = values["dns_name"]
    if values.get("password"):
        properties["adminPassword"] = values["password"]

    return {
        "location": values["location"],
        "tags": values.get("tags") or {},
        "sku": {"name": values["sku"]},
        "properties": properties,
    }


def expand_node_type(values: dict[str, Any]) -> dict[str, Any]:
    """Build a node type body."""
    return {
        "properties": {
            "isPrimary": values["primary"],
            "vmInstanceCount": values["vm_instance_count"],
            "dataDiskSizeGB": values["data_disk_size_gb"],
            "dataDiskType": values["data_disk_type"],
            "applicationPorts": _port_range_body(values["application_port_range"]),
            "ephemeralPorts": _port_range_body(values["ephemeral_port_range"]),
            "vmSize": values["vm_size"],
            "vmImagePublisher": values["vm_image_publisher"],
            "vmImageOffer": values["vm_image_offer"],
            "vmImageSku": values["vm_image_sku"],
            "vmImageVersion": values["vm_image_version"],
            "isStateless": values["stateless"],
            "multiplePlacementGroups": values["multiple_placement_groups_enabled"],
            "placementProperties": values.get("placement_properties") or {},
            "capacities": values.get("capacities") or {},
        }
    }


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _flatten_port_range(ports: Any) -> str | None:
    if ports is None:
        return None
    return f"{ports.start_port}-{ports.end_port}"


def flatten_cluster(resource_id: ManagedClusterId, cluster: Any) -> dict[str, Any]:
    """Translate a managed cluster model into attribute values."""
    addons = {_enum_value(a) for a in cluster.addon_features or []}

    settings = []
    for section in cluster.fabric_settings or []:
        for parameter in section.parameters or []:
            settings.append(
                {"section": section.name, "parameter": parameter.name, "value": parameter.value}
            )

    return {
        "name": resource_id.name,
        "resource_group_name": resource_id.resource_group,
        "location": normalize_location(cluster.location) if cluster.location else None,
        "sku": _enum_value(cluster.sku.name) if cluster.sku is not None else None,
        "username": cluster.admin_user_name,
        "dns_name": cluster.dns_name,
        "dns_service_enabled": ADDON_DNS_SERVICE in addons,
        "backup_service_enabled": ADDON_BACKUP_RESTORE_SERVICE in addons,
        "client_connection_port": cluster.client_connection_port,
        "http_gateway_port": cluster.http_gateway_connection_port,
        "lb_rule": [
            {
                "backend_port": rule.backend_port,
                "frontend_port": rule.frontend_port,
                "protocol": _enum_value(rule.protocol),
                "probe_protocol": _enum_value(rule.probe_protocol),
                "probe_request_path": rule.probe_request_path,
            }
            for rule in cluster.load_balancing_rules or []
        ],
        "custom_fabric_setting": settings,
        "fqdn": cluster.fqdn,
        "cluster_id": cluster.cluster_id,
        "tags": dict(cluster.tags or {}),
    }


def flatten_node_type(node_type: Any) -> dict[str, Any]:
    """Translate a node type model into block values."""
    return {
        "name": node_type.name,
        "primary": bool(node_type.is_primary),
        "data_disk_size_gb": node_type.data_disk_size_gb,
        "data_disk_type": _enum_value(node_type.data_disk_type) or "Standard_LRS",
        "application_port_range": _flatten_port_range(node_type.application_ports),
        "ephemeral_port_range": _flatten_port_range(node_type.ephemeral_ports),
        "vm_size": node_type.vm_size,
        "vm_image_publisher": node_type.vm_image_publisher,
        "vm_image_offer": node_type.vm_image_offer,
        "vm_image_sku": node_type.vm_image_sku,
        "vm_image_version": node_type.vm_image_version,
        "vm_instance_count": node_type.vm_instance_count,
        "stateless": bool(node_type.is_stateless),
        "multiple_placement_groups_enabled": bool(node_type.multiple_placement_groups),
        "placement_properties": dict(node_type.placement_properties or {}),
        "capacities": dict(node_type.capacities or {}),
        "id": node_type.id,
    }


def order_node_types(
    node_types: list[dict[str, Any]], prior: list[Any] | None
) -> list[dict[str, Any]]:
    """Order node types by the prior order, unknown names last by name."""
    rank: dict[str, int] = {}
    for entry in prior or []:
        name = entry.get("name") if isinstance(entry, dict) else getattr(entry, "name", None)
        if name is not None and name not in rank:
            rank[name] = len(rank)
    return sorted(node_types, key=lambda nt: (rank.get(nt["name"], len(rank)), nt["name"]))


# =============================================================================
# Reconciler
# =============================================================================


class ManagedClusterResource(ResourceReconciler[ServiceFabricManagedCluster, ManagedClusterId]):
    """Reconciler for Service Fabric Managed Clusters.

    ``client`` is an ``azure.mgmt.servicefabricmanagedclusters.ServiceFabricManagedClustersManagementClient``.
    """

    resource_type: ClassVar[str] = RESOURCE_TYPE
    config_model: ClassVar[type[ServiceFabricManagedCluster]] = ServiceFabricManagedCluster
    id_type: ClassVar[type[ManagedClusterId]] = ManagedClusterId

    def _get(self, resource_id: ManagedClusterId) -> Any:
        return self._client.managed_clusters.get(resource_id.resource_group, resource_id.name)

    def _create(
        self,
        resource_id: ManagedClusterId,
        config: ServiceFabricManagedCluster,
        deadline: Deadline,
    ) -> None:
        values = config.desired_values()
        self._put_cluster(resource_id, values, "creating", deadline)
        for node_type in values["node_type"]:
            self._put_node_type(resource_id, node_type, "creating node type", deadline)

    def _update(
        self,
        resource_id: ManagedClusterId,
        config: ServiceFabricManagedCluster,
        deadline: Deadline,
    ) -> None:
        with self._api_call(resource_id, "retrieving", deadline):
            current = self._get(resource_id)

        # The cluster endpoint is PUT-only: overlay supplied attributes on remote values
        values = strip_read_only(self.config_model, flatten_cluster(resource_id, current))
        values.update(config.desired_values(exclude_unset=True))
        self._put_cluster(resource_id, values, "updating", deadline)

        if "node_type" in config.model_fields_set:
            self._reconcile_node_types(resource_id, values["node_type"], deadline)

    def _begin_delete(self, resource_id: ManagedClusterId) -> Any:
        return self._client.managed_clusters.begin_delete(
            resource_id.resource_group, resource_id.name
        )

    def _flatten(
        self,
        resource_id: ManagedClusterId,
        remote: Any,
        prior: dict[str, Any],
        deadline: Deadline,
    ) -> dict[str, Any]:
        values = flatten_cluster(resource_id, remote)
        node_types = [flatten_node_type(nt) for nt in self._list_node_types(resource_id)]
        values["node_type"] = order_node_types(node_types, prior.get("node_type"))
        return values

    # -------------------------------------------------------------------------
    # Sub-resources
    # -------------------------------------------------------------------------

    def _put_cluster(
        self,
        resource_id: ManagedClusterId,
        values: dict[str, Any],
        operation: str,
        deadline: Deadline,
    ) -> None:
        body = expand_cluster(values)
        with self._api_call(resource_id, operation, deadline):
            poller = self._client.managed_clusters.begin_create_or_update(
                resource_id.resource_group, resource_id.name, body
            )
        self._wait(poller, resource_id, _WAIT_OPERATIONS[operation], deadline)

    def _node_type_id(self, resource_id: ManagedClusterId, name: str) -> NodeTypeId:
        return NodeTypeId(
            resource_id.subscription_id, resource_id.resource_group, resource_id.name, name
        )

    def _list_node_types(self, resource_id: ManagedClusterId) -> list[Any]:
        return list(
            self._client.node_types.list_by_managed_clusters(
                resource_id.resource_group, resource_id.name
            )
        )

    def _put_node_type(
        self,
        resource_id: ManagedClusterId,
        values: dict[str, Any],
        operation: str,
        deadline: Deadline,
    ) -> None:
        node_type_id = self._node_type_id(resource_id, values["name"])
        logger.info(
            "Writing node type",
            extra={"resource_id": str(node_type_id), "operation": operation},
        )
        with self._api_call(node_type_id, operation, deadline):
            poller = self._client.node_types.begin_create_or_update(
                resource_id.resource_group,
                resource_id.name,
                values["name"],
                expand_node_type(values),
            )
        self._wait(poller, node_type_id, _WAIT_OPERATIONS[operation], deadline)

    def _delete_node_type(
        self, resource_id: ManagedClusterId, name: str, deadline: Deadline
    ) -> None:
        node_type_id = self._node_type_id(resource_id, name)
        logger.info("Deleting node type", extra={"resource_id": str(node_type_id)})
        with self._api_call(node_type_id, "deleting node type", deadline):
            poller = self._client.node_types.begin_delete(
                resource_id.resource_group, resource_id.name, name
            )
        self._wait(poller, node_type_id, "waiting for deletion of node type", deadline)

    def _reconcile_node_types(
        self,
        resource_id: ManagedClusterId,
        desired: list[dict[str, Any]],
        deadline: Deadline,
    ) -> None:
        with self._api_call(resource_id, "listing node types for", deadline):
            existing = {
                nt["name"]: strip_read_only(NodeType, nt)
                for nt in (flatten_node_type(n) for n in self._list_node_types(resource_id))
            }

        desired_names = set()
        for node_type in desired:
            desired_names.add(node_type["name"])
            current = existing.get(node_type["name"])
            if current is None:
                self._put_node_type(resource_id, node_type, "creating node type", deadline)
            elif current != node_type:
                self._put_node_type(resource_id, node_type, "updating node type", deadline)

        for name in existing:
            if name not in desired_names:
                self._delete_node_type(resource_id, name, deadline)
