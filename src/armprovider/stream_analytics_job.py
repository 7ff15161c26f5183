"""Stream Analytics Job resource (azurerm_stream_analytics_job).

The job's query lives in a transformation sub-resource. On create it is sent
inline with the job. The job PATCH endpoint ignores it, so an update is two
calls: patch the job, then update the transformation by the name the API
reports for it.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Literal

from pydantic import Field, field_validator

from .ids import StreamingJobId
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
)

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "azurerm_stream_analytics_job"

TRANSFORMATION_NAME = "main"
TRANSFORMATION_EXPAND = "transformation"
SKU_NAME = "Standard"

# Portal limits: late arrival up to 20d 23h 59m 59s, out-of-order up to 9m 59s
MAX_LATE_ARRIVAL_DELAY_SECONDS = 1814399
MAX_OUT_OF_ORDER_DELAY_SECONDS = 599
MAX_STREAMING_UNITS = 120

# attribute -> REST property under "properties"
_JOB_PROPERTIES: dict[str, str] = {
    "compatibility_level": "compatibilityLevel",
    "data_locale": "dataLocale",
    "events_late_arrival_max_delay_in_seconds": "eventsLateArrivalMaxDelayInSeconds",
    "events_out_of_order_max_delay_in_seconds": "eventsOutOfOrderMaxDelayInSeconds",
    "events_out_of_order_policy": "eventsOutOfOrderPolicy",
    "output_error_policy": "outputErrorPolicy",
}


def valid_streaming_units(value: int) -> bool:
    """Streaming units must be 1, 3, or a multiple of 6 up to 120."""
    return value in (1, 3) or (0 < value <= MAX_STREAMING_UNITS and value % 6 == 0)


class JobIdentity(Block):
    """Managed identity block."""

    type: Literal["SystemAssigned"]
    principal_id: str | None = attribute(None, read_only=True)
    tenant_id: str | None = attribute(None, read_only=True)


class StreamAnalyticsJob(ResourceConfig):
    """Desired configuration of a Stream Analytics Job."""

    name: NonEmptyStr = attribute(force_new=True)
    resource_group_name: ResourceGroupName = attribute(force_new=True)
    location: Location = attribute(force_new=True)

    stream_analytics_cluster_id: NonEmptyStr | None = attribute(None, nullable=True)
    # 1.2 is not accepted by the 2020-03-01 API
    compatibility_level: Literal["1.0", "1.1"] | None = attribute(None, computed=True)
    data_locale: NonEmptyStr | None = attribute(None, computed=True)

    events_late_arrival_max_delay_in_seconds: int = Field(
        5, ge=-1, le=MAX_LATE_ARRIVAL_DELAY_SECONDS
    )
    events_out_of_order_max_delay_in_seconds: int = Field(
        0, ge=0, le=MAX_OUT_OF_ORDER_DELAY_SECONDS
    )
    events_out_of_order_policy: Literal["Adjust", "Drop"] = "Adjust"
    output_error_policy: Literal["Drop", "Stop"] = "Drop"

    streaming_units: int
    transformation_query: NonEmptyStr

    identity: JobIdentity | None = attribute(None, nullable=True)
    job_id: str | None = attribute(None, read_only=True)
    tags: Tags = Field(default_factory=dict)

    @field_validator("streaming_units")
    @classmethod
    def validate_streaming_units(cls, v: int) -> int:
        if not valid_streaming_units(v):
            raise ValueError(
                f"streaming_units must be 1, 3 or a multiple of 6 up to {MAX_STREAMING_UNITS}: {v}"
            )
        return v


def expand_transformation(values: dict[str, Any], *, include_name: bool) -> dict[str, Any]:
    """Build the transformation sub-resource body."""
    body: dict[str, Any] = {
        "properties": {
            "streamingUnits": values["streaming_units"],
            "query": values["transformation_query"],
        }
    }
    if include_name:
        body["name"] = TRANSFORMATION_NAME
    return body


def expand_job(values: dict[str, Any], *, include_transformation: bool) -> dict[str, Any]:
    """Build the streaming job body from attribute values.

    Only attributes present in ``values`` are emitted, so the same function
    serves the full create payload and the partial update payload.
    """
    properties: dict[str, Any] = {"sku": {"name": SKU_NAME}}
    for attr, key in _JOB_PROPERTIES.items():
        if values.get(attr) is not None:
            properties[key] = values[attr]

    # An explicit null cluster ID detaches the job from its cluster
    if "stream_analytics_cluster_id" in values:
        properties["cluster"] = {"id": values["stream_analytics_cluster_id"]}

    if include_transformation:
        properties["transformation"] = expand_transformation(values, include_name=True)

    body: dict[str, Any] = {"properties": properties}
    if "location" in values:
        body["location"] = values["location"]
    if "tags" in values:
        body["tags"] = values["tags"]
    if values.get("identity"):
        body["identity"] = {"type": values["identity"]["type"]}
    return body


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def flatten_identity(identity: Any) -> dict[str, Any] | None:
    if identity is None:
        return None
    return {
        "type": identity.type or "",
        "principal_id": identity.principal_id or "",
        "tenant_id": identity.tenant_id or "",
    }


class StreamAnalyticsJobResource(ResourceReconciler[StreamAnalyticsJob, StreamingJobId]):
    """Reconciler for Stream Analytics Jobs.

    ``client`` is an ``azure.mgmt.streamanalytics.StreamAnalyticsManagementClient``.
    """

    resource_type: ClassVar[str] = RESOURCE_TYPE
    config_model: ClassVar[type[StreamAnalyticsJob]] = StreamAnalyticsJob
    id_type: ClassVar[type[StreamingJobId]] = StreamingJobId

    def _get(self, resource_id: StreamingJobId) -> Any:
        return self._client.streaming_jobs.get(
            resource_id.resource_group, resource_id.name, expand=TRANSFORMATION_EXPAND
        )

    def _create(
        self, resource_id: StreamingJobId, config: StreamAnalyticsJob, deadline: Deadline
    ) -> None:
        body = expand_job(config.desired_values(), include_transformation=True)
        with self._api_call(resource_id, "creating", deadline):
            poller = self._client.streaming_jobs.begin_create_or_replace(
                resource_id.resource_group, resource_id.name, body
            )
        self._wait(poller, resource_id, "waiting for creation of", deadline)

    def _update(
        self, resource_id: StreamingJobId, config: StreamAnalyticsJob, deadline: Deadline
    ) -> None:
        values = config.desired_values(exclude_unset=True)
        body = expand_job(values, include_transformation=False)
        with self._api_call(resource_id, "updating", deadline):
            self._client.streaming_jobs.update(resource_id.resource_group, resource_id.name, body)

        with self._api_call(resource_id, "retrieving transformation for", deadline):
            job = self._get(resource_id)

        transformation = expand_transformation(values, include_name=False)
        current = job.transformation
        if current is not None and current.name:
            with self._api_call(resource_id, "updating transformation for", deadline):
                self._client.transformations.update(
                    resource_id.resource_group, resource_id.name, current.name, transformation
                )
            return

        logger.warning(
            "Streaming job has no transformation, creating one",
            extra={"resource_id": str(resource_id), "transformation": TRANSFORMATION_NAME},
        )
        with self._api_call(resource_id, "creating transformation for", deadline):
            self._client.transformations.create_or_replace(
                resource_id.resource_group, resource_id.name, TRANSFORMATION_NAME, transformation
            )

    def _begin_delete(self, resource_id: StreamingJobId) -> Any:
        return self._client.streaming_jobs.begin_delete(
            resource_id.resource_group, resource_id.name
        )

    def _flatten(
        self,
        resource_id: StreamingJobId,
        remote: Any,
        prior: dict[str, Any],
        deadline: Deadline,
    ) -> dict[str, Any]:
        values: dict[str, Any] = {
            "name": resource_id.name,
            "resource_group_name": resource_id.resource_group,
            "identity": flatten_identity(remote.identity),
            "compatibility_level": _enum_value(remote.compatibility_level),
            "data_locale": remote.data_locale,
            "events_late_arrival_max_delay_in_seconds": remote.events_late_arrival_max_delay_in_seconds,
            "events_out_of_order_max_delay_in_seconds": remote.events_out_of_order_max_delay_in_seconds,
            "events_out_of_order_policy": _enum_value(remote.events_out_of_order_policy),
            "output_error_policy": _enum_value(remote.output_error_policy),
            "job_id": remote.job_id,
            "tags": dict(remote.tags or {}),
        }
        if remote.location:
            values["location"] = normalize_location(remote.location)
        if remote.cluster is not None:
            values["stream_analytics_cluster_id"] = remote.cluster.id

        transformation = remote.transformation
        if transformation is not None:
            values["streaming_units"] = transformation.streaming_units
            values["transformation_query"] = transformation.query
        return values
