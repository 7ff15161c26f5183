"""Mock StreamAnalyticsManagementClient.

Implements the operations the provider uses:

- streaming_jobs: get (with ``expand``), begin_create_or_replace, update, begin_delete
- transformations: update, create_or_replace

The job PATCH endpoint ignores the inline transformation, as the real API does.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any

from .resources import MockLROPoller, MockResourceState, merge_patch, not_found, to_model

# Properties the service fills in when the caller omits them
JOB_DEFAULTS: dict[str, Any] = {
    "compatibilityLevel": "1.0",
    "dataLocale": "en-US",
    "eventsLateArrivalMaxDelayInSeconds": 5,
    "eventsOutOfOrderMaxDelayInSeconds": 0,
    "eventsOutOfOrderPolicy": "Adjust",
    "outputErrorPolicy": "Drop",
}

MOCK_TENANT_ID = "00000000-0000-0000-0000-0000000000aa"


def _assign_identity(body: dict[str, Any]) -> None:
    identity = body.get("identity")
    if identity and not identity.get("principalId"):
        identity["principalId"] = str(uuid.uuid4())
        identity["tenantId"] = MOCK_TENANT_ID


class _StreamingJobsOperations:
    def __init__(self, client: MockStreamAnalyticsClient) -> None:
        self._client = client
        self._state = client.state

    def get(self, resource_group_name: str, job_name: str, expand: str | None = None, **kwargs: Any) -> Any:
        job_id = self._client.job_id(resource_group_name, job_name)
        self._state.record("streaming_jobs.get", job_id, mutating=False)
        body = self._state.get(job_id)
        if body is None:
            raise not_found(job_id)
        if expand != "transformation":
            body["properties"].pop("transformation", None)
        return to_model(body)

    def begin_create_or_replace(
        self, resource_group_name: str, job_name: str, streaming_job: dict[str, Any], **kwargs: Any
    ) -> MockLROPoller:
        operation = "streaming_jobs.begin_create_or_replace"
        job_id = self._client.job_id(resource_group_name, job_name)
        self._state.record(operation, job_id, mutating=True)

        body = copy.deepcopy(streaming_job)
        body["id"] = job_id
        body["name"] = job_name
        body["type"] = "Microsoft.StreamAnalytics/streamingjobs"
        properties = body.setdefault("properties", {})
        for key, value in JOB_DEFAULTS.items():
            properties.setdefault(key, value)
        properties["jobId"] = str(uuid.uuid4())
        properties["provisioningState"] = "Succeeded"
        _assign_identity(body)

        self._state.put(job_id, body)
        return self._state.poller(operation, to_model(body))

    def update(
        self, resource_group_name: str, job_name: str, streaming_job: dict[str, Any], **kwargs: Any
    ) -> Any:
        job_id = self._client.job_id(resource_group_name, job_name)
        self._state.record("streaming_jobs.update", job_id, mutating=True)
        body = self._state.get(job_id)
        if body is None:
            raise not_found(job_id)

        patch = copy.deepcopy(streaming_job)
        patch.get("properties", {}).pop("transformation", None)
        merge_patch(body, patch)
        _assign_identity(body)

        self._state.put(job_id, body)
        body["properties"].pop("transformation", None)
        return to_model(body)

    def begin_delete(self, resource_group_name: str, job_name: str, **kwargs: Any) -> MockLROPoller:
        operation = "streaming_jobs.begin_delete"
        job_id = self._client.job_id(resource_group_name, job_name)
        self._state.record(operation, job_id, mutating=True)
        self._state.delete(job_id)
        return self._state.poller(operation, None)


class _TransformationsOperations:
    def __init__(self, client: MockStreamAnalyticsClient) -> None:
        self._client = client
        self._state = client.state

    def _load_job(self, resource_group_name: str, job_name: str) -> tuple[str, dict[str, Any]]:
        job_id = self._client.job_id(resource_group_name, job_name)
        body = self._state.get(job_id)
        if body is None:
            raise not_found(job_id)
        return job_id, body

    def update(
        self,
        resource_group_name: str,
        job_name: str,
        transformation_name: str,
        transformation: dict[str, Any],
        **kwargs: Any,
    ) -> Any:
        job_id = self._client.job_id(resource_group_name, job_name)
        self._state.record(
            "transformations.update", f"{job_id}/transformations/{transformation_name}", mutating=True
        )
        job_id, body = self._load_job(resource_group_name, job_name)
        current = body["properties"].get("transformation")
        if current is None or current.get("name") != transformation_name:
            raise not_found(f"{job_id}/transformations/{transformation_name}")

        merge_patch(current, copy.deepcopy(transformation))
        self._state.put(job_id, body)
        return to_model(current)

    def create_or_replace(
        self,
        resource_group_name: str,
        job_name: str,
        transformation_name: str,
        transformation: dict[str, Any],
        **kwargs: Any,
    ) -> Any:
        job_id = self._client.job_id(resource_group_name, job_name)
        self._state.record(
            "transformations.create_or_replace",
            f"{job_id}/transformations/{transformation_name}",
            mutating=True,
        )
        job_id, body = self._load_job(resource_group_name, job_name)
        created = copy.deepcopy(transformation)
        created["name"] = transformation_name
        body["properties"]["transformation"] = created
        self._state.put(job_id, body)
        return to_model(created)


class MockStreamAnalyticsClient:
    """Stand-in for azure.mgmt.streamanalytics.StreamAnalyticsManagementClient."""

    def __init__(self, state: MockResourceState, subscription_id: str) -> None:
        self.state = state
        self.subscription_id = subscription_id
        self.streaming_jobs = _StreamingJobsOperations(self)
        self.transformations = _TransformationsOperations(self)

    def job_id(self, resource_group_name: str, job_name: str) -> str:
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{resource_group_name}"
            f"/providers/Microsoft.StreamAnalytics/streamingjobs/{job_name}"
        )

    def remove_transformation(self, resource_group_name: str, job_name: str) -> None:
        """Drop a job's transformation, simulating a job created outside the provider."""
        job_id = self.job_id(resource_group_name, job_name)
        body = self.state.get(job_id)
        if body is None:
            raise not_found(job_id)
        body["properties"].pop("transformation", None)
        self.state.put(job_id, body)

    def close(self) -> None:
        pass
