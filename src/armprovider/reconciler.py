"""Generic resource-lifecycle reconciliation.

Every managed resource type follows the same lifecycle against its
management API:

    ABSENT --create--> PRESENT --update*--> PRESENT --delete--> ABSENT
    ABSENT --create, probe finds resource--> ERROR(already exists)

ResourceReconciler implements the four entry points (create_or_update, read,
delete, exists) once. Resource types plug in the API calls and the
payload/state translation through a small set of hooks.

Long-running operations are awaited synchronously under a per-operation
deadline. A poller that has not finished when the deadline expires raises
OperationTimeoutError; the remote side effect may still complete, and a later
read is the only way to find out. Azure SDK errors are wrapped with the
resource ID and the operation name and propagated. Retry and backoff belong
to the SDK transport, not to this module.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, ClassVar, Generic, TypeVar

from azure.core.exceptions import AzureError, ResourceNotFoundError
from pydantic import BaseModel, ValidationError

from .config import OperationTimeouts
from .errors import (
    InvalidConfigurationError,
    OperationTimeoutError,
    ResourceAlreadyExistsError,
    ResourceMissingError,
    ResourceOperationError,
)
from .ids import ResourceId
from .schema import AttributeSchema, ResourceConfig, construct_state, describe_schema, field_flags

logger = logging.getLogger(__name__)

ConfigT = TypeVar("ConfigT", bound=ResourceConfig)
IdT = TypeVar("IdT", bound=ResourceId)


class Deadline:
    """Wall-clock budget for one entry point invocation."""

    def __init__(self, timeout_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._expires_at = clock() + timeout_seconds

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0


def format_validation_errors(error: ValidationError) -> list[str]:
    """Render pydantic errors as ``loc: msg`` lines."""
    lines = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"]) or "(root)"
        lines.append(f"{loc}: {item['msg']}")
    return lines


class ResourceReconciler(ABC, Generic[ConfigT, IdT]):
    """Reconciles one resource type against its management API.

    Subclasses set the class attributes and implement the hooks:

    - ``_get``: fetch the remote object (raise the SDK's not-found error if absent)
    - ``_create``: create from a full payload and wait for completion
    - ``_update``: apply the supplied subset, including sub-resources
    - ``_begin_delete``: start deletion and return the poller
    - ``_flatten``: translate the remote object into attribute values
    """

    resource_type: ClassVar[str]
    config_model: ClassVar[type[ResourceConfig]]
    id_type: ClassVar[type[ResourceId]]

    def __init__(
        self,
        client: Any,
        subscription_id: str,
        timeouts: OperationTimeouts | None = None,
    ) -> None:
        """Initialize reconciler.

        Args:
            client: Azure management SDK client for this resource type.
            subscription_id: Subscription new resources are created in.
            timeouts: Per-operation deadlines (provider defaults when None).
        """
        self._client = client
        self._subscription_id = subscription_id
        self._timeouts = timeouts or OperationTimeouts()

    # -------------------------------------------------------------------------
    # Schema and validation
    # -------------------------------------------------------------------------

    @classmethod
    def schema(cls) -> dict[str, AttributeSchema]:
        """Describe the attributes of this resource type."""
        return describe_schema(cls.config_model)

    @classmethod
    def validate_config(cls, desired: ConfigT | Mapping[str, Any]) -> ConfigT:
        """Validate a desired configuration.

        Raises:
            InvalidConfigurationError: If any attribute is invalid.
        """
        if isinstance(desired, cls.config_model):
            return desired  # type: ignore[return-value]
        if isinstance(desired, BaseModel):
            desired = desired.model_dump(exclude_unset=True)
        try:
            return cls.config_model.model_validate(dict(desired))  # type: ignore[return-value]
        except ValidationError as e:
            raise InvalidConfigurationError(cls.resource_type, format_validation_errors(e)) from e

    def parse_id(self, value: str | IdT) -> IdT:
        """Parse a persisted identifier string."""
        if isinstance(value, self.id_type):
            return value  # type: ignore[return-value]
        return self.id_type.parse(str(value))  # type: ignore[return-value]

    def id_for(self, config: ConfigT) -> IdT:
        """Derive the identifier a configuration addresses."""
        return self.id_type(  # type: ignore[return-value]
            self._subscription_id, config.resource_group_name, config.name
        )

    def replacement_fields(
        self,
        prior: BaseModel | Mapping[str, Any],
        desired: ConfigT | Mapping[str, Any],
    ) -> list[str]:
        """Force-new attributes whose desired value differs from the prior one.

        Attributes left unset keep their remote value on update, so they never
        require replacement.
        """
        config = self.validate_config(desired)
        prior_values = self._prior_values(prior)
        changed = []
        for name in self.config_model.model_fields:
            if not field_flags(self.config_model, name)["force_new"]:
                continue
            if name not in config.model_fields_set:
                continue
            before = prior_values.get(name)
            if before is None:
                continue
            if before != getattr(config, name):
                changed.append(name)
        return sorted(changed)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def create_or_update(
        self,
        desired: ConfigT | Mapping[str, Any],
        existing_id: str | IdT | None = None,
    ) -> IdT:
        """Create the resource, or update it when an identifier is known.

        Returns:
            The identifier to persist.

        Raises:
            InvalidConfigurationError: Invalid configuration, or a changed
                identifying attribute on update.
            ResourceAlreadyExistsError: Create found an unmanaged resource.
            ResourceMissingError: Update addressed a resource that is gone.
            ResourceOperationError: Any other API failure.
            OperationTimeoutError: The operation deadline expired.
        """
        config = self.validate_config(desired)
        candidate = self.id_for(config)

        if existing_id is None:
            deadline = Deadline(self._timeouts.seconds("create"))
            logger.info(
                "Creating resource",
                extra={"resource_type": self.resource_type, "resource_id": str(candidate)},
            )
            existing = self._fetch(candidate, "checking for presence of existing", deadline)
            if existing is not None:
                raise ResourceAlreadyExistsError(candidate, self.resource_type)
            self._create(candidate, config, deadline)
            logger.info(
                "Resource created",
                extra={"resource_type": self.resource_type, "resource_id": str(candidate)},
            )
            return candidate

        resource_id = self.parse_id(existing_id)
        if not resource_id.matches(candidate):
            raise InvalidConfigurationError(
                self.resource_type,
                [
                    f"configuration addresses {candidate} but the resource is {resource_id}; "
                    f"changing {', '.join(self._identity_fields())} requires replacement"
                ],
            )

        deadline = Deadline(self._timeouts.seconds("update"))
        logger.info(
            "Updating resource",
            extra={
                "resource_type": self.resource_type,
                "resource_id": str(resource_id),
                "attributes": sorted(config.model_fields_set),
            },
        )
        self._update(resource_id, config, deadline)
        return resource_id

    def read(
        self,
        resource_id: str | IdT,
        prior: BaseModel | Mapping[str, Any] | None = None,
    ) -> ConfigT | None:
        """Read the remote state.

        Args:
            resource_id: Persisted identifier.
            prior: Previously known state or desired configuration. Attributes
                the API does not return keep their prior values.

        Returns:
            The remote state, or None if the resource no longer exists.
        """
        rid = self.parse_id(resource_id)
        deadline = Deadline(self._timeouts.seconds("read"))

        remote = self._fetch(rid, "retrieving", deadline)
        if remote is None:
            logger.info(
                "Resource was not found - removing from state",
                extra={"resource_type": self.resource_type, "resource_id": str(rid)},
            )
            return None

        prior_values = self._prior_values(prior)
        with self._api_call(rid, "retrieving", deadline):
            values = self._flatten(rid, remote, prior_values, deadline)
        return construct_state(self.config_model, self._merge_prior(values, prior_values))

    def delete(self, resource_id: str | IdT) -> None:
        """Delete the resource and wait for completion."""
        rid = self.parse_id(resource_id)
        deadline = Deadline(self._timeouts.seconds("delete"))
        logger.info(
            "Deleting resource",
            extra={"resource_type": self.resource_type, "resource_id": str(rid)},
        )
        with self._api_call(rid, "deleting", deadline):
            poller = self._begin_delete(rid)
        self._wait(poller, rid, "waiting for deletion of", deadline)

    def exists(self, resource_id: str | IdT) -> bool:
        """Check whether the resource exists remotely."""
        rid = self.parse_id(resource_id)
        deadline = Deadline(self._timeouts.seconds("read"))
        return self._fetch(rid, "checking existence of", deadline) is not None

    # -------------------------------------------------------------------------
    # Helpers for subclasses
    # -------------------------------------------------------------------------

    @contextmanager
    def _api_call(
        self,
        resource_id: ResourceId,
        operation: str,
        deadline: Deadline | None = None,
    ) -> Iterator[None]:
        """Wrap SDK errors with the resource ID and operation name."""
        if deadline is not None and deadline.expired:
            raise OperationTimeoutError(resource_id, operation, deadline.timeout_seconds)
        try:
            yield
        except ResourceNotFoundError as e:
            raise ResourceMissingError(resource_id, operation, e) from e
        except AzureError as e:
            raise ResourceOperationError(resource_id, operation, e) from e

    def _fetch(self, resource_id: IdT, operation: str, deadline: Deadline) -> Any | None:
        """Get the remote object, mapping not-found to None."""
        try:
            with self._api_call(resource_id, operation, deadline):
                return self._get(resource_id)
        except ResourceMissingError:
            return None

    def _wait(
        self,
        poller: Any,
        resource_id: ResourceId,
        operation: str,
        deadline: Deadline,
    ) -> Any:
        """Block on a long-running operation until done or the deadline passes."""
        with self._api_call(resource_id, operation, deadline):
            result = poller.result(timeout=deadline.remaining())
        if not poller.done():
            logger.error(
                "Long-running operation timed out",
                extra={
                    "resource_type": self.resource_type,
                    "resource_id": str(resource_id),
                    "operation": operation,
                    "timeout_seconds": deadline.timeout_seconds,
                },
            )
            raise OperationTimeoutError(resource_id, operation, deadline.timeout_seconds)
        return result

    def _identity_fields(self) -> list[str]:
        return ["name", "resource_group_name"]

    def _prior_values(self, prior: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
        if prior is None:
            return {}
        if isinstance(prior, BaseModel):
            return prior.model_dump()
        return dict(prior)

    def _merge_prior(self, values: dict[str, Any], prior: dict[str, Any]) -> dict[str, Any]:
        """Keep prior values for attributes the API left empty.

        Required attributes with neither a remote nor a prior value are
        reported as None.
        """
        merged = {}
        for name in self.config_model.model_fields:
            value = values.get(name)
            if value is not None or (
                name in values and field_flags(self.config_model, name)["nullable"]
            ):
                merged[name] = value
            elif prior.get(name) is not None:
                merged[name] = prior[name]
            elif self.config_model.model_fields[name].is_required():
                merged[name] = None
        return merged

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    @abstractmethod
    def _get(self, resource_id: IdT) -> Any:
        """Fetch the remote object; raise the SDK not-found error if absent."""

    @abstractmethod
    def _create(self, resource_id: IdT, config: ConfigT, deadline: Deadline) -> None:
        """Create the resource from the full desired payload."""

    @abstractmethod
    def _update(self, resource_id: IdT, config: ConfigT, deadline: Deadline) -> None:
        """Apply the supplied subset of the desired configuration."""

    @abstractmethod
    def _begin_delete(self, resource_id: IdT) -> Any:
        """Start deletion and return the long-running operation poller."""

    @abstractmethod
    def _flatten(
        self,
        resource_id: IdT,
        remote: Any,
        prior: dict[str, Any],
        deadline: Deadline,
    ) -> dict[str, Any]:
        """Translate the remote object into attribute values."""
