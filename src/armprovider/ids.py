"""Structured Azure resource identifiers.

Resource IDs are addressed as alternating key/value path segments:

    /subscriptions/{sub}/resourceGroups/{rg}/providers/{namespace}/{type}/{name}[/{child}/{name}]

Each identifier type declares its key sequence and provider namespace. Parsing
is strict on structure: every key must appear in order, every value must be
non-empty, and the provider namespace must match. Key comparison ignores case
because the API echoes IDs with inconsistent casing; the canonical string
always uses the declared casing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import ClassVar, Self

from .config import VALID_SUBSCRIPTION_ID_PATTERN
from .errors import InvalidResourceIdError


def _split_segments(value: str, description: str) -> list[tuple[str, str]]:
    """Split an ID string into (key, value) pairs."""
    if not isinstance(value, str) or not value:
        raise InvalidResourceIdError(str(value), description, "ID was empty")
    if not value.startswith("/"):
        raise InvalidResourceIdError(value, description, "ID must start with '/'")

    parts = value.strip("/").split("/")
    if len(parts) % 2 != 0:
        raise InvalidResourceIdError(value, description, "ID has an odd number of segments")

    pairs = list(zip(parts[::2], parts[1::2], strict=True))
    for key, segment in pairs:
        if not segment:
            raise InvalidResourceIdError(value, description, f"segment {key!r} has no value")
    return pairs


@dataclass(frozen=True)
class ResourceId:
    """Base class for resource identifiers.

    Subclasses declare ``_KEYS`` (path keys after ``providers/{namespace}``)
    and ``_NAMESPACE``. Dataclass fields after ``subscription_id`` and
    ``resource_group`` map to those keys in order.
    """

    _NAMESPACE: ClassVar[str] = ""
    _KEYS: ClassVar[tuple[str, ...]] = ()
    _DESCRIPTION: ClassVar[str] = "Resource ID"

    subscription_id: str
    resource_group: str

    def __post_init__(self) -> None:
        for f in fields(self):
            if not getattr(self, f.name):
                raise InvalidResourceIdError(
                    self._render(), self._DESCRIPTION, f"{f.name} must not be empty"
                )

    def _named_values(self) -> list[str]:
        return [getattr(self, f.name) for f in fields(self)][2:]

    def _render(self) -> str:
        path = (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/{self._NAMESPACE}"
        )
        for key, value in zip(self._KEYS, self._named_values(), strict=True):
            path += f"/{key}/{value}"
        return path

    def __str__(self) -> str:
        return self._render()

    def matches(self, other: ResourceId) -> bool:
        """Compare with another ID, ignoring case as Azure does."""
        return type(self) is type(other) and str(self).lower() == str(other).lower()

    @classmethod
    def parse(cls, value: str) -> Self:
        """Parse and validate an ID string.

        Raises:
            InvalidResourceIdError: If the string is not a valid ID of this type.
        """
        pairs = _split_segments(value, cls._DESCRIPTION)
        expected_keys = ("subscriptions", "resourceGroups", "providers", *cls._KEYS)

        if len(pairs) != len(expected_keys):
            raise InvalidResourceIdError(
                value,
                cls._DESCRIPTION,
                f"expected {len(expected_keys)} segments, got {len(pairs)}",
            )

        for (key, _), expected in zip(pairs, expected_keys, strict=True):
            if key.lower() != expected.lower():
                raise InvalidResourceIdError(
                    value, cls._DESCRIPTION, f"expected segment {expected!r}, got {key!r}"
                )

        subscription_id = pairs[0][1]
        if not re.match(VALID_SUBSCRIPTION_ID_PATTERN, subscription_id.lower()):
            raise InvalidResourceIdError(
                value, cls._DESCRIPTION, f"subscription {subscription_id!r} is not a GUID"
            )

        namespace = pairs[2][1]
        if namespace.lower() != cls._NAMESPACE.lower():
            raise InvalidResourceIdError(
                value,
                cls._DESCRIPTION,
                f"expected provider {cls._NAMESPACE!r}, got {namespace!r}",
            )

        names = [segment for _, segment in pairs[3:]]
        return cls(subscription_id, pairs[1][1], *names)


@dataclass(frozen=True)
class StreamingJobId(ResourceId):
    """Stream Analytics streaming job ID."""

    _NAMESPACE: ClassVar[str] = "Microsoft.StreamAnalytics"
    _KEYS: ClassVar[tuple[str, ...]] = ("streamingjobs",)
    _DESCRIPTION: ClassVar[str] = "Streaming Job ID"

    name: str


@dataclass(frozen=True)
class ManagedClusterId(ResourceId):
    """Service Fabric managed cluster ID."""

    _NAMESPACE: ClassVar[str] = "Microsoft.ServiceFabric"
    _KEYS: ClassVar[tuple[str, ...]] = ("managedClusters",)
    _DESCRIPTION: ClassVar[str] = "Managed Cluster ID"

    name: str


@dataclass(frozen=True)
class NodeTypeId(ResourceId):
    """Node type of a Service Fabric managed cluster."""

    _NAMESPACE: ClassVar[str] = "Microsoft.ServiceFabric"
    _KEYS: ClassVar[tuple[str, ...]] = ("managedClusters", "nodeTypes")
    _DESCRIPTION: ClassVar[str] = "Node Type ID"

    cluster_name: str
    name: str
