"""Error taxonomy for resource reconciliation.

Every failure raised by a reconciler derives from ProviderError:

- ValidationFailedError: rejected before any network call
  (malformed identifier, invalid attribute value).
- ResourceMissingError: the API reported the resource as not found during an
  operation that requires it to exist (update, delete, sub-resource calls).
- ResourceAlreadyExistsError: the create probe found an existing resource.
- ResourceOperationError: any other Azure SDK / API failure.
- OperationTimeoutError: the operation deadline expired.

Operation errors carry the resource identifier and the operation name so the
caller can report them without re-deriving context. Nothing here is retried.
"""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for all reconciler errors."""

    pass


class ValidationFailedError(ProviderError):
    """Raised when input is rejected before any API call."""

    pass


class InvalidResourceIdError(ValidationFailedError):
    """Raised when a resource identifier string cannot be parsed."""

    def __init__(self, value: str, expected: str, reason: str) -> None:
        self.value = value
        self.expected = expected
        super().__init__(f"parsing {value!r} as {expected}: {reason}")


class InvalidConfigurationError(ValidationFailedError):
    """Raised when a desired configuration fails schema validation."""

    def __init__(self, resource_type: str, errors: list[str]) -> None:
        self.resource_type = resource_type
        self.errors = errors
        details = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"invalid configuration for {resource_type}:\n{details}")


class ResourceOperationError(ProviderError):
    """Raised when an API call for a resource fails.

    Attributes:
        resource_id: Identifier of the resource the call addressed.
        operation: Human-readable operation name (e.g. "creating").
    """

    def __init__(self, resource_id: object, operation: str, cause: object) -> None:
        self.resource_id = str(resource_id)
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} {self.resource_id}: {cause}")


class ResourceMissingError(ResourceOperationError):
    """Raised when the API reports the resource as not found."""

    pass


class ResourceAlreadyExistsError(ResourceOperationError):
    """Raised when create finds a resource that is not yet managed."""

    def __init__(self, resource_id: object, resource_type: str) -> None:
        self.resource_type = resource_type
        super().__init__(
            resource_id,
            "checking for presence of existing",
            f"a resource with the ID {str(resource_id)!r} already exists - to be managed "
            f"this {resource_type} needs to be imported into the state",
        )


class OperationTimeoutError(ResourceOperationError):
    """Raised when an operation does not complete before its deadline."""

    def __init__(self, resource_id: object, operation: str, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            resource_id,
            operation,
            f"timed out after {timeout_seconds:.0f}s; the remote operation may still complete",
        )
