"""Credential acquisition for management API calls.

The provider authenticates with a managed identity only. The Azure SDK's
environment credential would otherwise pick up service principal secrets,
certificates or user passwords; when any of those variables is set the
provider hands out no credential at all.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from azure.identity import ManagedIdentityCredential

logger = logging.getLogger(__name__)

# Variables read by azure-identity's EnvironmentCredential, plus the
# client secret name used by azurerm configurations
CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "AZURE_CLIENT_SECRET",
    "AZURE_CLIENT_CERTIFICATE_PATH",
    "AZURE_CLIENT_CERTIFICATE_PASSWORD",
    "AZURE_USERNAME",
    "AZURE_PASSWORD",
    "ARM_CLIENT_SECRET",
)


class SecretlessViolationError(Exception):
    """Credential secrets are present in the environment."""

    def __init__(self, env_vars: list[str]) -> None:
        self.env_vars = env_vars
        super().__init__(
            f"credential secrets found in the environment: {', '.join(env_vars)}. "
            "Remove them and run the provider under a managed identity with RBAC "
            "roles on the target resource groups."
        )


def find_credential_env_vars(environ: Mapping[str, str] | None = None) -> list[str]:
    """Names of the credential variables set to a non-empty value."""
    environ = os.environ if environ is None else environ
    return [name for name in CREDENTIAL_ENV_VARS if environ.get(name)]


def enforce_secretless_architecture(environ: Mapping[str, str] | None = None) -> None:
    """Raise SecretlessViolationError if any credential variable is set."""
    found = find_credential_env_vars(environ)
    if found:
        logger.critical(
            "Credential secrets in environment",
            extra={
                "security_event": "credential_detected",
                "env_vars": found,
                "action": "credential_refused",
            },
        )
        raise SecretlessViolationError(found)


def _mask(client_id: str) -> str:
    return client_id[:8] + "..." if len(client_id) > 8 else client_id


def get_managed_identity_credential(client_id: str | None = None) -> ManagedIdentityCredential:
    """Return a managed identity credential once the environment is clean.

    Args:
        client_id: Client ID of a user-assigned identity; the system-assigned
            identity is used when None.
    """
    enforce_secretless_architecture()

    if not client_id:
        logger.info("Using system-assigned managed identity")
        return ManagedIdentityCredential()

    logger.info("Using user-assigned managed identity", extra={"client_id": _mask(client_id)})
    return ManagedIdentityCredential(client_id=client_id)
