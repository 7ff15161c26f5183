"""Provider configuration with validation.

Configuration is read from the environment once at startup and validated
eagerly, so an invalid setting fails before any Azure API call is made.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Per-operation timeouts, matching the provider defaults
DEFAULT_CREATE_TIMEOUT_MINUTES = 30
DEFAULT_READ_TIMEOUT_MINUTES = 5
DEFAULT_UPDATE_TIMEOUT_MINUTES = 30
DEFAULT_DELETE_TIMEOUT_MINUTES = 30
MIN_TIMEOUT_MINUTES = 1
MAX_TIMEOUT_MINUTES = 24 * 60

# Loader limits
MAX_CONFIG_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max desired-configuration file

# Input validation patterns
VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class OperationTimeouts:
    """Deadlines for each reconciler entry point, in minutes."""

    create: int = DEFAULT_CREATE_TIMEOUT_MINUTES
    read: int = DEFAULT_READ_TIMEOUT_MINUTES
    update: int = DEFAULT_UPDATE_TIMEOUT_MINUTES
    delete: int = DEFAULT_DELETE_TIMEOUT_MINUTES

    def validate(self) -> list[str]:
        """Return a list of validation problems (empty if valid)."""
        errors = []
        for name in ("create", "read", "update", "delete"):
            value = getattr(self, name)
            if not (MIN_TIMEOUT_MINUTES <= value <= MAX_TIMEOUT_MINUTES):
                errors.append(
                    f"TIMEOUT_{name.upper()}_MINUTES must be between {MIN_TIMEOUT_MINUTES} "
                    f"and {MAX_TIMEOUT_MINUTES}: {value}"
                )
        return errors

    def seconds(self, operation: str) -> float:
        """Return the timeout for an operation in seconds."""
        return float(getattr(self, operation) * 60)


@dataclass(frozen=True)
class ProviderConfig:
    """Provider configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    subscription_id: str

    # User-assigned managed identity; system-assigned when unset
    client_id: str | None = None

    timeouts: OperationTimeouts = field(default_factory=OperationTimeouts)

    enable_json_logging: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        errors: list[str] = []

        if not self.subscription_id:
            errors.append("AZURE_SUBSCRIPTION_ID is required")
        elif not re.match(VALID_SUBSCRIPTION_ID_PATTERN, self.subscription_id.lower()):
            errors.append(f"AZURE_SUBSCRIPTION_ID must be a valid GUID: {self.subscription_id}")

        errors.extend(self.timeouts.validate())

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def log_level_number(self) -> int:
        """Numeric logging level."""
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def from_env(cls) -> ProviderConfig:
        """Load configuration from environment variables.

        Environment Variables:
            AZURE_SUBSCRIPTION_ID: Subscription that owns the managed resources
            AZURE_CLIENT_ID: Optional user-assigned managed identity client ID
            TIMEOUT_CREATE_MINUTES: Create deadline (default: 30)
            TIMEOUT_READ_MINUTES: Read deadline (default: 5)
            TIMEOUT_UPDATE_MINUTES: Update deadline (default: 30)
            TIMEOUT_DELETE_MINUTES: Delete deadline (default: 30)
            ENABLE_JSON_LOGGING: JSON log lines on stdout (default: true)
            LOG_LEVEL: Root log level (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
            client_id=os.environ.get("AZURE_CLIENT_ID") or None,
            timeouts=OperationTimeouts(
                create=get_int("TIMEOUT_CREATE_MINUTES", DEFAULT_CREATE_TIMEOUT_MINUTES),
                read=get_int("TIMEOUT_READ_MINUTES", DEFAULT_READ_TIMEOUT_MINUTES),
                update=get_int("TIMEOUT_UPDATE_MINUTES", DEFAULT_UPDATE_TIMEOUT_MINUTES),
                delete=get_int("TIMEOUT_DELETE_MINUTES", DEFAULT_DELETE_TIMEOUT_MINUTES),
            ),
            enable_json_logging=get_bool("ENABLE_JSON_LOGGING", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
