"""Desired-configuration file loading.

Files are YAML mappings of attribute name to value. A file may also wrap the
attributes together with the resource type:

    type: azurerm_stream_analytics_job
    config:
      name: example-job
      ...

SECURITY: File size is checked before reading.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .config import MAX_CONFIG_FILE_SIZE_BYTES

logger = logging.getLogger(__name__)


class ConfigLoadError(Exception):
    """Raised when a configuration file cannot be loaded."""

    pass


@dataclass(frozen=True)
class LoadedConfig:
    """Attributes read from a file, with the declared resource type if any."""

    attributes: dict[str, Any]
    resource_type: str | None = None


def load_config_file(path: Path) -> LoadedConfig:
    """Load a desired configuration from YAML.

    Raises:
        ConfigLoadError: If the file is missing, too large, or not a mapping.
    """
    if not path.exists():
        raise ConfigLoadError(f"Configuration file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise ConfigLoadError(f"Failed to stat configuration file {path}: {e}") from e

    if file_size > MAX_CONFIG_FILE_SIZE_BYTES:
        raise ConfigLoadError(
            f"Configuration file exceeds maximum size of {MAX_CONFIG_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(f"Failed to read configuration file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise ConfigLoadError(f"Configuration file must contain a YAML mapping: {path}")

    if "type" in raw_data and "config" in raw_data:
        attributes = raw_data["config"]
        if not isinstance(attributes, dict):
            raise ConfigLoadError(f"'config' section must be a mapping: {path}")
        resource_type = str(raw_data["type"])
    else:
        attributes = raw_data
        resource_type = None

    logger.info(
        "Loaded configuration from %s",
        path,
        extra={"resource_type": resource_type, "attribute_count": len(attributes)},
    )
    return LoadedConfig(attributes=attributes, resource_type=resource_type)
