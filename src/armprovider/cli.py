"""armprovider CLI.

Drives the reconciler entry points for a single resource, outside any
orchestrator. Useful for importing, inspecting and cleaning up resources.

Usage:
    armprovider schema azurerm_stream_analytics_job
    armprovider apply azurerm_stream_analytics_job -f job.yaml
    armprovider apply azurerm_stream_analytics_job -f job.yaml --id /subscriptions/...
    armprovider read azurerm_stream_analytics_job /subscriptions/...
    armprovider exists azurerm_service_fabric_managed_cluster /subscriptions/...
    armprovider delete azurerm_service_fabric_managed_cluster /subscriptions/...
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click
import yaml

from .clients import ProviderClients
from .config import ConfigurationError, ProviderConfig
from .errors import ProviderError
from .loader import ConfigLoadError, load_config_file
from .logging_config import setup_logging
from .reconciler import ResourceReconciler
from .registry import RESOURCE_TYPES, build_reconciler, get_resource_class
from .schema import fields_with_flag
from .security import SecretlessViolationError

EXIT_NOT_FOUND = 3
EXIT_SECURITY_VIOLATION = 2

RESOURCE_TYPE_ARGUMENT = click.argument(
    "resource_type", type=click.Choice(sorted(RESOURCE_TYPES))
)


class SecurityViolation(click.ClickException):
    """Credential secrets found in the environment."""

    exit_code = EXIT_SECURITY_VIOLATION


def _build(resource_type: str) -> ResourceReconciler:
    """Load configuration from the environment and wire a reconciler."""
    try:
        config = ProviderConfig.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    # Logs go to stderr so command output stays parseable
    setup_logging(
        level=config.log_level_number,
        json_output=config.enable_json_logging,
        stream=sys.stderr,
    )

    try:
        clients = ProviderClients(config)
    except SecretlessViolationError as e:
        raise SecurityViolation(str(e)) from e
    return build_reconciler(resource_type, clients, config)


def _load_attributes(path: Path, resource_type: str) -> dict[str, Any]:
    try:
        loaded = load_config_file(path)
    except ConfigLoadError as e:
        raise click.ClickException(str(e)) from e
    if loaded.resource_type is not None and loaded.resource_type != resource_type:
        raise click.ClickException(
            f"{path} declares type '{loaded.resource_type}', expected '{resource_type}'"
        )
    return loaded.attributes


@click.group()
@click.version_option(version="0.1.0", prog_name="armprovider")
def cli() -> None:
    """Reconcile Azure resources from declarative configuration.

    \b
    Environment:
        AZURE_SUBSCRIPTION_ID   Subscription of the managed resources
        AZURE_CLIENT_ID         User-assigned managed identity (optional)
    """
    pass


@cli.command()
@RESOURCE_TYPE_ARGUMENT
def schema(resource_type: str) -> None:
    """Print the attribute schema of a resource type."""
    resource_class = get_resource_class(resource_type)
    data = {name: attr.to_dict() for name, attr in resource_class.schema().items()}
    click.echo(yaml.safe_dump(data, sort_keys=False))


@cli.command()
@RESOURCE_TYPE_ARGUMENT
@click.option(
    "-f",
    "--file",
    "config_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with the desired configuration.",
)
@click.option("--id", "resource_id", default=None, help="Identifier of an existing resource.")
def apply(resource_type: str, config_file: Path, resource_id: str | None) -> None:
    """Create the resource, or update it when --id is given."""
    attributes = _load_attributes(config_file, resource_type)
    reconciler = _build(resource_type)
    try:
        result = reconciler.create_or_update(attributes, existing_id=resource_id)
    except ProviderError as e:
        raise click.ClickException(str(e)) from e
    click.echo(str(result))


@cli.command()
@RESOURCE_TYPE_ARGUMENT
@click.argument("resource_id")
@click.option(
    "--prior",
    "prior_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with previously known attribute values.",
)
@click.pass_context
def read(
    ctx: click.Context, resource_type: str, resource_id: str, prior_file: Path | None
) -> None:
    """Print the remote state of a resource."""
    prior = _load_attributes(prior_file, resource_type) if prior_file else None
    reconciler = _build(resource_type)
    try:
        state = reconciler.read(resource_id, prior=prior)
    except ProviderError as e:
        raise click.ClickException(str(e)) from e

    if state is None:
        click.echo(f"{resource_id} was not found", err=True)
        ctx.exit(EXIT_NOT_FOUND)

    sensitive = set(fields_with_flag(reconciler.config_model, "sensitive"))
    click.echo(yaml.safe_dump(state.model_dump(exclude=sensitive), sort_keys=False))


@cli.command()
@RESOURCE_TYPE_ARGUMENT
@click.argument("resource_id")
@click.pass_context
def exists(ctx: click.Context, resource_type: str, resource_id: str) -> None:
    """Exit 0 if the resource exists, 1 otherwise."""
    reconciler = _build(resource_type)
    try:
        found = reconciler.exists(resource_id)
    except ProviderError as e:
        raise click.ClickException(str(e)) from e
    click.echo("true" if found else "false")
    ctx.exit(0 if found else 1)


@cli.command()
@RESOURCE_TYPE_ARGUMENT
@click.argument("resource_id")
def delete(resource_type: str, resource_id: str) -> None:
    """Delete a resource and wait for completion."""
    reconciler = _build(resource_type)
    try:
        reconciler.delete(resource_id)
    except ProviderError as e:
        raise click.ClickException(str(e)) from e
    click.secho(f"Deleted {resource_id}", fg="green")


if __name__ == "__main__":
    cli()
