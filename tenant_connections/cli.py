"""
CLI for managing the Azure AD tenant connections of a claims provider.

Every command works on one configuration, stored as a JSON document. The
store location and configuration name come from the environment (or .env)
unless overridden here.
"""

from typing import Optional

import click

from .commands import register_commands


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level (DEBUG, INFO, WARNING, ERROR)",
)
@click.option(
    "--store",
    "store_path",
    type=click.Path(dir_okay=False),
    help="Path of the configuration store (overrides TENANT_CONNECTIONS_STORE_PATH)",
)
@click.option(
    "--configuration",
    "configuration_name",
    help="Configuration name (overrides TENANT_CONNECTIONS_CONFIGURATION_NAME)",
)
@click.version_option(package_name="aad-tenant-connections")
@click.pass_context
def cli(
    ctx: click.Context,
    log_level: str,
    store_path: Optional[str],
    configuration_name: Optional[str],
) -> None:
    """Tenant Connections - manage the Azure AD tenants a claims provider authenticates against."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level.upper()
    ctx.obj["store_path"] = store_path
    ctx.obj["configuration_name"] = configuration_name


register_commands(cli)


def main() -> None:
    """Entry point for the tenant-connections console script."""
    cli(obj={})


if __name__ == "__main__":
    main()
