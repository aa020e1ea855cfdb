"""Tenant connection commands.

This module provides the operator commands for managing the Azure AD tenants
of a configuration:

- list: Show the registered tenants
- add: Validate, optionally test, and register a tenant
- remove: Remove a tenant by identifier
- test: Test the credentials of a new or a registered tenant
- reset: Delete the whole configuration
- verify-audit: Check the audit log hash chain
"""

import json
from pathlib import Path
from typing import Optional

import click
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..connection_tester import ConnectionTestResult, ConnectionTestStatus
from ..exceptions import ConflictingCredentialsError
from ..services.audit_log import TamperProofAuditLog
from ..services.tenant_admin import DEFAULT_TENANT_NAME_HINT, TenantConnectionRequest
from .base import command_context, exit_with_error, handle_errors

console = Console()

CLIENT_SECRET_ENVVAR = "TENANT_CONNECTIONS_CLIENT_SECRET"


def credential_options(f):
    """Options describing a new tenant connection, shared by add and test."""
    f = click.option(
        "--exclude-members",
        is_flag=True,
        help="Only return guest users from this tenant",
    )(f)
    f = click.option(
        "--certificate-password",
        default="",
        help="Password protecting the PKCS#12 certificate",
    )(f)
    f = click.option(
        "--certificate",
        "certificate_path",
        type=click.Path(exists=True, dir_okay=False),
        help="PKCS#12 (.pfx) client certificate with its private key",
    )(f)
    f = click.option(
        "--secret",
        default="",
        envvar=CLIENT_SECRET_ENVVAR,
        help=f"Client secret of the application (also read from {CLIENT_SECRET_ENVVAR})",
    )(f)
    f = click.option(
        "--application-id",
        help="Client id of the application registered in the tenant",
    )(f)
    f = click.option(
        "--name",
        help=f"Tenant domain name, e.g. {DEFAULT_TENANT_NAME_HINT}",
    )(f)
    return f


def build_request(
    name: Optional[str],
    application_id: Optional[str],
    secret: str,
    certificate_path: Optional[str],
    certificate_password: str,
    exclude_members: bool,
) -> TenantConnectionRequest:
    """Turn command line options into a tenant connection request."""
    certificate_bytes = None
    if certificate_path:
        certificate_bytes = Path(certificate_path).read_bytes()
    return TenantConnectionRequest(
        name=(name or "").strip(),
        application_id=(application_id or "").strip(),
        client_secret=secret or "",
        certificate_bytes=certificate_bytes,
        certificate_file_name=certificate_path or "",
        certificate_password=certificate_password or "",
        exclude_members=exclude_members,
    )


def reject_environment_secret(
    ctx: click.Context, secret: str, certificate_path: Optional[str]
) -> None:
    """Refuse --certificate when a client secret was picked up from the environment."""
    if (
        certificate_path
        and secret.strip()
        and ctx.get_parameter_source("secret") == ParameterSource.ENVIRONMENT
    ):
        raise ConflictingCredentialsError(
            "Specify either a client secret or a client certificate, but not both. "
            f"The client secret was read from {CLIENT_SECRET_ENVVAR}; unset it to use "
            "--certificate.",
            context={"secret_source": "environment"},
        )


def print_result(result: ConnectionTestResult) -> None:
    message = escape(result.message)
    if result.succeeded:
        console.print(f"[green]✅ {message}[/green]")
    elif result.status == ConnectionTestStatus.AUTH_SERVICE_FAILURE:
        console.print(f"[red]❌ {message}[/red]")
    else:
        console.print(f"[yellow]⚠️  {message}[/yellow]")


@click.command("list")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def list_tenants(ctx: click.Context, output_json: bool) -> None:
    """List the Azure AD tenants of the configuration.

    Examples:
        tenant-connections list
        tenant-connections list --json
    """
    registry = command_context(ctx).get_registry()
    tenants = registry.list()

    unreadable = getattr(registry.persistence, "unreadable_records", ())
    if unreadable:
        click.echo(
            f"Warning: {len(unreadable)} stored tenant record(s) could not be read and are "
            "not listed. They are kept in the configuration; check the certificate "
            "passphrase, or reset the configuration.",
            err=True,
        )

    if output_json:
        click.echo(
            json.dumps(
                [
                    {
                        "id": t.id,
                        "name": t.name,
                        "application_id": t.application_id,
                        "credential": t.credential_channel.value
                        if t.credential_channel
                        else None,
                        "certificate_thumbprint": t.client_certificate.thumbprint
                        if t.client_certificate
                        else None,
                        "certificate_expires": t.client_certificate.not_valid_after.isoformat()
                        if t.client_certificate
                        else None,
                        "exclude_members": t.exclude_members,
                    }
                    for t in tenants
                ],
                indent=2,
            )
        )
        return

    if not tenants:
        click.echo(f"No tenants registered in configuration '{registry.configuration_name}'.")
        return

    table = Table(title=f"Azure AD tenants ({registry.configuration_name})")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Application ID")
    table.add_column("Credential")
    table.add_column("Guests only")

    for tenant in tenants:
        channel = tenant.credential_channel
        if channel is None:
            credential = "[red]invalid[/red]"
        elif tenant.client_certificate is not None:
            credential = f"certificate {tenant.client_certificate.thumbprint[:8]}…"
        else:
            credential = "secret"
        table.add_row(
            tenant.id,
            tenant.name,
            tenant.application_id,
            credential,
            "yes" if tenant.exclude_members else "no",
        )

    console.print(table)


@click.command("add")
@credential_options
@click.option(
    "--test-first",
    is_flag=True,
    help="Test the connection and only add the tenant if it succeeds",
)
@click.pass_context
@handle_errors
def add_tenant(
    ctx: click.Context,
    name: Optional[str],
    application_id: Optional[str],
    secret: str,
    certificate_path: Optional[str],
    certificate_password: str,
    exclude_members: bool,
    test_first: bool,
) -> None:
    """Add an Azure AD tenant to the configuration.

    Exactly one of --secret and --certificate must be given.

    Examples:
        tenant-connections add --name contoso.onmicrosoft.com --application-id <id> --secret <secret>
        tenant-connections add --name contoso.onmicrosoft.com --application-id <id> \\
            --certificate app.pfx --certificate-password <password>
    """
    reject_environment_secret(ctx, secret, certificate_path)
    request = build_request(
        name, application_id, secret, certificate_path, certificate_password, exclude_members
    )
    admin = command_context(ctx).get_admin()

    if test_first:
        result = admin.test_connection(request)
        print_result(result)
        if not result.succeeded:
            exit_with_error("Tenant was not added because the connection test failed.")

    tenant = admin.add_tenant(request)
    click.echo(
        f"Azure AD tenant '{tenant.name}' was successfully added in configuration "
        f"'{admin.registry.configuration_name}' (id {tenant.id})"
    )


@click.command("remove")
@click.argument("tenant_id")
@click.pass_context
@handle_errors
def remove_tenant(ctx: click.Context, tenant_id: str) -> None:
    """Remove an Azure AD tenant by its identifier.

    Example:
        tenant-connections remove 0b5c5e2e-5a7e-4c9a-9d1e-4f1b1f0f3c2a
    """
    admin = command_context(ctx).get_admin()
    tenant = admin.remove_tenant(tenant_id)
    if tenant is None:
        click.echo(f"No tenant with id {tenant_id}; nothing removed.")
        return
    click.echo(
        f"Azure AD tenant '{tenant.name}' was successfully removed from configuration "
        f"'{admin.registry.configuration_name}'"
    )


@click.command("test")
@credential_options
@click.option("--id", "tenant_id", help="Test a registered tenant instead of new credentials")
@click.option("--timeout", type=int, help="Deadline for the token request, in seconds")
@click.pass_context
@handle_errors
def test_tenant(
    ctx: click.Context,
    name: Optional[str],
    application_id: Optional[str],
    secret: str,
    certificate_path: Optional[str],
    certificate_password: str,
    exclude_members: bool,
    tenant_id: Optional[str],
    timeout: Optional[int],
) -> None:
    """Test the connection to an Azure AD tenant.

    Requests an app-only access token with the given credentials. Nothing is
    saved.

    Examples:
        tenant-connections test --name contoso.onmicrosoft.com --application-id <id> --secret <secret>
        tenant-connections test --id <tenant-id>
    """
    admin = command_context(ctx).get_admin(timeout)
    if tenant_id:
        result = admin.test_tenant(tenant_id)
    else:
        reject_environment_secret(ctx, secret, certificate_path)
        request = build_request(
            name, application_id, secret, certificate_path, certificate_password, exclude_members
        )
        result = admin.test_connection(request)

    print_result(result)
    if not result.succeeded:
        ctx.exit(1)


@click.command("reset")
@click.confirmation_option(prompt="This deletes every tenant of the configuration. Continue?")
@click.pass_context
@handle_errors
def reset_configuration(ctx: click.Context) -> None:
    """Delete the configuration and all its tenants (DESTRUCTIVE)."""
    registry = command_context(ctx).get_registry()
    registry.reset()
    click.echo(f"Configuration '{registry.configuration_name}' was reset.")


@click.command("verify-audit")
@click.pass_context
@handle_errors
def verify_audit(ctx: click.Context) -> None:
    """Verify the hash chain of the tenant audit log."""
    config = command_context(ctx).get_config()
    if not config.audit.enabled:
        exit_with_error("Audit logging is disabled.")
    if not config.audit.path.exists():
        exit_with_error(f"No audit log at {config.audit.path}")

    audit_log = TamperProofAuditLog(config.audit.path)
    audit_log.verify_integrity()
    entries = audit_log.get_entries()
    click.echo(f"Audit log intact: {len(entries)} entries in {config.audit.path}")
