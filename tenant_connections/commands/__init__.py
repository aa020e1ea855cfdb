"""Command registry for the tenant connections CLI."""

import click

from .base import CommandContext, command_context, exit_with_error, handle_errors
from .tenants import (
    add_tenant,
    list_tenants,
    remove_tenant,
    reset_configuration,
    test_tenant,
    verify_audit,
)

ALL_COMMANDS = [
    list_tenants,
    add_tenant,
    remove_tenant,
    test_tenant,
    reset_configuration,
    verify_audit,
]


def register_commands(group: click.Group) -> None:
    """Register every tenant command with the CLI group."""
    for command in ALL_COMMANDS:
        group.add_command(command)


__all__ = [
    "ALL_COMMANDS",
    "CommandContext",
    "command_context",
    "exit_with_error",
    "handle_errors",
    "register_commands",
]
