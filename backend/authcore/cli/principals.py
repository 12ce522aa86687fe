"""Flask CLI commands administering principals and their sessions."""

from __future__ import annotations

import logging

import click
from flask.cli import with_appcontext

from authcore.api.deps import auth_policy, build_auth_service
from authcore.models.principal import ADMIN_ROLES, PRINCIPAL_KINDS, USER_ROLES
from authcore.services._shared.errors import ServiceError
from authcore.services.credentials import CredentialManager
from authcore.services.principals import PrincipalCreateIn, PrincipalOut, PrincipalService

LOGGER = logging.getLogger(__name__)

_kind_option = click.option(
    "--kind",
    type=click.Choice(PRINCIPAL_KINDS),
    default="user",
    show_default=True,
    help="Principal kind.",
)


def _lookup(kind: str, login: str) -> PrincipalOut:
    try:
        return PrincipalService().find(kind, login)
    except ServiceError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group("principals")
def principals_cli() -> None:
    """Manage administrator and user accounts."""


@principals_cli.command("create")
@_kind_option
@click.option("--login", required=True, help="Username (admins) or email (users).")
@click.option(
    "--role",
    type=click.Choice(sorted(set(ADMIN_ROLES) | set(USER_ROLES))),
    default=None,
    help="Role name; defaults to 'admin' or 'customer' depending on --kind.",
)
@click.option("--permission", "permissions", multiple=True, help="Extra permission (repeatable).")
@click.option("--display-name", default=None)
@click.password_option("--password", help="Secret for the new account.")
@with_appcontext
def create_command(
    kind: str,
    login: str,
    role: str | None,
    permissions: tuple[str, ...],
    display_name: str | None,
    password: str,
) -> None:
    """Create a verified principal."""
    dto = PrincipalCreateIn(
        kind=kind,
        login=login,
        password=password,
        role=role or ("admin" if kind == "admin" else "customer"),
        permissions=permissions,
        display_name=display_name,
    )
    try:
        out = PrincipalService().create(dto)
    except ServiceError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Created {out.ref.key} ({out.login}, role={out.role})")


@principals_cli.command("list")
@click.option("--kind", type=click.Choice(PRINCIPAL_KINDS), default=None, help="Only this kind.")
@click.option("--active/--inactive", default=None, help="Only (in)active accounts.")
@with_appcontext
def list_command(kind: str | None, active: bool | None) -> None:
    """Print one line per principal."""
    for p in PrincipalService().list(kind=kind, active=active):
        state = "active" if p.is_active else "inactive"
        click.echo(f"{p.ref.key}\t{p.login}\t{p.role}\t{state}")


@principals_cli.command("deactivate")
@_kind_option
@click.argument("login")
@with_appcontext
def deactivate_command(kind: str, login: str) -> None:
    """Deactivate an account and sign out all of its devices."""
    principal = _lookup(kind, login)
    PrincipalService().set_active(principal.ref, False)
    closed = build_auth_service().registry.close_all(principal.ref)
    click.echo(f"Deactivated {principal.ref.key}; closed {closed} session(s)")


@principals_cli.command("activate")
@_kind_option
@click.argument("login")
@with_appcontext
def activate_command(kind: str, login: str) -> None:
    """Re-activate a deactivated account."""
    principal = _lookup(kind, login)
    PrincipalService().set_active(principal.ref, True)
    click.echo(f"Activated {principal.ref.key}")


@principals_cli.command("unlock")
@_kind_option
@click.argument("login")
@with_appcontext
def unlock_command(kind: str, login: str) -> None:
    """Clear the failed sign-in counter and any active lock."""
    principal = _lookup(kind, login)
    CredentialManager(policy=auth_policy()).unlock(principal.id)
    click.echo(f"Unlocked {principal.ref.key}")


@principals_cli.command("revoke-sessions")
@_kind_option
@click.argument("login")
@with_appcontext
def revoke_sessions_command(kind: str, login: str) -> None:
    """Revoke every refresh-token chain of an account."""
    principal = _lookup(kind, login)
    closed = build_auth_service().registry.close_all(principal.ref)
    LOGGER.info("Sessions revoked from CLI", extra={"principal": principal.ref.key})
    click.echo(f"Closed {closed} session(s) of {principal.ref.key}")
