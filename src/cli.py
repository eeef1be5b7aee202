"""Operator CLI: bootstrap actors and mint tokens."""

import asyncio
import logging
import sys
import uuid
from datetime import timedelta

import click
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.core.config import get_settings
from src.core.database import close_database, init_database, session_scope
from src.core.exceptions import AppError
from src.core.pagination import PageParams
from src.core.security import create_access_token, create_emergency_token
from src.models.domain.actor import ActorCreate, ActorRead, ActorRole
from src.models.domain.audit import AuditEntryRead, AuditQuery
from src.repositories.actor_repo import ActorRepository
from src.services.audit_service import AuditService
from src.services.identity_service import IdentityService

actor_create_adapter: TypeAdapter[ActorCreate] = TypeAdapter(ActorCreate)


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )
    # Quiet noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


async def _create_actor(data: ActorCreate) -> ActorRead:
    init_database(get_settings())
    try:
        async with session_scope() as session:
            return await IdentityService(session).create_actor(data)
    finally:
        await close_database()


async def _actor_role(actor_id: uuid.UUID) -> str | None:
    init_database(get_settings())
    try:
        async with session_scope() as session:
            actor = await ActorRepository(session).get_by_id(actor_id)
            return actor.role.value if actor else None
    finally:
        await close_database()


async def _recent_audit(limit: int) -> list[AuditEntryRead]:
    init_database(get_settings())
    try:
        async with session_scope() as session:
            page = await AuditService(session).query(AuditQuery(), PageParams(page=1, limit=limit))
            return page.items
    finally:
        await close_database()


@click.group()
def cli() -> None:
    """MedAccess operator commands."""
    _setup_logging()


@cli.command("create-actor")
@click.option(
    "--role",
    type=click.Choice([r.value for r in ActorRole]),
    required=True,
    help="Role, fixed for the actor's lifetime",
)
@click.option("--email", required=True)
@click.option("--first-name", default=None)
@click.option("--last-name", default=None)
@click.option("--specialization", default=None, help="Doctors only")
@click.option("--hospital", default=None, help="Doctors only")
def create_actor(
    role: str,
    email: str,
    first_name: str | None,
    last_name: str | None,
    specialization: str | None,
    hospital: str | None,
) -> None:
    """Register an actor directly in the database."""
    fields = {"role": role, "email": email, "first_name": first_name, "last_name": last_name}
    if role == ActorRole.DOCTOR:
        fields.update(specialization=specialization, hospital=hospital)
    try:
        data = actor_create_adapter.validate_python(fields)
    except PydanticValidationError as e:
        raise click.BadParameter(str(e)) from e

    try:
        actor = asyncio.run(_create_actor(data))
    except AppError as e:
        raise click.ClickException(e.detail) from e
    click.echo(f"Created {actor.role.value} {actor.email}: {actor.id}")


@cli.command("issue-token")
@click.argument("actor_id", type=click.UUID)
@click.option("--minutes", type=int, default=None, help="Lifetime, defaults to settings")
def issue_token(actor_id: uuid.UUID, minutes: int | None) -> None:
    """Mint a bearer access token for an existing actor."""
    role = asyncio.run(_actor_role(actor_id))
    if role is None:
        raise click.ClickException(f"Actor {actor_id} not found")
    expires = timedelta(minutes=minutes) if minutes else None
    click.echo(create_access_token(actor_id, role, expires_delta=expires))


@cli.command("issue-emergency-token")
@click.option("--hours", type=int, default=None, help="Lifetime, defaults to settings")
def issue_emergency_token(hours: int | None) -> None:
    """Mint an emergency token.

    The token opens every emergency-visible record until it expires. Handle
    it like a credential.
    """
    expires = timedelta(hours=hours) if hours else None
    click.echo(create_emergency_token(expires_delta=expires))


@cli.command("audit-tail")
@click.option("--limit", type=int, default=20, show_default=True)
def audit_tail(limit: int) -> None:
    """Print the most recent audit entries."""
    for entry in asyncio.run(_recent_audit(limit)):
        actor = entry.actor_id or "-"
        role = entry.actor_role.value if entry.actor_role else "-"
        click.echo(
            f"{entry.timestamp.isoformat()} {entry.severity.value:<8} {entry.action.value:<40} "
            f"{entry.status.value:<7} {role}:{actor} {entry.description}"
        )


if __name__ == "__main__":
    cli()
