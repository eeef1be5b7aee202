"""FastAPI dependencies for API v1."""

import uuid
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Header, Query, Request

from src.core.config import get_settings
from src.core.database import DbSession
from src.core.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from src.core.security import TokenError, decode_access_token, token_fingerprint
from src.models.domain.actor import ActorRole, ClientInfo, Principal
from src.repositories.actor_repo import ActorRepository
from src.services.emergency_service import verify_emergency_token
from src.services.record_access_service import RecordAccessService


def get_client_info(request: Request) -> ClientInfo:
    """Extract IP address and user agent from request."""
    return ClientInfo(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


Client = Annotated[ClientInfo, Depends(get_client_info)]


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Malformed Authorization header. Use 'Bearer <token>'.")
    return token.strip()


async def _principal_from_token(token: str, session: DbSession) -> Principal:
    try:
        claims = decode_access_token(token, get_settings())
    except TokenError as e:
        raise UnauthorizedError(f"Invalid access token: {e}") from e

    # The token's role must still match the stored actor
    actor = await ActorRepository(session).get_by_id(claims.actor_id)
    if actor is None or not actor.is_active or actor.role.value != claims.role:
        raise UnauthorizedError("Invalid access token.")
    return Principal(actor_id=actor.id, role=ActorRole(actor.role.value))


async def get_current_principal(
    session: DbSession,
    authorization: Annotated[str | None, Header()] = None,
) -> Principal:
    """Authenticate the caller from a bearer access token.

    Raises:
        UnauthorizedError: If the token is missing, invalid, or expired
    """
    token = _bearer_token(authorization)
    if token is None:
        raise UnauthorizedError("Authentication required. Provide a bearer token.")
    return await _principal_from_token(token, session)


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def actor_id_of(principal: Principal) -> uuid.UUID:
    """ID of the calling actor.

    Raises:
        UnauthorizedError: For an anonymous emergency principal
    """
    if principal.actor_id is None:
        raise UnauthorizedError("This operation requires a signed-in account.")
    return principal.actor_id


async def get_record_principal(
    request: Request,
    session: DbSession,
    client: Client,
    authorization: Annotated[str | None, Header()] = None,
    x_emergency_token: Annotated[str | None, Header(alias="X-Emergency-Token")] = None,
    emergency: Annotated[str | None, Query(description="Emergency access token")] = None,
) -> Principal:
    """Authenticate a record reader.

    A bearer access token takes precedence. Without one, an emergency token
    from the ``X-Emergency-Token`` header or the ``emergency`` query parameter
    yields an anonymous emergency principal. A token that does not verify is
    recorded as a failed read of the addressed record before the error is
    returned.
    """
    token = _bearer_token(authorization)
    if token is not None:
        return await _principal_from_token(token, session)

    emergency_token = x_emergency_token or emergency
    if emergency_token is None:
        raise UnauthorizedError("Authentication required. Provide a bearer or emergency token.")
    try:
        return verify_emergency_token(emergency_token, get_settings()).principal()
    except ValidationError as e:
        await RecordAccessService(session).refuse_emergency_token(
            _record_id(request),
            request.path_params.get("file_name"),
            token_fingerprint(emergency_token),
            client,
            e,
            download=request.url.path.endswith("/download"),
        )


def _record_id(request: Request) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(request.path_params.get("record_id")))
    except ValueError:
        return None


RecordPrincipal = Annotated[Principal, Depends(get_record_principal)]


def require_role(*roles: ActorRole) -> Callable[[Principal], Awaitable[Principal]]:
    """Build a dependency that only admits the given roles."""

    async def check(principal: CurrentPrincipal) -> Principal:
        if principal.role not in roles:
            raise ForbiddenError(
                f"This operation requires role: {', '.join(r.value for r in roles)}"
            )
        return principal

    return check


PatientPrincipal = Annotated[Principal, Depends(require_role(ActorRole.PATIENT))]
DoctorPrincipal = Annotated[Principal, Depends(require_role(ActorRole.DOCTOR))]
AdminPrincipal = Annotated[Principal, Depends(require_role(ActorRole.ADMIN))]
