"""Signed token helpers for actor sessions and emergency access.

Both token kinds are HS256 JWTs signed with ``settings.jwt_secret``. They are
distinguished by the ``type`` claim: ``access`` tokens carry the actor id and
role, ``emergency`` tokens carry nothing but their type and expiry.
"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from src.core.config import Settings, get_settings

ACCESS_TOKEN_TYPE = "access"
EMERGENCY_TOKEN_TYPE = "emergency"


class TokenError(Exception):
    """Raised when a token cannot be decoded or has expired."""


@dataclass(frozen=True)
class AccessTokenClaims:
    """Decoded claims of an actor access token."""

    actor_id: uuid.UUID
    role: str
    expires_at: datetime


def _encode(payload: dict[str, Any], settings: Settings) -> str:
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Decode and verify a signed token.

    Args:
        token: Encoded JWT
        settings: Application settings

    Returns:
        The verified claims

    Raises:
        TokenError: If the signature is invalid, the token is malformed,
            or it has expired
    """
    settings = settings or get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "type"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenError("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenError("Token is invalid") from e
    return payload


def create_access_token(
    actor_id: uuid.UUID,
    role: str,
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a bearer token for an authenticated actor."""
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expires = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    return _encode(
        {
            "sub": str(actor_id),
            "role": role,
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": expires,
        },
        settings,
    )


def decode_access_token(token: str, settings: Settings | None = None) -> AccessTokenClaims:
    """Decode an actor access token.

    Raises:
        TokenError: If the token is invalid, expired, or not an access token
    """
    payload = decode_token(token, settings)
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise TokenError("Token is not an access token")
    try:
        actor_id = uuid.UUID(str(payload["sub"]))
        role = str(payload["role"])
    except (KeyError, ValueError) as e:
        raise TokenError("Token is missing actor claims") from e
    return AccessTokenClaims(
        actor_id=actor_id,
        role=role,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
    )


def create_emergency_token(
    settings: Settings | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint an emergency token.

    Issuance normally happens in a separate flow (printed QR codes); this is
    used by the operator CLI and tests.
    """
    settings = settings or get_settings()
    now = datetime.now(UTC)
    expires = now + (expires_delta or timedelta(hours=settings.emergency_token_expire_hours))
    return _encode(
        {
            "type": EMERGENCY_TOKEN_TYPE,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": expires,
        },
        settings,
    )


def token_fingerprint(token: str) -> str:
    """Short stable fingerprint for recording token use without storing it."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
