"""Emergency bypass token verification.

An emergency token is a signed JWT whose ``type`` claim is ``emergency``.
It is bound to no patient or record: what it unlocks is decided by each
record's emergency-visible flag. Verification never touches the database.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from src.core.config import Settings
from src.core.exceptions import UnauthorizedError, ValidationError
from src.core.security import EMERGENCY_TOKEN_TYPE, TokenError, decode_token, token_fingerprint
from src.models.domain.actor import ActorRole, Principal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmergencyTokenClaims:
    """Result of a successful emergency token verification."""

    valid: bool
    type: str
    expires_at: datetime
    fingerprint: str

    def principal(self) -> Principal:
        """Anonymous emergency principal for record access checks."""
        return Principal(
            actor_id=None,
            role=ActorRole.EMERGENCY,
            emergency_token_fingerprint=self.fingerprint,
        )


def verify_emergency_token(
    token: str | None,
    settings: Settings | None = None,
) -> EmergencyTokenClaims:
    """Verify an emergency token by signature, expiry and type.

    Args:
        token: The encoded token
        settings: Application settings

    Returns:
        The verified claims

    Raises:
        UnauthorizedError: If no token was supplied
        ValidationError: If the token is malformed, expired, wrongly signed,
            or not an emergency token
    """
    if not token:
        raise UnauthorizedError("Emergency token required")

    fingerprint = token_fingerprint(token)
    try:
        payload = decode_token(token, settings)
    except TokenError as e:
        logger.warning(
            "Emergency token rejected",
            extra={"token_fingerprint": fingerprint, "reason": str(e)},
        )
        raise ValidationError(f"Invalid emergency token: {e}") from e

    token_type = payload.get("type")
    if token_type != EMERGENCY_TOKEN_TYPE:
        logger.warning(
            "Emergency token rejected",
            extra={"token_fingerprint": fingerprint, "reason": "wrong token type"},
        )
        raise ValidationError("Invalid emergency token: not an emergency token")

    return EmergencyTokenClaims(
        valid=True,
        type=str(token_type),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        fingerprint=fingerprint,
    )
