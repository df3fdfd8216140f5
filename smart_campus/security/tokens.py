"""
Validate signed bearer tokens (JWT) and extract the claims the app needs.

Before we trust anything in a token we verify its signature and its exp/nbf
lifetime. Only then is ``sub`` read as the user id. Roles and school are
*not* taken from the token; they are loaded from the database per request so
that role changes take effect on the next call.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import jwt

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when token validation fails. Do not log the token."""

    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    """User id from the ``sub`` claim."""

    issued_at: int | None = None


def _extract_claims(payload: dict[str, Any]) -> TokenClaims:
    raw_sub = payload.get("sub")
    if raw_sub is None or str(raw_sub).strip() == "":
        raise ValidationError("Invalid token: missing subject")
    try:
        user_id = int(str(raw_sub).strip())
    except ValueError as exc:
        raise ValidationError("Invalid token: subject is not a user id") from exc

    iat = payload.get("iat")
    return TokenClaims(user_id=user_id, issued_at=int(iat) if isinstance(iat, (int, float)) else None)


class TokenValidator:
    """
    Validates HS256 (or configured algorithm) tokens signed with the app secret.

    Checks signature and exp/nbf (with ``leeway_seconds`` tolerance) before
    reading any claim.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", leeway_seconds: int = 60) -> None:
        if not secret:
            raise ValueError("token secret must be set")
        self._secret = secret
        self._algorithm = algorithm
        self._leeway = leeway_seconds

    def validate(self, token: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                leeway=self._leeway,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    "require": ["sub"],
                },
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise ValidationError("Token expired") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise ValidationError("Invalid token") from e

        return _extract_claims(payload)
