"""Token verification implementations.

Provides:
- TokenVerifier: Protocol for token verification
- JwtTokenVerifier: HS256 verifier for end-user and staff tokens

Tokens are issued by the auth collaborator and signed with the shared
JWT_SECRET. End-user tokens carry the user id in `sub`; staff tokens carry
the admin id in `sub` and a `role` claim.
"""

import logging
import time
from typing import Any, Protocol

import jwt
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidSignatureError,
    InvalidTokenError,
)

from kivendi.errors import ApiError, ApiErrorCode

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class TokenVerifier(Protocol):
    """Protocol for token verification.

    Implementations must verify JWT tokens and return decoded claims.
    """

    def verify(self, token: str) -> dict[str, Any]:
        """Verify token and return decoded claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
        """
        ...


class JwtTokenVerifier:
    """Shared-secret JWT verifier.

    Validates:
    - HS256 signature with the configured secret
    - exp with a small clock-skew leeway
    - sub present and an integer id
    """

    def __init__(self, secret: str, leeway: int = 30):
        self.secret = secret
        self.leeway = leeway

    def verify(self, token: str) -> dict[str, Any]:
        """Verify a token.

        Args:
            token: The JWT token string.

        Returns:
            Decoded claims dictionary, with `sub` normalized to int.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                leeway=self.leeway,
                options={"require": ["exp", "sub"]},
            )
        except ExpiredSignatureError as e:
            logger.warning("auth_failure", extra={"reason": "expired_token"})
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Token expired") from e
        except InvalidSignatureError as e:
            logger.warning("auth_failure", extra={"reason": "invalid_signature"})
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token signature") from e
        except DecodeError as e:
            logger.warning("auth_failure", extra={"reason": "decode_error"})
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token format") from e
        except InvalidTokenError as e:
            logger.warning("auth_failure", extra={"reason": "invalid_token", "error": str(e)})
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token") from e

        try:
            payload["sub"] = int(payload["sub"])
        except (ValueError, TypeError) as e:
            logger.warning("auth_failure", extra={"reason": "invalid_sub"})
            raise ApiError(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: sub is not a valid id"
            ) from e

        return payload


def mint_token(
    secret: str,
    subject: int,
    *,
    expires_in: int = 3600,
    role: str | None = None,
    now: int | None = None,
) -> str:
    """Sign a token in the format JwtTokenVerifier accepts.

    Used by the dev seed script and tests; production tokens come from the
    auth service.
    """
    issued_at = int(time.time()) if now is None else now
    payload: dict[str, Any] = {
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + expires_in,
    }
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, secret, algorithm=ALGORITHM)
