"""Bearer token verification.

Tokens are issued elsewhere; this service only verifies them and reads
the owner id from the ``sub`` claim.
"""

from typing import Any

from aws_lambda_powertools import Logger
from jose import JWTError, jwt

from core.config import get_settings
from core.models.errors import AuthenticationError
from core.utils.constants import AUTHORIZATION_HEADER, BEARER_PREFIX

logger = Logger(UTC=True)


def extract_bearer_token(headers: dict[str, Any] | None) -> str:
    """Return the raw token from an ``Authorization: Bearer`` header.

    Header names are matched case-insensitively.

    Raises:
        AuthenticationError: If the header is missing or malformed
    """
    normalized = {str(k).lower(): v for k, v in (headers or {}).items()}
    value = normalized.get(AUTHORIZATION_HEADER)

    if not value or not str(value).startswith(BEARER_PREFIX):
        raise AuthenticationError(message="Missing or malformed Authorization header")

    token = str(value)[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError(message="Missing or malformed Authorization header")

    return token


def verify_token(token: str) -> str:
    """Verify a JWT and return its subject (the owner id).

    Raises:
        AuthenticationError: If the token is invalid, expired, or has no subject
    """
    settings = get_settings()
    secret = settings.require("jwt_secret")

    try:
        claims = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.info("Rejected bearer token", extra={"reason": type(exc).__name__})
        raise AuthenticationError(message="Invalid or expired token") from exc

    owner_id = claims.get("sub")
    if not owner_id or not isinstance(owner_id, str):
        raise AuthenticationError(message="Token has no subject")

    return owner_id


def authenticate(event: dict[str, Any]) -> str:
    """Authenticate an API Gateway proxy event and return the owner id."""
    return verify_token(extract_bearer_token(event.get("headers")))
