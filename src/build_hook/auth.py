"""Bearer-token authentication for the HTTP layer.

Every trigger route requires ``Authorization: Bearer <token>`` with a token
from BEARER_TOKENS. Tokens are compared in constant time and never logged.

Example:
    >>> auth = BearerAuth(["s3cret"])
    >>> app.post("/{slug}", dependencies=[Depends(auth)])
"""

from __future__ import annotations

import hmac
from collections.abc import Iterable

import structlog
from fastapi import Header, HTTPException, status

logger = structlog.get_logger(__name__)

MISSING_HEADER = "Unauthorized: Missing Authorization header"
BAD_FORMAT = "Unauthorized: Invalid Authorization header format. Expected 'Bearer <token>'"
INVALID_TOKEN = "Unauthorized: Invalid or missing bearer token"


def parse_bearer(header_value: str) -> str | None:
    """Extract the token from an ``Authorization`` header value.

    The scheme is matched case-insensitively.

    Returns:
        The token, or None if the value is not ``Bearer <token>``.
    """
    scheme, _, token = header_value.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        return None
    return token


class BearerAuth:
    """FastAPI dependency accepting a fixed set of bearer tokens.

    Args:
        tokens: Accepted tokens. Must not be empty.

    Raises:
        ValueError: If no token is given.
    """

    def __init__(self, tokens: Iterable[str]) -> None:
        self._tokens = tuple(t.encode() for t in tokens if t)
        if not self._tokens:
            msg = "at least one bearer token is required"
            raise ValueError(msg)

    def is_valid(self, token: str) -> bool:
        candidate = token.encode()
        # Check every token; no early exit
        matches = [hmac.compare_digest(candidate, known) for known in self._tokens]
        return any(matches)

    async def __call__(self, authorization: str | None = Header(default=None)) -> None:
        if authorization is None:
            logger.warning("auth_rejected", reason="missing_header")
            raise _unauthorized(MISSING_HEADER)
        token = parse_bearer(authorization)
        if token is None:
            logger.warning("auth_rejected", reason="bad_format")
            raise _unauthorized(BAD_FORMAT)
        if not self.is_valid(token):
            logger.warning("auth_rejected", reason="invalid_token")
            raise _unauthorized(INVALID_TOKEN)
        logger.debug("auth_accepted")


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


__all__ = ["BearerAuth", "parse_bearer"]
