"""JWT authentication dependency for FastAPI.

Validates Bearer tokens from the Authorization header and identifies the
operator so resolutions and retries can be attributed.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Operator:
    id: str
    email: str
    school_context_id: str | None = None


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


def create_access_token(claims: dict) -> str:
    """Sign ``claims`` with the configured secret (used by ops tooling and tests)."""
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_operator(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Operator:
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = _decode_token(credentials.credentials)
    try:
        operator = Operator(
            id=str(payload["sub"]),
            email=payload["email"],
            school_context_id=payload.get("school_context_id"),
        )
    except KeyError as exc:
        raise UnauthorizedException("Token is missing required claims") from exc

    request.state.operator = operator
    return operator
