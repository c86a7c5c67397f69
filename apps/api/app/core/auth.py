"""JWT authentication for the admin API."""

from typing import Annotated, Any

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(token: str) -> dict[str, Any]:
    """Decode a panel session token.

    Tokens are HS256-signed with ``settings.jwt_secret`` and must not be expired.

    Raises:
        HTTPException: 401 if the token is expired, malformed or wrongly signed
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_exp": True, "require": ["exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise _unauthorized("Token has expired") from e
    except jwt.InvalidTokenError as e:
        raise _unauthorized(f"Invalid token: {e}") from e
    return payload


def token_roles(payload: dict[str, Any]) -> set[str]:
    """Roles claimed by a token; accepts ``roles`` as list or string, or a single ``role``."""
    claimed = payload.get("roles", payload.get("role"))
    if isinstance(claimed, str):
        return {claimed}
    if isinstance(claimed, list):
        return {str(role) for role in claimed}
    return set()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    """Authenticated caller's token payload."""
    if credentials is None:
        raise _unauthorized("Not authenticated")
    return verify_token(credentials.credentials)


async def get_current_admin(
    user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    """Require the authenticated user to carry the admin role."""
    if settings.admin_role not in token_roles(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


CurrentAdmin = Annotated[dict[str, Any], Depends(get_current_admin)]
