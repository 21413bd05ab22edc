"""Dashboard session verification.

Tokens are issued by the separate login service (HS256, shared ``JWT_SECRET``).
This module only verifies them and extracts the owning user; both the HTTP
routes and the ``/ws`` live channel go through :func:`decode_user_token`.
"""

from __future__ import annotations

import os

from fastapi import Header, HTTPException, Request, status
from jose import JWTError, jwt as jose_jwt

from seatsync import APP_ENV, JWT_SECRET
from seatsync.models import AuthContext

JWT_ALGORITHMS = ["HS256"]


def _dev_user_id() -> str:
    return os.getenv("SEATSYNC_DEV_USER_ID", "dev_user")


def decode_user_token(token: str) -> str:
    """Return the user id carried by ``token`` or raise 401."""
    try:
        claims = jose_jwt.decode(token, JWT_SECRET, algorithms=JWT_ALGORITHMS)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")

    # Older dashboard builds put the id in ``userId`` instead of ``sub``.
    user_id = claims.get("sub") or claims.get("userId")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token_missing_sub")
    return str(user_id)


def require_auth():
    """
    Auth dependency factory.

    Example:
        auth: AuthContext = Depends(require_auth())
    """

    async def _auth_dependency(
        request: Request,
        authorization: str | None = Header(None),
    ) -> AuthContext:
        # Development bypass
        if authorization is None and APP_ENV == "development":
            user_id = _dev_user_id()
            request.state.user_id = user_id
            return AuthContext(user_id=user_id)

        if not authorization:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="missing_authorization",
            )

        token = authorization.split(" ")[-1]
        user_id = decode_user_token(token)
        request.state.user_id = user_id
        return AuthContext(user_id=user_id, token=token)

    return _auth_dependency
