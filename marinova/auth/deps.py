from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marinova.errors import AuthenticationError, ServerError

from .security import decode_access_token


_bearer = HTTPBearer(auto_error=False)

_INVALID = "Token is invalid or expired"


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> int:
    """Resolve `Authorization: Bearer <jwt>` to a user id.

    Pure function of the token: the store is never consulted here. Handlers
    load the user themselves and report 404 if it has vanished.
    """

    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise ServerError("server_config_missing")

    token = credentials.credentials if credentials is not None else None
    if not token:
        raise AuthenticationError("No authentication token, access denied")

    try:
        payload = decode_access_token(token=token, secret=cfg.AUTH_JWT_SECRET)
    except (jwt.InvalidTokenError, ValueError):
        # Covers bad signature, malformed token and expiry alike.
        raise AuthenticationError(_INVALID)

    sub = payload.get("sub") or payload.get("userId")
    if not sub:
        raise AuthenticationError(_INVALID)

    try:
        return int(sub)
    except (TypeError, ValueError):
        raise AuthenticationError(_INVALID)
