from __future__ import annotations

import secrets
import time
from typing import Any, Dict

import jwt
from passlib.context import CryptContext


ALGORITHM = "HS256"

_hasher = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """False for a mismatch and for hashes passlib cannot identify."""
    if not (password and password_hash):
        return False
    try:
        return _hasher.verify(password, password_hash)
    except (ValueError, TypeError):
        return False


def new_verification_token() -> str:
    """Single-use email verification secret (64 hex chars)."""
    return secrets.token_hex(32)


def create_access_token(*, secret: str, user_id: int, expires_minutes: int) -> str:
    """Stateless session token bound to a user id.

    No server-side revocation; logout is a client-side discard.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")
    issued = int(time.time())
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "userId": str(user_id),
        "iat": issued,
        "exp": issued + max(1, int(expires_minutes)) * 60,
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def decode_access_token(*, token: str, secret: str) -> Dict[str, Any]:
    """Verify signature and expiry; raises jwt.InvalidTokenError subclasses."""
    if not token:
        raise ValueError("token_blank")
    if not secret:
        raise ValueError("jwt_secret_blank")
    return jwt.decode(token, secret, algorithms=[ALGORITHM], options={"require": ["exp", "sub"]})
