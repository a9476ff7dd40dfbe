from __future__ import annotations

from typing import Any, Dict, Tuple

from marinova.config import Config
from marinova.db import Store
from marinova.errors import (
    AlreadyVerifiedError,
    DeliveryError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from marinova.mail.mailer import Mailer, SendResult, build_verification_email

from . import crud
from .security import create_access_token, new_verification_token


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


class AuthService:
    """Registration, login and email verification."""

    def __init__(self, cfg: Config, store: Store, mailer: Mailer):
        self.cfg = cfg
        self.store = store
        self.mailer = mailer

    def _issue_token(self, user_id: int) -> str:
        return create_access_token(
            secret=self.cfg.AUTH_JWT_SECRET,
            user_id=int(user_id),
            expires_minutes=int(self.cfg.AUTH_TOKEN_EXPIRE_MINUTES),
        )

    def _send_verification(self, email: str, full_name: str, token: str) -> SendResult:
        subject, html = build_verification_email(self.cfg, full_name, token)
        try:
            return self.mailer.send(email, subject, html)
        except Exception as e:
            return SendResult(success=False, error=str(e))

    def register(self, full_name: str, email: str, password: str) -> Tuple[str, Dict[str, Any]]:
        name = (full_name or "").strip()
        e = crud.normalize_email(email)
        if not name or not e or not password:
            raise ValidationError("Please provide all required fields")
        if not crud.is_allowed_email(e, self.cfg.AUTH_ALLOWED_EMAIL_DOMAIN):
            raise ValidationError(f"Only @{self.cfg.AUTH_ALLOWED_EMAIL_DOMAIN} email addresses are allowed")
        min_len = int(self.cfg.AUTH_PASSWORD_MIN_LENGTH)
        if len(password) < min_len:
            raise ValidationError(f"Password must be at least {min_len} characters")

        verification_token = new_verification_token()
        with self.store.session() as conn:
            try:
                row = crud.create_user(
                    conn,
                    full_name=name,
                    email=e,
                    password=password,
                    verification_token=verification_token,
                    usage_credits=int(self.cfg.FREE_USAGE_CREDITS),
                )
            except ValueError as err:
                if str(err) == "email_exists":
                    raise DuplicateEmailError()
                raise ValidationError(str(err))
            user = crud.public_user(row)

        _debug(f"Registered user_id={user['id']}")
        token = self._issue_token(user["id"])

        # Best-effort: the user can always ask for a resend.
        result = self._send_verification(e, name, verification_token)
        if not result.success:
            _debug(f"Verification email to user_id={user['id']} failed: {result.error}")

        return token, user

    def login(self, email: str, password: str) -> Tuple[str, Dict[str, Any]]:
        if not (email or "").strip() or not password:
            raise ValidationError("Please provide email and password")

        with self.store.session() as conn:
            row = crud.verify_user_credentials(conn, email, password)
            if row is None:
                raise InvalidCredentialsError()
            crud.touch_last_login(conn, int(row["user_id"]))
            user = crud.public_user(crud.get_user_by_id(conn, int(row["user_id"])))

        return self._issue_token(user["id"]), user

    def get_current_user(self, user_id: int) -> Dict[str, Any]:
        with self.store.session() as conn:
            row = crud.get_user_by_id(conn, user_id)
            if row is None:
                raise NotFoundError()
            return crud.public_user(row, history=crud.list_usage_history(conn, user_id))

    def verify_email(self, token: str) -> Dict[str, Any]:
        t = (token or "").strip()
        if not t:
            raise ValidationError("Verification token is required")

        with self.store.session() as conn:
            row = crud.get_user_by_verification_token(conn, t)
            if row is None:
                raise InvalidTokenError()
            user_id = int(row["user_id"])
            if not crud.mark_email_verified(conn, user_id, t):
                raise InvalidTokenError()
            return crud.public_user(crud.get_user_by_id(conn, user_id))

    def resend_verification(self, user_id: int) -> None:
        verification_token = new_verification_token()
        with self.store.session() as conn:
            row = crud.get_user_by_id(conn, user_id)
            if row is None:
                raise NotFoundError()
            if int(row["is_email_verified"] or 0) == 1:
                raise AlreadyVerifiedError()
            # A verify_email committed since the read above makes this a no-op.
            if not crud.set_verification_token(conn, user_id, verification_token):
                raise AlreadyVerifiedError()
            email = str(row["email"])
            full_name = str(row["full_name"])

        # Token is committed before sending; a failed send leaves it in place.
        result = self._send_verification(email, full_name, verification_token)
        if not result.success:
            _debug(f"Resend to user_id={user_id} failed: {result.error}")
            raise DeliveryError()
