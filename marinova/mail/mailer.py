"""
Outbound email (verification links).

Uses Resend when RESEND_API_KEY is set. Sends never raise: they return a
SendResult and the caller decides whether a failure matters.
"""
from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Optional, Protocol, Tuple

import resend

from marinova.config import Config


def _debug(msg: str) -> None:
    print(f"[mail] {msg}")


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class Mailer(Protocol):
    def send(self, to: str, subject: str, html: str) -> SendResult: ...


class ResendMailer:
    def __init__(self, api_key: str | None, from_email: str):
        self.api_key = (api_key or "").strip()
        self.from_email = from_email

    @classmethod
    def from_config(cls, cfg: Config) -> "ResendMailer":
        return cls(cfg.RESEND_API_KEY, cfg.EMAIL_FROM)

    def send(self, to: str, subject: str, html: str) -> SendResult:
        if not self.api_key:
            return SendResult(success=False, error="resend_api_key_missing")
        if not to:
            return SendResult(success=False, error="recipient_missing")

        resend.api_key = self.api_key
        params: dict[str, Any] = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html.strip(),
        }
        try:
            sent = resend.Emails.send(params)
        except Exception as e:
            _debug(f"Failed to send to {to}: {e}")
            return SendResult(success=False, error=str(e))

        message_id = sent.get("id") if isinstance(sent, dict) else getattr(sent, "id", None)
        _debug(f"Sent '{subject}' to {to} (id={message_id})")
        return SendResult(success=True, message_id=str(message_id) if message_id else None)


def verification_link(cfg: Config, token: str) -> str:
    return f"{cfg.FRONTEND_URL.rstrip('/')}/verify/{token}"


def build_verification_email(cfg: Config, full_name: str, token: str) -> Tuple[str, str]:
    """Return (subject, html) for the verification message."""
    link = verification_link(cfg, token)
    name = escape(full_name or "there")
    credits = int(cfg.FREE_USAGE_CREDITS)

    subject = "Verify Your Email - Marinova Ocean Intelligence"
    html = f"""
    <p>Hi {name},</p>
    <p>Thank you for signing up for Marinova!</p>
    <p>Please verify your email address to start using your <strong>{credits} free credits</strong>
    on the Forecast and Insights features:</p>
    <p><a href="{link}">Verify Email Address</a></p>
    <p>Or copy and paste this link in your browser:<br>{link}</p>
    <p>If you didn't create this account, you can safely ignore this email.</p>
    """
    return subject, html
