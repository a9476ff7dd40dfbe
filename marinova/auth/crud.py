from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from marinova.util.time import utcnow_iso

from .security import hash_password, verify_password


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_allowed_email(email: str, allowed_domain: str) -> bool:
    """Only addresses on the single allowed domain may register (case-insensitive)."""
    e = normalize_email(email)
    domain = (allowed_domain or "").strip().lower()
    if not e or not domain:
        return False
    return re.fullmatch(r"[a-z0-9._%+-]+@" + re.escape(domain), e) is not None


def public_usage(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    return [{"feature": str(r["feature"]), "usedAt": str(r["used_at"])} for r in rows]


def public_user(row: Any | Dict[str, Any], history: Optional[Iterable[Any]] = None) -> Dict[str, Any]:
    """Outward view of a user row. Never includes the password hash or verification token."""
    d = dict(row)
    out: Dict[str, Any] = {
        "id": int(d["user_id"]),
        "fullName": d.get("full_name"),
        "email": d.get("email"),
        "isEmailVerified": bool(int(d.get("is_email_verified") or 0)),
        "subscriptionStatus": d.get("subscription_status") or "free",
        "usageCredits": int(d.get("usage_credits") or 0),
        "createdAt": d.get("created_at"),
        "updatedAt": d.get("updated_at"),
    }
    if history is not None:
        out["usageHistory"] = public_usage(history)
    return out


def get_user_by_id(conn: Any, user_id: int) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (int(user_id),),
    ).fetchone()


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE email=?",
        (e,),
    ).fetchone()


def get_user_by_verification_token(conn: Any, token: str) -> Optional[Any]:
    t = (token or "").strip()
    if not t:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE verification_token=?",
        (t,),
    ).fetchone()


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def create_user(
    conn: Any,
    *,
    full_name: str,
    email: str,
    password: str,
    verification_token: str | None,
    usage_credits: int,
    is_email_verified: bool = False,
    subscription_status: str = "free",
) -> Any:
    """Insert a user and return the stored row.

    Raises ValueError("email_exists") when the normalized email is taken.
    """
    e = normalize_email(email)
    name = (full_name or "").strip()
    if not e:
        raise ValueError("email_blank")
    if not name:
        raise ValueError("full_name_blank")

    # Fast path; the ON CONFLICT below settles concurrent registrations.
    existing = conn.execute("SELECT 1 FROM users WHERE email=?", (e,)).fetchone()
    if existing is not None:
        raise ValueError("email_exists")

    now = utcnow_iso()
    cur = conn.execute(
        """
        INSERT INTO users (
            full_name, email, password_hash, is_email_verified, verification_token,
            subscription_status, usage_credits, created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?)
        ON CONFLICT (email) DO NOTHING
        """,
        (
            name,
            e,
            hash_password(password),
            1 if is_email_verified else 0,
            verification_token,
            subscription_status,
            int(usage_credits),
            now,
            now,
        ),
    )
    if int(cur.rowcount or 0) != 1:
        raise ValueError("email_exists")
    row = get_user_by_email(conn, e)
    assert row is not None
    return row


def touch_last_login(conn: Any, user_id: int) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, int(user_id)),
    )


def set_verification_token(conn: Any, user_id: int, token: str) -> bool:
    """Replace the pending token. False if the user is already verified (or gone)."""
    cur = conn.execute(
        "UPDATE users SET verification_token=?, updated_at=? WHERE user_id=? AND is_email_verified=0",
        (token, utcnow_iso(), int(user_id)),
    )
    return int(cur.rowcount or 0) == 1


def mark_email_verified(conn: Any, user_id: int, token: str) -> bool:
    """Flip the verified flag and clear the token, only if the token still matches.

    Returns False when another request consumed the token first.
    """
    cur = conn.execute(
        """
        UPDATE users
        SET is_email_verified=1, verification_token=NULL, updated_at=?
        WHERE user_id=? AND verification_token=?
        """,
        (utcnow_iso(), int(user_id), token),
    )
    return int(cur.rowcount or 0) == 1


def consume_credit(conn: Any, user_id: int) -> Optional[int]:
    """Decrement usage_credits by one if positive.

    Single conditional UPDATE, so concurrent requests cannot overspend.
    Returns the new balance, or None when no credit was available.
    """
    cur = conn.execute(
        """
        UPDATE users
        SET usage_credits = usage_credits - 1, updated_at=?
        WHERE user_id=? AND usage_credits > 0
        """,
        (utcnow_iso(), int(user_id)),
    )
    if int(cur.rowcount or 0) != 1:
        return None
    row = conn.execute("SELECT usage_credits FROM users WHERE user_id=?", (int(user_id),)).fetchone()
    return int(row["usage_credits"])


def append_usage(conn: Any, user_id: int, feature: str, used_at: str | None = None) -> None:
    conn.execute(
        "INSERT INTO usage_history (user_id, feature, used_at) VALUES (?,?,?)",
        (int(user_id), feature, used_at or utcnow_iso()),
    )


def list_usage_history(conn: Any, user_id: int) -> List[Any]:
    return conn.execute(
        "SELECT feature, used_at FROM usage_history WHERE user_id=? ORDER BY usage_id ASC",
        (int(user_id),),
    ).fetchall()


def update_user_subscription(
    conn: Any,
    *,
    user_id: int,
    subscription_status: str | None = None,
    usage_credits: int | None = None,
) -> None:
    """Write plan and/or credit balance; arguments left as None are not touched."""
    changes: Dict[str, Any] = {}
    if subscription_status is not None:
        changes["subscription_status"] = subscription_status
    if usage_credits is not None:
        changes["usage_credits"] = int(usage_credits)
    if not changes:
        return

    now = utcnow_iso()
    changes["subscription_updated_at"] = now
    changes["updated_at"] = now
    assignments = ", ".join(f"{col}=?" for col in changes)
    conn.execute(f"UPDATE users SET {assignments} WHERE user_id=?", (*changes.values(), int(user_id)))
