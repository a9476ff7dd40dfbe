"""Marinova schema: users and their append-only usage log.

Written for SQLite; the Postgres DDL is derived by a few regex rewrites.
Timestamps are ISO-8601 UTC TEXT ending in Z, so they sort lexicographically.
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Users / Auth / Credits
-- Emails are stored normalized (trimmed + lower-cased), so UNIQUE is case-insensitive in practice.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    full_name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    is_email_verified INTEGER NOT NULL DEFAULT 0,
    verification_token TEXT,
    subscription_status TEXT NOT NULL DEFAULT 'free'
        CHECK (subscription_status IN ('free','retail_india','international','enterprise')),
    usage_credits INTEGER NOT NULL DEFAULT 0 CHECK (usage_credits >= 0),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT,
    subscription_updated_at TEXT
);
-- NULLs never collide, so only outstanding tokens are unique.
CREATE UNIQUE INDEX IF NOT EXISTS idx_users_verification_token ON users (verification_token);
CREATE INDEX IF NOT EXISTS idx_users_subscription_status ON users (subscription_status);

-- Append-only feature usage log
CREATE TABLE IF NOT EXISTS usage_history (
    usage_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    feature TEXT NOT NULL,
    used_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(user_id)
);
CREATE INDEX IF NOT EXISTS idx_usage_history_user ON usage_history (user_id, usage_id);
"""


# (pattern, replacement) applied in order to derive the Postgres DDL.
_PG_REWRITES = (
    (r"^\s*PRAGMA [^\n]*\n", ""),
    (r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT", "BIGSERIAL PRIMARY KEY"),
    # FK columns must match BIGSERIAL.
    (r"\buser_id INTEGER NOT NULL", "user_id BIGINT NOT NULL"),
)


def _sqlite_to_postgres(ddl: str) -> str:
    out = ddl
    for pattern, repl in _PG_REWRITES:
        out = re.sub(pattern, repl, out, flags=re.IGNORECASE | re.MULTILINE)
    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
