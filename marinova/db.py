from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Sequence
from urllib.parse import urlparse

from marinova.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


# Columns added after the first release; (name, type) appended to `users` when missing.
USER_COLUMN_MIGRATIONS = (
    ("last_login_at", "TEXT"),
    ("subscription_updated_at", "TEXT"),
)

# Only one process at a time runs Postgres DDL.
_PG_SCHEMA_LOCK = 2147483646


def dialect_of(dsn: str) -> str:
    """'postgres' for postgres:// / postgresql:// URLs, otherwise 'sqlite'."""
    scheme = urlparse((dsn or "").strip()).scheme.lower()
    return "postgres" if scheme in ("postgres", "postgresql") else "sqlite"


# Single- or double-quoted SQL literals (with doubled-quote escapes).
_QUOTED = re.compile(r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")")


def _qmark_to_pct(sql: str) -> str:
    """Rewrite `?` placeholders as `%s` outside quoted literals."""
    parts = _QUOTED.split(sql)
    # Odd indexes are the quoted literals.
    return "".join(p if i % 2 else p.replace("?", "%s") for i, p in enumerate(parts))


class PostgresConnection:
    """sqlite3-shaped facade over psycopg2.

    Accepts qmark SQL and returns the driver cursor from `execute`, so crud code
    can call `.fetchone()`, `.fetchall()` and `.rowcount` on either engine.
    """

    def __init__(self, raw: Any):
        self.raw = raw

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        cur = self.raw.cursor()
        cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return cur

    def commit(self) -> None:
        self.raw.commit()

    def rollback(self) -> None:
        self.raw.rollback()

    def close(self) -> None:
        self.raw.close()


def _open_postgres(dsn: str) -> PostgresConnection:
    try:
        import psycopg2
        import psycopg2.extras
    except ImportError as e:
        raise RuntimeError("Postgres DSN given but psycopg2 is missing; install marinova[postgres]") from e
    return PostgresConnection(psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor))


def _open_sqlite(dsn: str) -> sqlite3.Connection:
    path = dsn[len("sqlite:///") :] if dsn.lower().startswith("sqlite:///") else dsn
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    for pragma in ("journal_mode=WAL", "synchronous=NORMAL", "busy_timeout=5000", "foreign_keys=ON"):
        conn.execute(f"PRAGMA {pragma};")
    return conn


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """One transaction on SQLite or Postgres: commit on clean exit, rollback on any exception.

    Rows support `row["column"]` on both engines (sqlite3.Row / RealDictCursor).
    """
    dsn = (db_dsn or "").strip()
    conn: Any = _open_postgres(dsn) if dialect_of(dsn) == "postgres" else _open_sqlite(dsn)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _run_ddl(conn: Any, ddl: str, dialect: str) -> None:
    if dialect == "sqlite":
        conn.executescript(ddl)
        return
    conn.execute("SELECT pg_advisory_lock(?)", (_PG_SCHEMA_LOCK,))
    try:
        for stmt in (s.strip() for s in ddl.split(";")):
            if stmt:
                conn.execute(stmt)
    finally:
        conn.execute("SELECT pg_advisory_unlock(?)", (_PG_SCHEMA_LOCK,))


def _user_columns(conn: Any, dialect: str) -> List[str]:
    if dialect == "sqlite":
        return [str(r["name"]) for r in conn.execute("PRAGMA table_info(users)").fetchall()]
    rows = conn.execute(
        "SELECT column_name FROM information_schema.columns WHERE table_schema='public' AND table_name='users'"
    ).fetchall()
    return [str(r["column_name"]) for r in rows]


def init_db(db_dsn: str) -> None:
    """Create tables if missing, then add any columns older databases lack."""
    dialect = dialect_of(db_dsn)
    _debug(f"Initializing {dialect} store at {db_dsn}")
    with connect(db_dsn) as conn:
        _run_ddl(conn, get_schema_sql(dialect), dialect)
        existing = _user_columns(conn, dialect)
        for name, ctype in USER_COLUMN_MIGRATIONS:
            if name not in existing:
                _debug(f"Migrating: users.{name}")
                conn.execute(f"ALTER TABLE users ADD COLUMN {name} {ctype}")


class Store:
    """Explicitly managed handle on the credential store.

    Built once by the process entry point and handed to every service, so
    tests can point services at a throwaway SQLite file.
    """

    def __init__(self, db_dsn: str):
        self.db_dsn = db_dsn
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "Store":
        init_db(self.db_dsn)
        self._open = True
        return self

    def close(self) -> None:
        self._open = False

    @contextmanager
    def session(self) -> Iterator[Any]:
        """One transaction; every user mutation happens inside exactly one."""
        if not self._open:
            raise RuntimeError("store_not_open")
        with connect(self.db_dsn) as conn:
            yield conn
