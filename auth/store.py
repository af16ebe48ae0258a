"""
auth/store.py -- SQLAlchemy Core persistence layer for site users.

Pattern: Repository + Data Mapper.
SiteUserStore is the repository; _row_to_user is the mapper. Route, service
and CLI code never touch SQL directly.

Transactions:
  Every public method runs inside its own engine.begin() block, which commits
  when the block exits cleanly and rolls back when it raises. Each save or
  lookup is therefore an atomic single-record operation.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  username carries a UNIQUE constraint. save() lets the resulting
  sqlalchemy.exc.IntegrityError propagate; callers (POST /register, the CLI)
  catch it and report a conflict.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Authority, SiteUser

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_site_users = Table(
    "site_users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("email", String(255), nullable=False),
    Column("gender", Integer, nullable=False, server_default="0"),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("authority", String(10), nullable=False, server_default=Authority.USER.value),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SiteUserStore:
    """Repository for SiteUser records.

    Usage:
        store = SiteUserStore("sqlite:///siteuser.db")
        store.save(SiteUser(username="admin", password=hash_password("secret"), email="a@example.com"))
        user = store.find_by_username("admin")
        store.close()
    """

    def __init__(self, db_url: str, **engine_kwargs) -> None:
        """Open (and create if needed) the store at db_url.

        engine_kwargs are passed through to create_engine(), e.g. poolclass.
        """
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def save(self, user: SiteUser) -> SiteUser:
        """Insert a new user and return it with id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        The input object is not mutated.
        """
        created_at = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _site_users.insert().values(
                    username=user.username,
                    password=user.password,
                    email=user.email,
                    gender=user.gender,
                    is_admin=1 if user.is_admin else 0,
                    authority=Authority(user.authority).value,
                    created_at=created_at,
                )
            )
            new_id = result.inserted_primary_key[0]
        return SiteUser(
            id=new_id,
            username=user.username,
            password=user.password,
            email=user.email,
            gender=user.gender,
            is_admin=user.is_admin,
            authority=Authority(user.authority),
            created_at=created_at,
        )

    def find_by_username(self, username: str) -> SiteUser | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.begin() as conn:
            row = conn.execute(_site_users.select().where(_site_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_all(self) -> list[SiteUser]:
        """Return all users ordered by username. Admin-only operation."""
        with self.engine.begin() as conn:
            rows = conn.execute(_site_users.select().order_by(_site_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count(self) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(select(func.count()).select_from(_site_users)).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> SiteUser:
    return SiteUser(
        id=row.id,
        username=row.username,
        password=row.password,
        email=row.email,
        gender=row.gender,
        is_admin=bool(row.is_admin),
        authority=Authority(row.authority),
        created_at=row.created_at,
    )
