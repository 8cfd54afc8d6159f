"""
auth/store.py -- Credential store: the narrow interface the auth core consumes
and its SQLAlchemy Core implementation.

Pattern: Repository + Data Mapper.
CredentialStore is the interface (typing.Protocol); UserStore is the
repository; _row_to_principal is the mapper. Service and route code never
touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  find_one() accepts only the predicate shapes the auth core needs
  ({username}, {id}, {id, renewal_token}). Any other key is a programming
  error and raises ValueError before a query is built.

Failure mapping:
  OperationalError (database unreachable, locked, timed out) -> StoreUnavailable.
  IntegrityError on insert (UNIQUE(username))               -> Conflict.
  Both are raised with the original exception chained for the logs.

Concurrency:
  No locks. Concurrent writes to renewal_token resolve last-write-wins at the
  database.

DB path: auth/gatehouse_auth.db unless DATABASE_URL says otherwise.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import Column, MetaData, String, Table, Text, and_, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

from auth.errors import Conflict, StoreUnavailable
from auth.models import Principal

logger = logging.getLogger("gatehouse.store")

# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class CredentialStore(Protocol):
    """What AuthService needs from a principal store. Nothing more."""

    def find_one(self, **predicate: Any) -> Principal | None: ...

    def create(self, **fields: Any) -> Principal: ...

    def update(self, principal_id: str, **fields: Any) -> Principal | None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("nickname", String(255), nullable=False, server_default=""),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("renewal_token", Text),  # NULL = no live session
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_PREDICATE_KEYS = frozenset({"username", "id", "renewal_token"})
_CREATE_FIELDS = frozenset({"username", "hashed_password", "nickname", "role"})
_UPDATE_FIELDS = frozenset({"nickname", "role", "renewal_token", "hashed_password"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """SQLAlchemy Core implementation of CredentialStore.

    Usage:
        store = UserStore("sqlite:///auth.db")
        principal = store.create(username="alice", hashed_password=hash_password("s3cret"), role="user")
        store.find_one(username="alice")
        store.update(principal.id, renewal_token=None)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # CredentialStore
    # ------------------------------------------------------------------

    def find_one(self, **predicate: Any) -> Principal | None:
        """Return the principal matching every key in predicate, or None.

        Allowed keys: username, id, renewal_token. A renewal_token of None
        never matches -- a cleared slot cannot be "presented".
        """
        if not predicate:
            raise ValueError("find_one() requires at least one predicate key")
        unknown = set(predicate) - _PREDICATE_KEYS
        if unknown:
            raise ValueError(f"Unsupported predicate keys: {unknown!r}")
        if "renewal_token" in predicate and predicate["renewal_token"] is None:
            return None

        clause = and_(*(_users.c[key] == value for key, value in predicate.items()))
        try:
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(clause)).fetchone()
        except OperationalError as exc:
            logger.error("Credential store read failed: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc
        return _row_to_principal(row) if row is not None else None

    def create(self, **fields: Any) -> Principal:
        """Insert a new principal and return it as stored.

        Raises Conflict if the username is already taken. The UNIQUE
        constraint makes this the atomic backstop for the service's
        check-then-create in sign_up().
        """
        unknown = set(fields) - _CREATE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported create fields: {unknown!r}")
        now = _now_iso()
        values = {
            "id": uuid.uuid4().hex,
            "nickname": "",
            **fields,
            "created_at": now,
            "updated_at": now,
        }
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.insert().values(**values))
                conn.commit()
        except IntegrityError as exc:
            raise Conflict() from exc
        except OperationalError as exc:
            logger.error("Credential store write failed: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc
        return Principal(
            id=values["id"],
            username=values["username"],
            hashed_password=values["hashed_password"],
            nickname=values["nickname"],
            role=values["role"],
            renewal_token=None,
            created_at=now,
            updated_at=now,
        )

    def update(self, principal_id: str, **fields: Any) -> Principal | None:
        """Apply a partial update and return the updated principal.

        Accepted fields: nickname, role, renewal_token, hashed_password.
        Returns None if principal_id was not found.
        """
        unknown = set(fields) - _UPDATE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported update fields: {unknown!r}")
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.update().where(_users.c.id == principal_id).values(**fields, updated_at=_now_iso())
                )
                conn.commit()
                if result.rowcount == 0:
                    return None
                row = conn.execute(_users.select().where(_users.c.id == principal_id)).fetchone()
        except OperationalError as exc:
            logger.error("Credential store write failed: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc
        return _row_to_principal(row) if row is not None else None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def count(self) -> int:
        """Return the number of stored principals. Used by the health check."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(select(func.count()).select_from(_users)).scalar()
        except OperationalError as exc:
            raise StoreUnavailable() from exc
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        nickname=row.nickname,
        role=row.role,
        renewal_token=row.renewal_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
