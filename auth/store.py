"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper.
IdentityStore is the repository; _row_to_identity is the mapper.
Resolver, gate and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  UNIQUE(email) and UNIQUE(external_id) are enforced by the database. Emails
  are normalized to lowercase before every read and write, which makes the
  email constraint case-insensitive. SQL treats NULLs as distinct in UNIQUE
  constraints, so accounts that were never linked to Google do not collide
  on external_id.

  The store does not retry on IntegrityError. The resolver is the only writer
  and decides what a constraint violation means (duplicate registration vs. a
  lost upsert race).

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Identity, Provider, normalize_email

_DEFAULT_DB_URL = "sqlite:///loginbackend.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("display_name", String(255)),
    Column("password_hash", Text),  # NULL for Google-only accounts
    Column("provider", String(16), nullable=False),  # "LOCAL" or "GOOGLE"
    Column("external_id", String(255), unique=True),  # Google sub
    Column("enabled", Boolean, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_MUTABLE_FIELDS = {"email", "display_name", "password_hash", "provider", "external_id", "enabled"}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind writers.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity records.

    Usage:
        store = IdentityStore("sqlite:///loginbackend.db")
        uid = store.create_identity(Identity(email="a@x.com", provider=Provider.LOCAL, password_hash=h))
        identity = store.get_by_email("A@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email or external_id is
        already taken. Raises ValueError for a LOCAL identity without a
        password hash.
        """
        if identity.provider == Provider.LOCAL and not identity.password_hash:
            raise ValueError("LOCAL identities require a password hash")
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(identity.email),
                    display_name=identity.display_name,
                    password_hash=identity.password_hash,
                    provider=Provider(identity.provider).value,
                    external_id=identity.external_id,
                    enabled=identity.enabled,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def update_identity(self, identity_id: int, **fields) -> bool:
        """Update mutable fields on an existing identity and bump updated_at.

        Accepted fields: email, display_name, password_hash, provider,
        external_id, enabled. Returns True if a row was updated.

        Raises sqlalchemy.exc.IntegrityError on a uniqueness violation.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown identity fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        if "provider" in fields:
            fields["provider"] = Provider(fields["provider"]).value
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == identity_id).values(updated_at=_now_iso(), **fields)
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, identity_id: int) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an identity by email, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_external_id(self, external_id: str, provider: Provider = Provider.GOOGLE) -> Identity | None:
        """Look up an identity by (external_id, provider). Returns None if not linked."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.external_id == external_id) & (_users.c.provider == Provider(provider).value)
                )
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def count_identities(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /api/health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        password_hash=row.password_hash,
        provider=Provider(row.provider),
        external_id=row.external_id,
        enabled=bool(row.enabled),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
