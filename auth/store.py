"""
auth/store.py -- SQLAlchemy Core persistence layer for credentials and refresh tokens.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_credential is the mapper. Manager code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Refresh tokens are stored by value. A token is valid while its row exists;
  logout deletes the row.

Conventions:
  "Not found" is an explicit empty result (None / False / 0), never an error.
  Duplicate usernames, emails and tokens raise sqlalchemy.exc.IntegrityError
  from the UNIQUE constraints -- the caller decides what a conflict means.

The users table lives on the shared `metadata` so world/store.py can declare
foreign keys against it. Both stores must point at the same database.

Layer rule: no imports from world/.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import Credential, RefreshTokenRecord
from core.db import create_store_engine, now_iso, write_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(512), nullable=False, unique=True),
    Column("subject", String(255), nullable=False, index=True),  # email, not a FK
    Column("issued_at", String(32), nullable=False),
)

# Columns update() is allowed to touch. Anything else raises ValueError.
_MUTABLE_USER_FIELDS = {"username", "email", "password_hash"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Credential rows and the refresh-token set.

    Usage:
        store = CredentialStore("sqlite:///worldkeeper.db")
        uid = store.insert(Credential(username="alice", email="alice@x.com", password_hash=h))
        cred = store.find_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        self._writer: Engine = write_engine(self.engine)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def find_by_username(self, username: str) -> Credential | None:
        """Look up a credential by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.username == username)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def find_by_email(self, email: str) -> Credential | None:
        """Look up a credential by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def find_by_id(self, user_id: int) -> Credential | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_credential(row) if row is not None else None

    def insert(self, credential: Credential) -> int:
        """Insert a new credential and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers should treat that as the authoritative duplicate signal
        even when they pre-checked -- a concurrent registration can win the race.
        """
        with self._writer.begin() as conn:
            result = conn.execute(
                users.insert().values(
                    username=credential.username,
                    email=credential.email,
                    password_hash=credential.password_hash,
                    created_at=now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def update(self, user_id: int, **fields) -> bool:
        """Update mutable fields (username, email, password_hash) on a credential.

        Returns True if a row was updated, False if user_id was not found.
        Unknown field names raise ValueError rather than being ignored.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown credential fields: {unknown!r}")
        if not fields:
            return False
        with self._writer.begin() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(**fields))
        return result.rowcount > 0

    def delete(self, user_id: int) -> bool:
        """Permanently delete a credential. Memberships cascade. Returns False if not found.

        Refresh tokens are keyed by subject email, not by FK, so they are
        removed explicitly in the same transaction.
        """
        with self._writer.begin() as conn:
            email = conn.execute(select(users.c.email).where(users.c.id == user_id)).scalar()
            if email is None:
                return False
            conn.execute(refresh_tokens.delete().where(refresh_tokens.c.subject == email))
            result = conn.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def refresh_token_exists(self, token: str) -> bool:
        with self.engine.connect() as conn:
            found = conn.execute(select(refresh_tokens.c.id).where(refresh_tokens.c.token == token)).first()
        return found is not None

    def insert_refresh_token(self, token: str, subject: str) -> None:
        """Add a token to the valid set. Raises IntegrityError if the exact value is already present."""
        with self._writer.begin() as conn:
            conn.execute(refresh_tokens.insert().values(token=token, subject=subject, issued_at=now_iso()))

    def delete_refresh_token(self, token: str) -> int:
        """Remove a token by exact value. Returns the number of rows deleted (0 = not found)."""
        with self._writer.begin() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.token == token))
        return result.rowcount

    def delete_refresh_tokens_for(self, subject: str) -> int:
        """Revoke every refresh token issued to *subject*. Returns the number removed."""
        with self._writer.begin() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.subject == subject))
        return result.rowcount

    def list_refresh_tokens(self, subject: str) -> list[RefreshTokenRecord]:
        """Return the outstanding refresh tokens for *subject*, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                refresh_tokens.select().where(refresh_tokens.c.subject == subject).order_by(refresh_tokens.c.id)
            ).fetchall()
        return [RefreshTokenRecord(token=r.token, subject=r.subject, issued_at=r.issued_at) for r in rows]

    def count_refresh_tokens(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(refresh_tokens)).scalar() or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_credential(row) -> Credential:
    return Credential(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        created_at=row.created_at,
    )
