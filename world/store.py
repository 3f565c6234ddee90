"""
world/store.py -- SQLAlchemy Core persistence for worlds, memberships and coordinates.

Pattern: Repository + Data Mapper, like auth/store.py. The difference is
that the managers need several reads and writes to commit or roll back
together, so most methods take an open connection:

    with store.transaction() as conn:
        user_id = store.find_user_id(conn, email)
        role_id = store.find_role_id(conn, role_name)
        store.insert_membership(conn, user_id, world_id, role_id)

transaction() is a write transaction (BEGIN IMMEDIATE on SQLite, see
core/db.py): the lock is held from the first read, so a manager's checks
and the writes they guard are atomic. Commit on normal exit, rollback if the
block raises. Reads that need no atomicity use read() instead.

Invariants held by constraints (the authoritative signal -- pre-checks in the
managers are advisory):
  UNIQUE(user_id, world_id) on user_world_roles -- one role per user per world.
  UNIQUE(world_id, name) on world_coords         -- per-world coordinate names.
  FOREIGN KEY world_id ... ON DELETE CASCADE     -- insert into a missing world
                                                    fails; world delete cascades.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: may import from auth/ (the users table) and core/.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    select,
)
from sqlalchemy.engine import Connection, Engine

from auth.store import metadata, users
from core.db import create_store_engine, now_iso, write_engine
from world.models import DEFAULT_ROLES, Coordinate, Membership, Role, World, normalize_role_name

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

worlds = Table(
    "worlds",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("seed", String(255)),
    Column("created_at", String(32), nullable=False),
    Column("last_updated", String(32), nullable=False),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
)

user_world_roles = Table(
    "user_world_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("world_id", Integer, ForeignKey("worlds.id", ondelete="CASCADE"), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    UniqueConstraint("user_id", "world_id", name="uq_user_world"),
)

world_coords = Table(
    "world_coords",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("world_id", Integer, ForeignKey("worlds.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("x", Float, nullable=False),
    Column("y", Float, nullable=False),
    Column("z", Float),
    Column("description", Text),
    UniqueConstraint("world_id", "name", name="uq_world_coord_name"),
)

_MUTABLE_WORLD_FIELDS = {"name", "seed"}
_MUTABLE_COORD_FIELDS = {"name", "x", "y", "z", "description"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class WorldStore:
    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        self._writer: Engine = write_engine(self.engine)
        metadata.create_all(self.engine)
        self._ensure_roles()

    def _ensure_roles(self) -> None:
        """Seed the role catalog. Idempotent -- safe to call on every startup."""
        with self._writer.begin() as conn:
            existing = set(conn.execute(select(roles.c.name)).scalars())
            missing = [name for name in DEFAULT_ROLES if name not in existing]
            if missing:
                conn.execute(roles.insert(), [{"name": name} for name in missing])

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside one transaction; commit on exit, roll back on error."""
        with self._writer.begin() as conn:
            yield conn

    @contextmanager
    def read(self) -> Iterator[Connection]:
        with self.engine.connect() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Lookups shared by both managers
    # ------------------------------------------------------------------

    def find_user_id(self, conn: Connection, email: str) -> Optional[int]:
        return conn.execute(select(users.c.id).where(users.c.email == email)).scalar()

    def find_role_id(self, conn: Connection, role_name: str) -> Optional[int]:
        return conn.execute(select(roles.c.id).where(roles.c.name == normalize_role_name(role_name))).scalar()

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(roles.select().order_by(roles.c.id)).fetchall()
        return [Role(id=r.id, name=r.name) for r in rows]

    # ------------------------------------------------------------------
    # Worlds
    # ------------------------------------------------------------------

    def insert_world(self, conn: Connection, world: World) -> int:
        now = now_iso()
        result = conn.execute(worlds.insert().values(name=world.name, seed=world.seed, created_at=now, last_updated=now))
        return result.inserted_primary_key[0]

    def get_world(self, conn: Connection, world_id: int) -> Optional[World]:
        row = conn.execute(worlds.select().where(worlds.c.id == world_id)).fetchone()
        return _row_to_world(row) if row is not None else None

    def update_world(self, conn: Connection, world_id: int, **fields) -> bool:
        """Update name/seed and refresh last_updated. Returns False if the world does not exist."""
        unknown = set(fields) - _MUTABLE_WORLD_FIELDS
        if unknown:
            raise ValueError(f"Unknown world fields: {unknown!r}")
        result = conn.execute(worlds.update().where(worlds.c.id == world_id).values(last_updated=now_iso(), **fields))
        return result.rowcount > 0

    def touch_world(self, conn: Connection, world_id: int) -> bool:
        """Stamp last_updated on a world after one of its coordinates changes."""
        return self.update_world(conn, world_id)

    def delete_world(self, conn: Connection, world_id: int) -> bool:
        """Delete a world and everything it owns. Returns False if it did not exist.

        The FKs cascade too; the explicit deletes keep the guarantee on a
        backend where foreign-key enforcement is off.
        """
        conn.execute(world_coords.delete().where(world_coords.c.world_id == world_id))
        conn.execute(user_world_roles.delete().where(user_world_roles.c.world_id == world_id))
        result = conn.execute(worlds.delete().where(worlds.c.id == world_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def insert_membership(self, conn: Connection, user_id: int, world_id: int, role_id: int) -> None:
        """Raises IntegrityError on a duplicate (user, world) pair or an unknown world."""
        conn.execute(user_world_roles.insert().values(user_id=user_id, world_id=world_id, role_id=role_id))

    def update_membership_role(self, conn: Connection, user_id: int, world_id: int, role_id: int) -> bool:
        result = conn.execute(
            user_world_roles.update()
            .where((user_world_roles.c.user_id == user_id) & (user_world_roles.c.world_id == world_id))
            .values(role_id=role_id)
        )
        return result.rowcount > 0

    def get_membership_role(self, conn: Connection, user_id: int, world_id: int) -> Optional[str]:
        return conn.execute(
            select(roles.c.name)
            .select_from(user_world_roles.join(roles, user_world_roles.c.role_id == roles.c.id))
            .where((user_world_roles.c.user_id == user_id) & (user_world_roles.c.world_id == world_id))
        ).scalar()

    def delete_membership(self, conn: Connection, user_id: int, world_id: int) -> bool:
        result = conn.execute(
            user_world_roles.delete().where(
                (user_world_roles.c.user_id == user_id) & (user_world_roles.c.world_id == world_id)
            )
        )
        return result.rowcount > 0

    def list_members(self, conn: Connection, world_id: int) -> list[Membership]:
        """Return every membership in a world, ordered by username."""
        rows = conn.execute(
            select(users.c.username, users.c.email, roles.c.name.label("role_name"))
            .select_from(
                user_world_roles.join(users, user_world_roles.c.user_id == users.c.id).join(
                    roles, user_world_roles.c.role_id == roles.c.id
                )
            )
            .where(user_world_roles.c.world_id == world_id)
            .order_by(users.c.username)
        ).fetchall()
        return [
            Membership(world_id=world_id, email=r.email, role_name=r.role_name, username=r.username) for r in rows
        ]

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def insert_coordinate(self, conn: Connection, coord: Coordinate) -> int:
        """Raises IntegrityError on a duplicate (world_id, name) or an unknown world."""
        result = conn.execute(
            world_coords.insert().values(
                world_id=coord.world_id,
                name=coord.name,
                x=coord.x,
                y=coord.y,
                z=coord.z,
                description=coord.description,
            )
        )
        return result.inserted_primary_key[0]

    def get_coordinate(self, conn: Connection, world_id: int, name: str) -> Optional[Coordinate]:
        row = conn.execute(
            world_coords.select().where((world_coords.c.world_id == world_id) & (world_coords.c.name == name))
        ).fetchone()
        return _row_to_coordinate(row) if row is not None else None

    def update_coordinate(self, conn: Connection, coord_id: int, **fields) -> bool:
        unknown = set(fields) - _MUTABLE_COORD_FIELDS
        if unknown:
            raise ValueError(f"Unknown coordinate fields: {unknown!r}")
        if not fields:
            return False
        result = conn.execute(world_coords.update().where(world_coords.c.id == coord_id).values(**fields))
        return result.rowcount > 0

    def delete_coordinate(self, conn: Connection, coord_id: int) -> bool:
        result = conn.execute(world_coords.delete().where(world_coords.c.id == coord_id))
        return result.rowcount > 0

    def list_coordinates(self, conn: Connection, world_id: int) -> list[Coordinate]:
        rows = conn.execute(
            world_coords.select().where(world_coords.c.world_id == world_id).order_by(world_coords.c.name)
        ).fetchall()
        return [_row_to_coordinate(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_world(row) -> World:
    return World(
        id=row.id,
        name=row.name,
        seed=row.seed,
        created_at=row.created_at,
        last_updated=row.last_updated,
    )


def _row_to_coordinate(row) -> Coordinate:
    return Coordinate(
        id=row.id,
        world_id=row.world_id,
        name=row.name,
        x=row.x,
        y=row.y,
        z=row.z,
        description=row.description,
    )
