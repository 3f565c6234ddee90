"""
world/models.py -- Domain dataclasses for worlds, memberships and coordinates.

Pure data containers. The invariants (unique membership, protected admin,
unique coordinate names per world) are enforced by world/store.py's
constraints and the managers, not here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# The distinguished role. An ADMIN membership can only disappear with its world.
ADMIN_ROLE = "ADMIN"

# Closed role catalog, seeded by WorldStore at start-up.
DEFAULT_ROLES = (ADMIN_ROLE, "MEMBER", "VIEWER")


def normalize_role_name(name: str) -> str:
    return name.strip().upper()


@dataclass
class World:
    """A tenant. Owns memberships and coordinates.

    last_updated is refreshed on any change to the world or its coordinates.
    id is None before the record is written to the database.
    """

    name: str
    seed: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    last_updated: str = ""


@dataclass
class Role:
    id: int
    name: str


@dataclass
class Membership:
    """One user's single role within one world."""

    world_id: int
    email: str
    role_name: str
    username: Optional[str] = None


@dataclass
class Coordinate:
    """A named point inside a world. name is unique within the world, not globally."""

    world_id: int
    name: str
    x: float
    y: float
    z: Optional[float] = None
    description: Optional[str] = None
    id: Optional[int] = None


@dataclass
class CoordinateData:
    """Input for creating a coordinate.

    Every field is optional here so the manager can report a missing one as
    INVALID_INPUT instead of failing at construction.
    """

    name: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    description: Optional[str] = None


@dataclass
class CoordinatePatch:
    """Partial update for a coordinate. None or "" means "leave untouched"."""

    name: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    description: Optional[str] = None

    def changes(self) -> dict:
        return {
            key: value
            for key, value in (
                ("name", self.name),
                ("x", self.x),
                ("y", self.y),
                ("z", self.z),
                ("description", self.description),
            )
            if value is not None and value != ""
        }
