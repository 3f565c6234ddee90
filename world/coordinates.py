"""
world/coordinates.py -- Named coordinates inside a world.

A coordinate name is unique per world. UNIQUE(world_id, name) is the
authority: add_coordinate does no pre-check at all, so two concurrent adds
with the same name end with one success and one ALREADY_EXISTS. Renames do
pre-check (for a clean DUPLICATE_NAME) and still map a constraint conflict at
write time to the same kind.

Every successful mutation refreshes the owning world's last_updated in the
same transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from core.db import is_foreign_key_violation, is_unique_violation
from core.results import ErrorKind, Result, backend_guard
from world.models import Coordinate, CoordinateData, CoordinatePatch
from world.store import WorldStore

logger = logging.getLogger("worldkeeper.world")


def _missing(value) -> bool:
    # 0 is a valid coordinate; only None and "" count as absent.
    return value is None or value == ""


class CoordinateManager:
    def __init__(self, store: WorldStore) -> None:
        self.store = store

    @backend_guard("add_coordinate")
    def add_coordinate(self, world_id: int, data: CoordinateData) -> Result[Coordinate]:
        if _missing(data.name) or _missing(data.x) or _missing(data.y):
            return Result.failure(ErrorKind.INVALID_INPUT, "Name, x and y must not be empty.")
        coord = Coordinate(
            world_id=world_id,
            name=data.name,
            x=data.x,
            y=data.y,
            z=None if _missing(data.z) else data.z,
            description=data.description or None,
        )
        try:
            with self.store.transaction() as conn:
                coord.id = self.store.insert_coordinate(conn, coord)
                self.store.touch_world(conn, world_id)
        except IntegrityError as exc:
            if is_unique_violation(exc):
                return Result.failure(ErrorKind.ALREADY_EXISTS, f"Coords already exist with name: {data.name}")
            if is_foreign_key_violation(exc):
                return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Couldn't find world with ID: {world_id}")
            raise
        logger.info("Added coordinate id=%s to world_id=%s", coord.id, world_id)
        return Result.success(coord)

    @backend_guard("rename_or_update_coordinate")
    def rename_or_update_coordinate(
        self, world_id: int, current_name: str, patch: CoordinatePatch
    ) -> Result[Coordinate]:
        """Apply only the fields present in *patch* to the coordinate called *current_name*.

        Renaming a coordinate to its own current name is a plain update, not
        a DUPLICATE_NAME.
        """
        changes = patch.changes()
        if not changes:
            return Result.failure(ErrorKind.INVALID_INPUT, "No fields to update.")
        try:
            with self.store.transaction() as conn:
                if self.store.get_world(conn, world_id) is None:
                    return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Couldn't find world with ID: {world_id}")
                existing = self.store.get_coordinate(conn, world_id, current_name)
                if existing is None:
                    return Result.failure(
                        ErrorKind.COORDINATE_NOT_FOUND, f"Couldn't find coordinates with name: {current_name}"
                    )
                new_name = changes.get("name", existing.name)
                if new_name != existing.name and self.store.get_coordinate(conn, world_id, new_name) is not None:
                    return Result.failure(ErrorKind.DUPLICATE_NAME, f"Name already taken in world: {new_name}")
                self.store.update_coordinate(conn, existing.id, **changes)
                self.store.touch_world(conn, world_id)
                updated = self.store.get_coordinate(conn, world_id, new_name)
        except IntegrityError as exc:
            if is_unique_violation(exc):
                return Result.failure(ErrorKind.DUPLICATE_NAME, f"Name already taken in world: {changes.get('name')}")
            raise
        return Result.success(updated)

    @backend_guard("delete_coordinate")
    def delete_coordinate(self, world_id: int, name: str) -> Result[bool]:
        with self.store.transaction() as conn:
            existing = self.store.get_coordinate(conn, world_id, name)
            if existing is None:
                return Result.failure(ErrorKind.COORDINATE_NOT_FOUND, f"Couldn't find coordinates with name: {name}")
            deleted = self.store.delete_coordinate(conn, existing.id)
            self.store.touch_world(conn, world_id)
        return Result.success(deleted)

    @backend_guard("get_coordinate")
    def get_coordinate(self, world_id: int, name: str) -> Result[Coordinate]:
        with self.store.read() as conn:
            coord = self.store.get_coordinate(conn, world_id, name)
        if coord is None:
            return Result.failure(ErrorKind.COORDINATE_NOT_FOUND, f"Couldn't find coordinates with name: {name}")
        return Result.success(coord)

    @backend_guard("list_coordinates")
    def list_coordinates(self, world_id: int) -> Result[list[Coordinate]]:
        with self.store.read() as conn:
            if self.store.get_world(conn, world_id) is None:
                return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Couldn't find world with ID: {world_id}")
            return Result.success(self.store.list_coordinates(conn, world_id))
