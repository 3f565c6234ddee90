"""Tests for world/coordinates.py -- the per-world coordinate namespace.

Covers:
- add_coordinate: required fields (0 is valid), already-exists, unknown world,
  last_updated refreshed
- Two concurrent adds of the same name: exactly one success
- rename_or_update_coordinate: partial update, rename to own name is a no-op,
  duplicate name, not found
- delete_coordinate
"""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import update

from core.results import ErrorKind
from world.coordinates import CoordinateManager
from world.membership import TenantMembershipManager
from world.models import CoordinateData, CoordinatePatch, World
from world.store import WorldStore, worlds

_OLD_STAMP = "2000-01-01T00:00:00+00:00"


@pytest.fixture
def world(memberships: TenantMembershipManager) -> World:
    return memberships.create_world("Survival").value


def _age_world(store: WorldStore, world_id: int) -> None:
    """Push last_updated into the past so a touch is observable."""
    with store.transaction() as conn:
        conn.execute(update(worlds).where(worlds.c.id == world_id).values(last_updated=_OLD_STAMP))


def _last_updated(store: WorldStore, world_id: int) -> str:
    with store.read() as conn:
        return store.get_world(conn, world_id).last_updated


class TestAddCoordinate:
    def test_adds_coordinate(self, coordinates: CoordinateManager, world: World) -> None:
        result = coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=100, y=64))
        assert result.ok
        assert result.value.id is not None
        stored = coordinates.get_coordinate(world.id, "Base").value
        assert (stored.x, stored.y, stored.z, stored.description) == (100, 64, None, None)

    def test_optional_fields_kept(self, coordinates: CoordinateManager, world: World) -> None:
        data = CoordinateData(name="Portal", x=-8, y=70, z=12, description="Nether portal")
        coordinates.add_coordinate(world.id, data)
        stored = coordinates.get_coordinate(world.id, "Portal").value
        assert stored.z == 12
        assert stored.description == "Nether portal"

    def test_zero_is_a_valid_coordinate(self, coordinates: CoordinateManager, world: World) -> None:
        assert coordinates.add_coordinate(world.id, CoordinateData(name="Spawn", x=0, y=0)).ok

    @pytest.mark.parametrize(
        "data",
        [
            CoordinateData(x=1, y=2),
            CoordinateData(name="", x=1, y=2),
            CoordinateData(name="A", y=2),
            CoordinateData(name="A", x=1),
            CoordinateData(name="A", x="", y=2),
        ],
    )
    def test_missing_required_field(self, coordinates: CoordinateManager, world: World, data) -> None:
        assert coordinates.add_coordinate(world.id, data).error == ErrorKind.INVALID_INPUT

    def test_duplicate_name_already_exists(self, coordinates: CoordinateManager, world: World) -> None:
        coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=1, y=2))
        result = coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=5, y=6))
        assert result.error == ErrorKind.ALREADY_EXISTS
        assert coordinates.get_coordinate(world.id, "Base").value.x == 1

    def test_same_name_in_other_world_is_fine(
        self, coordinates: CoordinateManager, memberships: TenantMembershipManager, world: World
    ) -> None:
        other = memberships.create_world("Creative").value
        coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=1, y=2))
        assert coordinates.add_coordinate(other.id, CoordinateData(name="Base", x=1, y=2)).ok

    def test_unknown_world(self, coordinates: CoordinateManager) -> None:
        result = coordinates.add_coordinate(9999, CoordinateData(name="Base", x=1, y=2))
        assert result.error == ErrorKind.WORLD_NOT_FOUND

    def test_touches_world(self, coordinates: CoordinateManager, world_store: WorldStore, world: World) -> None:
        _age_world(world_store, world.id)
        coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=1, y=2))
        assert _last_updated(world_store, world.id) > _OLD_STAMP


class TestConcurrentAdd:
    def test_same_name_twice_yields_one_success(self, coordinates: CoordinateManager, world: World) -> None:
        """Both threads start together; the UNIQUE constraint lets exactly one insert through."""
        barrier = threading.Barrier(2)
        results = []
        lock = threading.Lock()

        def add(x: int) -> None:
            barrier.wait()
            result = coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=x, y=64))
            with lock:
                results.append(result)

        threads = [threading.Thread(target=add, args=(x,)) for x in (1, 2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        kinds = sorted(r.error.value if r.error else "ok" for r in results)
        assert kinds == ["already_exists", "ok"]
        assert len(coordinates.list_coordinates(world.id).value) == 1


class TestRenameOrUpdate:
    @pytest.fixture(autouse=True)
    def _base(self, coordinates: CoordinateManager, world: World) -> None:
        coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=100, y=64, z=-30, description="Home"))

    def test_partial_update_leaves_other_fields(self, coordinates: CoordinateManager, world: World) -> None:
        result = coordinates.rename_or_update_coordinate(world.id, "Base", CoordinatePatch(y=70))
        assert result.ok
        assert (result.value.x, result.value.y, result.value.z) == (100, 70, -30)
        assert result.value.description == "Home"

    def test_rename(self, coordinates: CoordinateManager, world: World) -> None:
        result = coordinates.rename_or_update_coordinate(world.id, "Base", CoordinatePatch(name="Home Base"))
        assert result.value.name == "Home Base"
        assert coordinates.get_coordinate(world.id, "Base").error == ErrorKind.COORDINATE_NOT_FOUND

    def test_rename_to_own_name_is_noop(self, coordinates: CoordinateManager, world: World) -> None:
        result = coordinates.rename_or_update_coordinate(world.id, "Base", CoordinatePatch(name="Base"))
        assert result.ok
        assert result.value.name == "Base"
        assert result.value.x == 100

    def test_rename_onto_taken_name(self, coordinates: CoordinateManager, world: World) -> None:
        coordinates.add_coordinate(world.id, CoordinateData(name="Farm", x=1, y=2))
        result = coordinates.rename_or_update_coordinate(world.id, "Base", CoordinatePatch(name="Farm"))
        assert result.error == ErrorKind.DUPLICATE_NAME
        assert coordinates.get_coordinate(world.id, "Base").ok

    def test_unknown_coordinate(self, coordinates: CoordinateManager, world: World) -> None:
        result = coordinates.rename_or_update_coordinate(world.id, "Nowhere", CoordinatePatch(x=1))
        assert result.error == ErrorKind.COORDINATE_NOT_FOUND

    def test_unknown_world(self, coordinates: CoordinateManager) -> None:
        result = coordinates.rename_or_update_coordinate(9999, "Base", CoordinatePatch(x=1))
        assert result.error == ErrorKind.WORLD_NOT_FOUND

    def test_empty_patch(self, coordinates: CoordinateManager, world: World) -> None:
        result = coordinates.rename_or_update_coordinate(world.id, "Base", CoordinatePatch(name=""))
        assert result.error == ErrorKind.INVALID_INPUT

    def test_touches_world(self, coordinates: CoordinateManager, world_store: WorldStore, world: World) -> None:
        _age_world(world_store, world.id)
        coordinates.rename_or_update_coordinate(world.id, "Base", CoordinatePatch(x=0))
        assert _last_updated(world_store, world.id) > _OLD_STAMP
        assert coordinates.get_coordinate(world.id, "Base").value.x == 0


class TestDeleteCoordinate:
    def test_delete(self, coordinates: CoordinateManager, world_store: WorldStore, world: World) -> None:
        coordinates.add_coordinate(world.id, CoordinateData(name="Base", x=1, y=2))
        _age_world(world_store, world.id)
        result = coordinates.delete_coordinate(world.id, "Base")
        assert result.ok
        assert result.value is True
        assert coordinates.list_coordinates(world.id).value == []
        assert _last_updated(world_store, world.id) > _OLD_STAMP

    def test_missing(self, coordinates: CoordinateManager, world: World) -> None:
        assert coordinates.delete_coordinate(world.id, "Nowhere").error == ErrorKind.COORDINATE_NOT_FOUND

    def test_list_unknown_world(self, coordinates: CoordinateManager) -> None:
        assert coordinates.list_coordinates(9999).error == ErrorKind.WORLD_NOT_FOUND
