"""
world/membership.py -- Tenant membership: who holds which role in which world.

Invariants:
  Unique membership -- one role per (user, world). Held by UNIQUE(user_id,
      world_id); a duplicate add returns ALREADY_MEMBER instead of raising.
  Protected admin -- an ADMIN membership cannot be removed on its own. A
      caller claiming to remove an ADMIN is refused before the store is
      touched; a caller claiming another role for a user who is actually
      ADMIN is refused too. An ADMIN cannot be downgraded either, since a
      downgrade followed by a removal would get round the rule. Deleting
      the world is the only way out.

Lookup order for add/update is fixed: validate fields, resolve the user by
email, then the role by name. A request with both wrong reports
USER_NOT_FOUND.

Each operation's reads and writes share one transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from core.db import is_foreign_key_violation, is_unique_violation
from core.results import ErrorKind, Result, backend_guard
from world.models import ADMIN_ROLE, Membership, World, normalize_role_name
from world.store import WorldStore

logger = logging.getLogger("worldkeeper.world")


class TenantMembershipManager:
    def __init__(self, store: WorldStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    @backend_guard("add_member")
    def add_member(self, world_id: int, email: str, role_name: str) -> Result[Membership]:
        if not email or not role_name:
            return Result.failure(ErrorKind.INVALID_INPUT, "Email and role name cannot be empty.")
        role_name = normalize_role_name(role_name)
        try:
            with self.store.transaction() as conn:
                user_id = self.store.find_user_id(conn, email)
                if user_id is None:
                    return Result.failure(ErrorKind.USER_NOT_FOUND, f"Can't find user with email: {email}")
                role_id = self.store.find_role_id(conn, role_name)
                if role_id is None:
                    return Result.failure(ErrorKind.ROLE_NOT_FOUND, f"Can't find role with name: {role_name}")
                self.store.insert_membership(conn, user_id, world_id, role_id)
        except IntegrityError as exc:
            if is_unique_violation(exc):
                return Result.failure(ErrorKind.ALREADY_MEMBER, "User is already in the world.")
            if is_foreign_key_violation(exc):
                return self._missing_parent(world_id, email)
            raise
        logger.info("Added user_id=%s to world_id=%s as %s", user_id, world_id, role_name)
        return Result.success(Membership(world_id=world_id, email=email, role_name=role_name))

    def _missing_parent(self, world_id: int, email: str) -> Result[Membership]:
        """Name the side of a failed membership foreign key: the world, or a user deleted meanwhile."""
        with self.store.read() as conn:
            world_exists = self.store.get_world(conn, world_id) is not None
        if world_exists:
            return Result.failure(ErrorKind.USER_NOT_FOUND, f"Can't find user with email: {email}")
        return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Can't find world with ID: {world_id}")

    @backend_guard("update_role")
    def update_role(self, world_id: int, email: str, new_role_name: str) -> Result[Membership]:
        if not email or not new_role_name:
            return Result.failure(ErrorKind.INVALID_INPUT, "Email and role name cannot be empty.")
        new_role_name = normalize_role_name(new_role_name)
        with self.store.transaction() as conn:
            user_id = self.store.find_user_id(conn, email)
            if user_id is None:
                return Result.failure(ErrorKind.USER_NOT_FOUND, f"Can't find user with email: {email}")
            role_id = self.store.find_role_id(conn, new_role_name)
            if role_id is None:
                return Result.failure(ErrorKind.ROLE_NOT_FOUND, f"Can't find role with name: {new_role_name}")
            current_role = self.store.get_membership_role(conn, user_id, world_id)
            if current_role is None:
                return Result.failure(
                    ErrorKind.MEMBERSHIP_NOT_FOUND, f"User {email} is not a member of world {world_id}."
                )
            if current_role == ADMIN_ROLE and new_role_name != ADMIN_ROLE:
                return Result.failure(
                    ErrorKind.CANNOT_REMOVE_ADMIN, "Can't downgrade an admin unless you delete the world."
                )
            self.store.update_membership_role(conn, user_id, world_id, role_id)
        logger.info("Changed role of user_id=%s in world_id=%s to %s", user_id, world_id, new_role_name)
        return Result.success(Membership(world_id=world_id, email=email, role_name=new_role_name))

    @backend_guard("remove_member")
    def remove_member(self, world_id: int, email: str, role_name: str) -> Result[bool]:
        """Remove a user from a world. Success(False) means the user was not a member.

        role_name is the role the caller claims is being removed. ADMIN is
        refused unconditionally, whatever the other arguments are.
        """
        if role_name and normalize_role_name(role_name) == ADMIN_ROLE:
            return Result.failure(
                ErrorKind.CANNOT_REMOVE_ADMIN, "Can't remove an admin unless you delete the world."
            )
        if not email:
            return Result.failure(ErrorKind.INVALID_INPUT, "Email cannot be empty.")
        with self.store.transaction() as conn:
            user_id = self.store.find_user_id(conn, email)
            if user_id is None:
                return Result.failure(ErrorKind.USER_NOT_FOUND, f"Can't find user with email: {email}")
            if self.store.get_membership_role(conn, user_id, world_id) == ADMIN_ROLE:
                return Result.failure(
                    ErrorKind.CANNOT_REMOVE_ADMIN, "Can't remove an admin unless you delete the world."
                )
            removed = self.store.delete_membership(conn, user_id, world_id)
        if removed:
            logger.info("Removed user_id=%s from world_id=%s", user_id, world_id)
        return Result.success(removed)

    @backend_guard("list_members")
    def list_members(self, world_id: int) -> Result[list[Membership]]:
        with self.store.read() as conn:
            if self.store.get_world(conn, world_id) is None:
                return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Can't find world with ID: {world_id}")
            return Result.success(self.store.list_members(conn, world_id))

    # ------------------------------------------------------------------
    # Worlds
    # ------------------------------------------------------------------

    @backend_guard("create_world")
    def create_world(self, name: str, seed: Optional[str] = None, admin_email: Optional[str] = None) -> Result[World]:
        """Create a world, optionally making *admin_email* its ADMIN in the same transaction."""
        if not name:
            return Result.failure(ErrorKind.INVALID_INPUT, "Name must not be empty.")
        with self.store.transaction() as conn:
            admin_id = None
            if admin_email:
                admin_id = self.store.find_user_id(conn, admin_email)
                if admin_id is None:
                    return Result.failure(ErrorKind.USER_NOT_FOUND, f"Can't find user with email: {admin_email}")
            world_id = self.store.insert_world(conn, World(name=name, seed=seed or None))
            if admin_id is not None:
                self.store.insert_membership(conn, admin_id, world_id, self.store.find_role_id(conn, ADMIN_ROLE))
            world = self.store.get_world(conn, world_id)
        logger.info("Created world_id=%s", world_id)
        return Result.success(world)

    @backend_guard("get_world")
    def get_world(self, world_id: int) -> Result[World]:
        with self.store.read() as conn:
            world = self.store.get_world(conn, world_id)
        if world is None:
            return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Can't find world with ID: {world_id}")
        return Result.success(world)

    @backend_guard("update_world")
    def update_world(self, world_id: int, name: Optional[str] = None, seed: Optional[str] = None) -> Result[World]:
        """Partial update: only non-empty arguments are written. last_updated is refreshed."""
        fields = {key: value for key, value in (("name", name), ("seed", seed)) if value}
        if not fields:
            return Result.failure(ErrorKind.INVALID_INPUT, "No fields to update.")
        with self.store.transaction() as conn:
            if not self.store.update_world(conn, world_id, **fields):
                return Result.failure(ErrorKind.WORLD_NOT_FOUND, f"Can't find world with ID: {world_id}")
            world = self.store.get_world(conn, world_id)
        return Result.success(world)

    @backend_guard("delete_world")
    def delete_world(self, world_id: int) -> Result[bool]:
        """Delete a world with all its memberships and coordinates, atomically.

        Success(False) means there was no such world. Once this returns
        Success(True) no membership or coordinate of the world is visible.
        """
        with self.store.transaction() as conn:
            deleted = self.store.delete_world(conn, world_id)
        if deleted:
            logger.info("Deleted world_id=%s", world_id)
        return Result.success(deleted)
