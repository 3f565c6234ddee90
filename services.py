"""
services.py -- Process start-up wiring for worldkeeper.

The HTTP layer calls build_services() once before serving its first request
and keeps the returned Services for the life of the process:

    services = build_services()
    app.state.token_service = services.tokens    # read by auth.dependencies
    ...
    services.close()

Start-up order matters:
  1. Settings -- validates and loads both signing keys (never re-read).
  2. Stores   -- CredentialStore first so the users table exists before
                 WorldStore declares foreign keys against it.
  3. Managers -- thin orchestration over the stores, no state of their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from auth.session import AuthSessionManager
from auth.store import CredentialStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from world.coordinates import CoordinateManager
from world.membership import TenantMembershipManager
from world.store import WorldStore

logger = logging.getLogger("worldkeeper.services")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@dataclass
class Services:
    settings: Settings
    credential_store: CredentialStore
    world_store: WorldStore
    tokens: TokenService
    sessions: AuthSessionManager
    memberships: TenantMembershipManager
    coordinates: CoordinateManager

    def close(self) -> None:
        self.world_store.close()
        self.credential_store.close()
        logger.info("worldkeeper services closed")


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    credential_store = CredentialStore(settings.database_url)
    world_store = WorldStore(settings.database_url)
    tokens = TokenService(
        access_secret=settings.access_token_secret,
        refresh_secret=settings.refresh_token_secret,
        access_ttl_seconds=settings.access_token_expire_seconds,
    )
    logger.info("worldkeeper services ready (access token ttl=%ss)", settings.access_token_expire_seconds)
    return Services(
        settings=settings,
        credential_store=credential_store,
        world_store=world_store,
        tokens=tokens,
        sessions=AuthSessionManager(credential_store, tokens, bcrypt_rounds=settings.bcrypt_rounds),
        memberships=TenantMembershipManager(world_store),
        coordinates=CoordinateManager(world_store),
    )
