"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer-token authentication.

The HTTP layer extracts the token from `Authorization: Bearer <token>` and
rejects a missing one before the core is ever invoked. A present token is
validated by the TokenService stored on app.state at startup.

get_bearer_token() is the extraction step (HTTP 401 "missing_token").
get_current_claims() wraps it and validates (HTTP 401 with the failure kind).

Layer rule: no imports from world/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import AccessClaims
from auth.tokens import TokenService

_BEARER_PREFIX = "Bearer "


def get_bearer_token(request: Request) -> str:
    """Return the raw bearer token or raise HTTP 401 if the header is missing or empty."""
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[len(_BEARER_PREFIX) :].strip() if auth_header.startswith(_BEARER_PREFIX) else ""
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "missing_token", "message": "Bearer token required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_current_claims(request: Request) -> AccessClaims:
    """Require a valid access token. Raises HTTP 401 carrying the failure kind.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: AccessClaims = Depends(get_current_claims)): ...
    """
    token = get_bearer_token(request)
    tokens: TokenService = request.app.state.token_service
    result = tokens.validate_access_token(token)
    if not result.ok:
        raise HTTPException(
            status_code=401,
            detail={"code": result.error.value, "message": result.message},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result.value
