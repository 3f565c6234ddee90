"""
core/results.py -- Discriminated results returned by every manager operation.

Callers branch on Result.error (an ErrorKind), never on message text. The
message is for logs and humans only and may change between releases.

Expected outcomes (a missing user, a duplicate name, a protected admin) are
returned, not raised. Only collaborator faults -- the database going away,
a driver timeout -- are caught by backend_guard, logged with a traceback, and
turned into BACKEND_UNAVAILABLE.

Layer rule: core/ may not import from auth/ or world/.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("worldkeeper.core")

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    USER_NOT_FOUND = "user_not_found"
    ROLE_NOT_FOUND = "role_not_found"
    COORDINATE_NOT_FOUND = "coordinate_not_found"
    WORLD_NOT_FOUND = "world_not_found"
    MEMBERSHIP_NOT_FOUND = "membership_not_found"
    INCORRECT_PASSWORD = "incorrect_password"
    AUTH_BACKEND_ERROR = "auth_backend_error"
    INVALID_TOKEN = "invalid_token"
    TOKEN_VERIFICATION_FAILED = "token_verification_failed"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_BAD_SIGNATURE = "bad_signature"
    TOKEN_MALFORMED = "malformed_token"
    DUPLICATE_NAME = "duplicate_name"
    ALREADY_EXISTS = "already_exists"
    ALREADY_MEMBER = "already_member"
    DUPLICATE_USERNAME = "duplicate_username"
    DUPLICATE_EMAIL = "duplicate_email"
    CANNOT_REMOVE_ADMIN = "cannot_remove_admin"
    BACKEND_UNAVAILABLE = "backend_unavailable"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Success payload or a single failure kind, never both.

    A successful Result may still carry a falsy value (e.g. logout returns
    Result.success(False) when no token matched) -- check .ok, not .value.
    """

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "") -> Result[T]:
        return cls(error=kind, message=message or kind.value.replace("_", " ").capitalize() + ".")


def backend_guard(operation: str) -> Callable:
    """Decorator: turn collaborator faults escaping *operation* into BACKEND_UNAVAILABLE.

    IntegrityError is a SQLAlchemyError, so operations that interpret
    constraint conflicts must catch it themselves before it reaches here.
    Arguments are deliberately left out of the log line -- they may hold
    passwords or tokens.
    """

    def decorator(func: Callable[..., Result]) -> Callable[..., Result]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Result:
            try:
                return func(*args, **kwargs)
            except (SQLAlchemyError, TimeoutError, ConnectionError):
                logger.exception("%s failed: backend unavailable", operation)
                return Result.failure(ErrorKind.BACKEND_UNAVAILABLE, "Backend unavailable. Try again later.")

        return wrapper

    return decorator
