"""
auth/tokens.py -- JWT issue/validate and password hashing utilities.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with two
       different secrets, so a refresh token can never pass as an access token.
       The secrets are injected into TokenService at construction (see
       services.build_services) rather than read from module state.

  Access tokens: claims + iat + exp. Fixed 15-minute window by default.

  Refresh tokens: claims + iat + jti, no exp. Their lifetime is controlled
       entirely by presence in the refresh_tokens table; the signature only
       proves we minted them. jti makes every token unique, so two logins in
       the same second do not collide on the store's UNIQUE(token).

  Validation failures are classified (malformed / bad signature / expired)
       and returned as a Result rather than raised.

  Passwords: bcrypt directly, no passlib wrapper. verify_password raises
       ValueError for a corrupt stored hash so the session manager can tell a
       verifier fault apart from a wrong password.

Layer rule: no imports from world/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import AccessClaims
from core.results import ErrorKind, Result

logger = logging.getLogger("worldkeeper.auth")

_ALGORITHM = "HS256"

ACCESS_TOKEN_TTL_SECONDS = 15 * 60

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. rounds is the
    log2 cost factor; tests pass a low value to keep the suite fast.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Raises ValueError if *hashed* is not a usable bcrypt hash.
    """
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ---------------------------------------------------------------------------
# JWT issue / validate
# ---------------------------------------------------------------------------


class TokenService:
    """Signs and verifies access and refresh tokens with process-wide keys.

    Stateless and thread-safe: every method is a pure function of its
    arguments plus the keys given at construction.

    Usage:
        tokens = TokenService(access_secret, refresh_secret)
        access = tokens.issue_access_token(AccessClaims(subject_email="alice@x.com"))
        result = tokens.validate_access_token(access)
        if result.ok:
            result.value.subject_email
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl_seconds: int = ACCESS_TOKEN_TTL_SECONDS,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("TokenService requires both an access and a refresh secret.")
        self._access_secret = access_secret
        self._refresh_secret = refresh_secret
        self.access_ttl = timedelta(seconds=access_ttl_seconds)

    def issue_access_token(self, claims: AccessClaims, issued_at: datetime | None = None) -> str:
        """Encode a signed access token expiring access_ttl after *issued_at* (default: now)."""
        issued_at = issued_at or datetime.now(timezone.utc)
        payload = claims.to_payload()
        payload["iat"] = issued_at
        payload["exp"] = issued_at + self.access_ttl
        return jwt.encode(payload, self._access_secret, algorithm=_ALGORITHM)

    def issue_refresh_token(self, claims: AccessClaims, issued_at: datetime | None = None) -> str:
        """Encode a signed refresh token with no expiry claim."""
        payload = claims.to_payload()
        payload["iat"] = issued_at or datetime.now(timezone.utc)
        payload["jti"] = secrets.token_hex(16)
        return jwt.encode(payload, self._refresh_secret, algorithm=_ALGORITHM)

    def validate_access_token(self, token: str) -> Result[AccessClaims]:
        return _decode(token, self._access_secret)

    def validate_refresh_token(self, token: str) -> Result[AccessClaims]:
        return _decode(token, self._refresh_secret)


def _decode(token: str, secret: str) -> Result[AccessClaims]:
    """Verify *token* against *secret* and extract its claims.

    The unverified parse runs first so a token that is not a JWT at all is
    reported as malformed, not as a signature failure.
    """
    try:
        jwt.get_unverified_claims(token)
    except JWTError:
        return Result.failure(ErrorKind.TOKEN_MALFORMED, "Token is not a well-formed JWT.")
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError:
        return Result.failure(ErrorKind.TOKEN_EXPIRED, "Token has expired.")
    except JWTError as exc:
        logger.info("Token rejected: %s", exc)
        return Result.failure(ErrorKind.TOKEN_BAD_SIGNATURE, "Token signature verification failed.")
    claims = AccessClaims.from_payload(payload)
    if claims is None:
        return Result.failure(ErrorKind.TOKEN_MALFORMED, "Token carries no subject.")
    return Result.success(claims)
