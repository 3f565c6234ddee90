"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost zero logic). Stores and
managers do the work; these own the shape.

Layer rule: no imports from world/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Credential:
    """A registered identity and its bcrypt password hash.

    username and email are both unique keys. The refresh and access tokens
    identify the subject by email, the login form by username.

    id is None before the record is written to the database.
    """

    username: str
    email: str
    password_hash: str
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class AccessClaims:
    """The subject carried inside a signed token.

    Exactly the two optional fields -- never an open dict. Tokens minted at
    login carry the email; the username field exists for tokens minted by
    other issuers that identify the subject by username instead.
    """

    subject_email: str | None = None
    subject_username: str | None = None

    @property
    def subject(self) -> str:
        return self.subject_email or self.subject_username or ""

    def to_payload(self) -> dict:
        payload: dict = {}
        if self.subject_email:
            payload["email"] = self.subject_email
        if self.subject_username:
            payload["username"] = self.subject_username
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> AccessClaims | None:
        """Build claims from a decoded JWT payload. Returns None if no subject is present."""
        email = payload.get("email")
        username = payload.get("username")
        if not isinstance(email, str):
            email = None
        if not isinstance(username, str):
            username = None
        if not email and not username:
            return None
        return cls(subject_email=email or None, subject_username=username or None)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


@dataclass
class RefreshTokenRecord:
    """A currently-valid refresh token. Presence in the store is the only validity signal.

    subject is the email the token was issued to. It is not a foreign key --
    it lets a password change revoke every outstanding token for that user.
    """

    token: str
    subject: str
    issued_at: str
