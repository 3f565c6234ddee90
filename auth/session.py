"""
auth/session.py -- Login, refresh and logout over the credential store.

There is no session object. Session state is the refresh-token set in
CredentialStore plus the stateless signed tokens:

  login    verify password -> issue access + refresh -> store refresh
  refresh  refresh in store? -> signature ok? -> mint new access token
  logout   delete refresh by value

Refresh tokens are not rotated and not single-use: the same token keeps
minting access tokens until logout (or a password change) removes it.

Every public method returns a core.results.Result. Expected failures are
kinds, not exceptions; database faults become BACKEND_UNAVAILABLE through
backend_guard.

Layer rule: no imports from world/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.models import AccessClaims, Credential, TokenPair
from auth.store import CredentialStore
from auth.tokens import TokenService, hash_password, verify_password
from core.results import ErrorKind, Result, backend_guard

logger = logging.getLogger("worldkeeper.auth")


class AuthSessionManager:
    def __init__(self, store: CredentialStore, tokens: TokenService, bcrypt_rounds: int = 12) -> None:
        self.store = store
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @backend_guard("login")
    def login(self, username: str, password: str) -> Result[TokenPair]:
        """Verify a username/password pair and issue an access + refresh token.

        Both tokens carry the user's email as subject. The refresh token is
        persisted before returning; if that write fails the caller gets
        BACKEND_UNAVAILABLE and no tokens.
        """
        if not username or not password:
            return Result.failure(ErrorKind.INVALID_INPUT, "Username and password cannot be empty.")
        checked = self._check_password(username, password)
        if not checked.ok:
            return Result.failure(checked.error, checked.message)
        credential = checked.value

        claims = AccessClaims(subject_email=credential.email)
        access_token = self.tokens.issue_access_token(claims)
        refresh_token = self.tokens.issue_refresh_token(claims)
        self.store.insert_refresh_token(refresh_token, credential.email)
        logger.info("Login succeeded for user_id=%s", credential.id)
        return Result.success(TokenPair(access_token=access_token, refresh_token=refresh_token))

    @backend_guard("refresh")
    def refresh(self, refresh_token: str) -> Result[str]:
        """Mint a new access token from a stored refresh token.

        Store membership is checked first: a token we never issued, or one
        that was logged out, is INVALID_TOKEN even if its signature is fine.
        A stored token that fails verification is TOKEN_VERIFICATION_FAILED.
        """
        if not refresh_token:
            return Result.failure(ErrorKind.INVALID_INPUT, "Refresh token cannot be empty.")
        if not self.store.refresh_token_exists(refresh_token):
            return Result.failure(ErrorKind.INVALID_TOKEN, "Refresh token is not valid.")
        verified = self.tokens.validate_refresh_token(refresh_token)
        if not verified.ok:
            logger.warning("Stored refresh token failed verification (%s)", verified.error.value)
            return Result.failure(ErrorKind.TOKEN_VERIFICATION_FAILED, "Refresh token could not be verified.")
        claims = verified.value
        logger.debug("Refreshed access token for subject=%s", claims.subject)
        return Result.success(self.tokens.issue_access_token(claims))

    @backend_guard("logout")
    def logout(self, refresh_token: str) -> Result[bool]:
        """Remove a refresh token. Success(False) means no such token -- not an error."""
        if not refresh_token:
            return Result.failure(ErrorKind.INVALID_INPUT, "Refresh token cannot be empty.")
        removed = self.store.delete_refresh_token(refresh_token)
        return Result.success(removed > 0)

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------

    @backend_guard("register")
    def register(self, username: str, email: str, password: str) -> Result[Credential]:
        """Create a credential with a freshly hashed password.

        The pre-checks give a specific kind in the common case; the UNIQUE
        constraints still decide when two registrations race.
        """
        if not username or not email or not password:
            return Result.failure(ErrorKind.INVALID_INPUT, "Username, email and password cannot be empty.")
        conflict = self._registration_conflict(username, email)
        if conflict is not None:
            return Result.failure(conflict)
        credential = Credential(
            username=username,
            email=email,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
        )
        try:
            credential.id = self.store.insert(credential)
        except IntegrityError:
            conflict = self._registration_conflict(username, email)
            if conflict is None:
                raise
            return Result.failure(conflict)
        logger.info("Registered user_id=%s", credential.id)
        return Result.success(self.store.find_by_id(credential.id))

    @backend_guard("change_password")
    def change_password(self, username: str, current_password: str, new_password: str) -> Result[int]:
        """Replace the password hash and revoke every refresh token for the user.

        Returns the number of refresh tokens revoked. Access tokens already
        issued stay valid until they expire.
        """
        if not username or not current_password or not new_password:
            return Result.failure(ErrorKind.INVALID_INPUT, "Username and both passwords cannot be empty.")
        checked = self._check_password(username, current_password)
        if not checked.ok:
            return Result.failure(checked.error, checked.message)
        credential = checked.value
        self.store.update(credential.id, password_hash=hash_password(new_password, rounds=self.bcrypt_rounds))
        revoked = self.store.delete_refresh_tokens_for(credential.email)
        logger.info("Password changed for user_id=%s; %d refresh token(s) revoked", credential.id, revoked)
        return Result.success(revoked)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_password(self, username: str, password: str) -> Result[Credential]:
        credential = self.store.find_by_username(username)
        if credential is None:
            return Result.failure(ErrorKind.USER_NOT_FOUND, "User with given username can't be found.")
        try:
            matches = verify_password(password, credential.password_hash)
        except ValueError:
            logger.exception("Password verifier fault for user_id=%s", credential.id)
            return Result.failure(ErrorKind.AUTH_BACKEND_ERROR, "Password could not be verified.")
        if not matches:
            logger.info("Incorrect password for user_id=%s", credential.id)
            return Result.failure(ErrorKind.INCORRECT_PASSWORD, "Invalid password.")
        return Result.success(credential)

    def _registration_conflict(self, username: str, email: str) -> ErrorKind | None:
        if self.store.find_by_username(username) is not None:
            return ErrorKind.DUPLICATE_USERNAME
        if self.store.find_by_email(email) is not None:
            return ErrorKind.DUPLICATE_EMAIL
        return None
