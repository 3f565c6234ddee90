"""Unit tests for auth/store.py -- CredentialStore queries.

Covers:
- Lookups by username / email / id return None when absent
- UNIQUE(username) and UNIQUE(email) raise IntegrityError
- update() whitelists fields
- Refresh-token set: exists / insert / delete-by-value / delete-by-subject
- delete() removes the user's refresh tokens too
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Credential
from auth.store import CredentialStore


def _cred(username: str = "alice", email: str = "alice@x.com") -> Credential:
    return Credential(username=username, email=email, password_hash="$2b$04$placeholder")


class TestCredentials:
    def test_insert_then_find(self, credential_store: CredentialStore) -> None:
        uid = credential_store.insert(_cred())
        by_name = credential_store.find_by_username("alice")
        by_email = credential_store.find_by_email("alice@x.com")
        assert by_name.id == uid
        assert by_email.id == uid
        assert credential_store.find_by_id(uid).username == "alice"
        assert by_name.created_at

    def test_missing_lookups_return_none(self, credential_store: CredentialStore) -> None:
        assert credential_store.find_by_username("ghost") is None
        assert credential_store.find_by_email("ghost@x.com") is None
        assert credential_store.find_by_id(999) is None

    def test_duplicate_username_raises(self, credential_store: CredentialStore) -> None:
        credential_store.insert(_cred())
        with pytest.raises(IntegrityError):
            credential_store.insert(_cred(email="other@x.com"))

    def test_duplicate_email_raises(self, credential_store: CredentialStore) -> None:
        credential_store.insert(_cred())
        with pytest.raises(IntegrityError):
            credential_store.insert(_cred(username="alice2"))

    def test_update_changes_field(self, credential_store: CredentialStore) -> None:
        uid = credential_store.insert(_cred())
        assert credential_store.update(uid, password_hash="new-hash")
        assert credential_store.find_by_id(uid).password_hash == "new-hash"

    def test_update_missing_user_returns_false(self, credential_store: CredentialStore) -> None:
        assert credential_store.update(999, email="x@x.com") is False

    def test_update_rejects_unknown_field(self, credential_store: CredentialStore) -> None:
        uid = credential_store.insert(_cred())
        with pytest.raises(ValueError):
            credential_store.update(uid, id=42)

    def test_delete(self, credential_store: CredentialStore) -> None:
        uid = credential_store.insert(_cred())
        credential_store.insert_refresh_token("tok-1", "alice@x.com")
        assert credential_store.delete(uid) is True
        assert credential_store.find_by_id(uid) is None
        assert not credential_store.refresh_token_exists("tok-1")
        assert credential_store.delete(uid) is False


class TestRefreshTokenSet:
    def test_insert_exists_delete(self, credential_store: CredentialStore) -> None:
        assert not credential_store.refresh_token_exists("tok-1")
        credential_store.insert_refresh_token("tok-1", "alice@x.com")
        assert credential_store.refresh_token_exists("tok-1")
        assert credential_store.delete_refresh_token("tok-1") == 1
        assert credential_store.delete_refresh_token("tok-1") == 0

    def test_duplicate_token_value_raises(self, credential_store: CredentialStore) -> None:
        credential_store.insert_refresh_token("tok-1", "alice@x.com")
        with pytest.raises(IntegrityError):
            credential_store.insert_refresh_token("tok-1", "alice@x.com")

    def test_delete_for_subject(self, credential_store: CredentialStore) -> None:
        credential_store.insert_refresh_token("a-1", "alice@x.com")
        credential_store.insert_refresh_token("a-2", "alice@x.com")
        credential_store.insert_refresh_token("b-1", "bob@x.com")
        assert [r.token for r in credential_store.list_refresh_tokens("alice@x.com")] == ["a-1", "a-2"]
        assert credential_store.delete_refresh_tokens_for("alice@x.com") == 2
        assert credential_store.list_refresh_tokens("alice@x.com") == []
        assert credential_store.refresh_token_exists("b-1")
