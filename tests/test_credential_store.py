"""Tests for the credential store: two independent bcrypt-hashed secrets."""

import pytest

from pixelvault.accounts import CredentialStore, check_secret_strength
from pixelvault.core.db import connect
from pixelvault.errors import DuplicateIdentity, InvalidCredential, NotFound, WeakSecret


@pytest.fixture
def store(db_path):
    return CredentialStore(db_path, bcrypt_rounds=4)


@pytest.fixture
def alice(store):
    return store.create_account("alice", "alice@example.com", "account-pass", "master-pass")


class TestCreateAccount:

    def test_create_returns_account(self, alice):
        assert alice.handle == "alice"
        assert alice.contact == "alice@example.com"
        assert len(alice.kdf_salt) == 32
        assert alice.created_at == alice.updated_at

    def test_salt_is_random_per_account(self, store, alice):
        bob = store.create_account("bob", "bob@example.com", "account-pass", "master-pass")
        assert bob.kdf_salt != alice.kdf_salt

    def test_duplicate_handle(self, store, alice):
        with pytest.raises(DuplicateIdentity):
            store.create_account("alice", "other@example.com", "account-pass", "master-pass")

    def test_duplicate_contact(self, store, alice):
        with pytest.raises(DuplicateIdentity):
            store.create_account("alice2", "alice@example.com", "account-pass", "master-pass")

    def test_handle_cannot_shadow_other_contact(self, store, alice):
        with pytest.raises(DuplicateIdentity):
            store.create_account("alice@example.com", "x@example.com", "account-pass", "master-pass")

    @pytest.mark.parametrize("account_secret,master_secret", [
        ("short", "master-pass"),
        ("account-pass", "12345"),
        ("", "master-pass"),
    ])
    def test_weak_secret(self, store, account_secret, master_secret):
        with pytest.raises(WeakSecret):
            store.create_account("carol", "carol@example.com", account_secret, master_secret)

    def test_secrets_not_stored_in_plaintext(self, store, alice, db_path):
        with connect(db_path, row_factory=True) as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (alice.id,)).fetchone()
        values = [bytes(v) if isinstance(v, (bytes, memoryview)) else str(v) for v in tuple(row)]
        for value in values:
            if isinstance(value, bytes):
                assert b"account-pass" not in value
                assert b"master-pass" not in value
            else:
                assert "account-pass" not in value
                assert "master-pass" not in value
        assert bytes(row["account_secret_hash"]).startswith(b"$2")

    def test_minimum_length_boundary(self):
        check_secret_strength("123456")
        with pytest.raises(WeakSecret, match="at least 6"):
            check_secret_strength("12345", "Password")


class TestVerification:

    def test_account_secret_by_handle(self, store, alice):
        assert store.verify_account_secret("alice", "account-pass").id == alice.id

    def test_account_secret_by_contact(self, store, alice):
        assert store.verify_account_secret("alice@example.com", "account-pass").id == alice.id

    def test_wrong_account_secret(self, store, alice):
        assert store.verify_account_secret("alice", "master-pass") is None

    def test_unknown_handle(self, store, alice):
        assert store.verify_account_secret("nobody", "account-pass") is None

    def test_master_secret_is_independent(self, store, alice):
        assert store.verify_master_secret(alice.id, "master-pass") is True
        assert store.verify_master_secret(alice.id, "account-pass") is False

    def test_master_secret_unknown_account(self, store):
        assert store.verify_master_secret("missing", "master-pass") is False

    def test_long_secrets_beyond_bcrypt_limit(self, store):
        long_a = "a" * 100 + "1"
        long_b = "a" * 100 + "2"
        acct = store.create_account("dave", "dave@example.com", long_a, "master-pass")
        assert store.verify_account_secret("dave", long_a).id == acct.id
        assert store.verify_account_secret("dave", long_b) is None


class TestRotation:

    def test_rotate_master_secret(self, store, alice):
        store.rotate_master_secret(alice.id, "master-pass", "new-master")
        assert store.verify_master_secret(alice.id, "new-master") is True
        assert store.verify_master_secret(alice.id, "master-pass") is False
        # Login secret untouched
        assert store.verify_account_secret("alice", "account-pass") is not None

    def test_rotate_master_wrong_current(self, store, alice):
        with pytest.raises(InvalidCredential):
            store.rotate_master_secret(alice.id, "wrong-master", "new-master")
        assert store.verify_master_secret(alice.id, "master-pass") is True

    def test_rotate_master_weak_new(self, store, alice):
        with pytest.raises(WeakSecret):
            store.rotate_master_secret(alice.id, "master-pass", "new")

    def test_rotate_account_secret(self, store, alice):
        store.rotate_account_secret(alice.id, "account-pass", "new-account")
        assert store.verify_account_secret("alice", "new-account") is not None
        assert store.verify_account_secret("alice", "account-pass") is None
        assert store.verify_master_secret(alice.id, "master-pass") is True


class TestProfile:

    def test_get_account(self, store, alice):
        assert store.get_account(alice.id) == alice

    def test_get_missing_account(self, store):
        with pytest.raises(NotFound):
            store.get_account("missing")

    def test_update_profile(self, store, alice):
        updated = store.update_profile(alice.id, "alice2", "alice2@example.com")
        assert updated.handle == "alice2"
        assert updated.kdf_salt == alice.kdf_salt
        assert updated.updated_at >= alice.updated_at

    def test_update_profile_keeps_own_identity(self, store, alice):
        updated = store.update_profile(alice.id, "alice", "new@example.com")
        assert updated.contact == "new@example.com"

    def test_update_profile_duplicate(self, store, alice):
        store.create_account("bob", "bob@example.com", "account-pass", "master-pass")
        with pytest.raises(DuplicateIdentity):
            store.update_profile(alice.id, "bob", "alice@example.com")

    def test_delete_account_requires_secret(self, store, alice):
        with pytest.raises(InvalidCredential):
            store.delete_account(alice.id, "master-pass")
        store.delete_account(alice.id, "account-pass")
        with pytest.raises(NotFound):
            store.get_account(alice.id)

    def test_to_dict_hides_salt_by_default(self, alice):
        assert "kdf_salt" not in alice.to_dict()
        assert isinstance(alice.to_dict(include_salt=True)["kdf_salt"], str)
