"""Tests for VaultService: the server-side boundary over the three stores."""

import json
import threading

import pytest

from pixelvault.errors import (
    DuplicateIdentity,
    InvalidCredential,
    NotAuthenticated,
    NotFound,
    StaleEntrySet,
    VaultLocked,
    WeakSecret,
)
from pixelvault.service import VaultService, get_vault_service


def _audit_events(service):
    log_file = service.audit.log_file
    if not log_file.exists():
        return []
    with open(log_file, encoding="utf-8") as fh:
        return [json.loads(line) for line in fh if line.strip()]


class TestAuthentication:

    def test_register_begins_locked_session(self, service):
        account, token = service.register("alice", "alice@example.com", "account-pass", "master-pass")
        info = service.session_info(token)
        assert info["authenticated"] is True
        assert info["unlocked"] is False
        assert info["account"]["id"] == account.id
        assert "kdf_salt" in info["account"]

    def test_register_duplicate(self, service, registered):
        with pytest.raises(DuplicateIdentity):
            service.register("alice", "new@example.com", "account-pass", "master-pass")

    def test_login_then_verify_master(self, service, registered):
        account, _ = registered
        logged_in, token = service.login("alice", "account-pass")
        assert logged_in.id == account.id
        state = service.verify_master(token, "master-pass")
        assert state.unlocked is True
        assert service.session_info(token)["unlocked"] is True

    def test_login_by_contact(self, service, registered):
        account, _ = service.login("alice@example.com", "account-pass")
        assert account.handle == "alice"

    def test_login_failures_are_indistinguishable(self, service, registered):
        with pytest.raises(InvalidCredential) as wrong_secret:
            service.login("alice", "wrong-pass")
        with pytest.raises(InvalidCredential) as unknown:
            service.login("mallory", "account-pass")
        assert str(wrong_secret.value) == str(unknown.value)

    def test_master_secret_is_not_the_login_secret(self, service, registered):
        _, token = registered
        with pytest.raises(InvalidCredential):
            service.verify_master(token, "account-pass")
        assert service.session_info(token)["unlocked"] is False

    def test_unlock_without_session(self, service, registered):
        with pytest.raises(NotAuthenticated):
            service.verify_master(None, "master-pass")
        with pytest.raises(NotAuthenticated):
            service.verify_master("forged-token", "master-pass")

    def test_lock_and_logout(self, service, unlocked):
        _, token = unlocked
        service.lock(token)
        assert service.session_info(token)["unlocked"] is False
        service.logout(token)
        assert service.session_info(token) == {
            "authenticated": False, "unlocked": False, "account": None,
        }
        # Logging out twice is harmless
        service.logout(token)

    def test_audit_records_logins_without_secrets(self, service, registered):
        with pytest.raises(InvalidCredential):
            service.login("alice", "wrong-pass")
        service.login("alice", "account-pass")

        events = _audit_events(service)
        types = [e["event_type"] for e in events]
        assert "account.created" in types
        assert "user.login.failed" in types
        assert "user.login" in types
        raw = service.audit.log_file.read_text(encoding="utf-8")
        assert "account-pass" not in raw
        assert "wrong-pass" not in raw


class TestProfile:

    def test_get_and_update_profile(self, service, registered):
        account, token = registered
        assert service.get_profile(token).id == account.id
        updated = service.update_profile(token, "alice2", "alice2@example.com")
        assert updated.handle == "alice2"
        service.login("alice2", "account-pass")

    def test_profile_requires_session(self, service):
        with pytest.raises(NotAuthenticated):
            service.get_profile(None)

    def test_change_account_secret(self, service, registered):
        _, token = registered
        service.change_account_secret(token, "account-pass", "new-account")
        service.login("alice", "new-account")
        with pytest.raises(InvalidCredential):
            service.login("alice", "account-pass")

    def test_delete_account(self, service, unlocked):
        _, token = unlocked
        service.create_entry(token, "note", "blob")
        with pytest.raises(InvalidCredential):
            service.delete_account(token, "master-pass")
        service.delete_account(token, "account-pass")
        with pytest.raises(NotAuthenticated):
            service.get_profile(token)
        with pytest.raises(InvalidCredential):
            service.login("alice", "account-pass")


class TestEntries:

    def test_entries_require_unlocked_session(self, service, registered):
        _, token = registered
        with pytest.raises(VaultLocked):
            service.list_entries(token)
        with pytest.raises(VaultLocked):
            service.create_entry(token, "note", "blob")
        with pytest.raises(NotAuthenticated):
            service.list_entries(None)

    def test_crud(self, service, unlocked):
        _, token = unlocked
        record = service.create_entry(token, "credential", "blob-1")
        assert service.get_entry(token, record.id).ciphertext == "blob-1"
        service.update_entry(token, record.id, "blob-2")
        assert [r.ciphertext for r in service.list_entries(token)] == ["blob-2"]
        assert service.summarize_entries(token)["credential"] == 1
        service.delete_entry(token, record.id)
        assert service.list_entries(token) == []

    def test_delete_all(self, service, unlocked):
        _, token = unlocked
        for kind in ("credential", "note", "file"):
            service.create_entry(token, kind, "blob")
        assert service.delete_all_entries(token) == 3
        assert service.summarize_entries(token)["total"] == 0

    def test_other_accounts_entries_are_invisible(self, service, unlocked):
        _, alice_token = unlocked
        record = service.create_entry(alice_token, "note", "alice-blob")

        service.register("bob", "bob@example.com", "bob-account", "bob-master")
        _, bob_token = service.login("bob", "bob-account")
        service.verify_master(bob_token, "bob-master")

        assert service.list_entries(bob_token) == []
        with pytest.raises(NotFound):
            service.get_entry(bob_token, record.id)
        with pytest.raises(NotFound):
            service.update_entry(bob_token, record.id, "bob-blob")
        with pytest.raises(NotFound):
            service.delete_entry(bob_token, record.id)
        assert service.get_entry(alice_token, record.id).ciphertext == "alice-blob"


class TestMasterSecretRotation:

    def test_rotation_swaps_blobs_and_relocks_every_session(self, service, unlocked):
        _, token = unlocked
        a = service.create_entry(token, "note", "old-a")
        b = service.create_entry(token, "credential", "old-b")
        _, other_token = service.login("alice", "account-pass")
        service.verify_master(other_token, "master-pass")

        count = service.change_master_secret(
            token, "master-pass", "new-master", {a.id: "new-a", b.id: "new-b"}
        )

        assert count == 2
        assert service.session_info(token)["unlocked"] is False
        assert service.session_info(other_token)["unlocked"] is False
        with pytest.raises(InvalidCredential):
            service.verify_master(token, "master-pass")
        service.verify_master(token, "new-master")
        assert {r.ciphertext for r in service.list_entries(token)} == {"new-a", "new-b"}

    def test_rotation_requires_unlocked(self, service, registered):
        _, token = registered
        with pytest.raises(VaultLocked):
            service.change_master_secret(token, "master-pass", "new-master", {})

    def test_wrong_current_secret_changes_nothing(self, service, unlocked):
        _, token = unlocked
        a = service.create_entry(token, "note", "old-a")
        with pytest.raises(InvalidCredential):
            service.change_master_secret(token, "wrong-master", "new-master", {a.id: "new-a"})
        assert service.session_info(token)["unlocked"] is True
        assert service.get_entry(token, a.id).ciphertext == "old-a"

    def test_weak_new_secret(self, service, unlocked):
        _, token = unlocked
        with pytest.raises(WeakSecret):
            service.change_master_secret(token, "master-pass", "short", {})

    def test_stale_staging_rolls_back_verifier(self, service, unlocked):
        _, token = unlocked
        a = service.create_entry(token, "note", "old-a")
        service.create_entry(token, "note", "added-after-staging")

        with pytest.raises(StaleEntrySet):
            service.change_master_secret(token, "master-pass", "new-master", {a.id: "new-a"})

        # Verifier swap was rolled back with the blobs
        assert service.credentials.verify_master_secret(
            service.session_info(token)["account"]["id"], "master-pass"
        )
        assert service.get_entry(token, a.id).ciphertext == "old-a"
        assert service.session_info(token)["unlocked"] is True

    def test_rotation_with_empty_vault(self, service, unlocked):
        _, token = unlocked
        assert service.change_master_secret(token, "master-pass", "new-master", {}) == 0
        service.verify_master(token, "new-master")

    def test_rotation_is_audited(self, service, unlocked):
        _, token = unlocked
        service.change_master_secret(token, "master-pass", "new-master", {})
        types = [e["event_type"] for e in _audit_events(service)]
        assert "vault.rotated" in types

    def test_unlock_and_rotation_are_serialized(self, service, unlocked, monkeypatch):
        account, rotating_token = unlocked
        _, token = service.login("alice", "account-pass")
        real_verify = service.credentials.verify_master_secret
        rotation = {}

        def rotate():
            try:
                rotation["count"] = service.change_master_secret(
                    rotating_token, "master-pass", "new-master", {}
                )
            except Exception as e:
                rotation["error"] = e

        worker = threading.Thread(target=rotate)

        def verify_then_rotate(account_id, secret, conn=None):
            ok = real_verify(account_id, secret, conn)
            # Rotation lands between the check and the unlock unless it waits
            worker.start()
            worker.join(timeout=0.5)
            assert worker.is_alive()
            return ok

        monkeypatch.setattr(service.credentials, "verify_master_secret", verify_then_rotate)
        service.verify_master(token, "master-pass")
        worker.join(timeout=10)

        assert rotation == {"count": 0}
        assert service.session_info(token)["unlocked"] is False
        assert not real_verify(account.id, "master-pass")
        assert real_verify(account.id, "new-master")


class TestSingleton:

    def test_get_vault_service_uses_process_settings(self, settings):
        svc = get_vault_service()
        assert isinstance(svc, VaultService)
        assert svc.db_path == settings.db_path
        assert get_vault_service() is svc
