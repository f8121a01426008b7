"""
Shared pytest fixtures for the PixelVault test suite.

Autouse fixtures below isolate tests from live application data:
  - Audit logger -> temp directory (prevents test events in ./audit_logs)
  - Settings     -> temp database, cheap bcrypt and PBKDF2 work factors
  - VaultService -> singleton reset so API tests get a fresh one per test
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import pixelvault.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def settings(tmp_path):
    """Process settings pointing at a temp database.

    bcrypt rounds and PBKDF2 iterations are dropped to their floor so the
    suite stays fast; the algorithms are unchanged.
    """
    import pixelvault.core.config as config_mod
    import pixelvault.service as service_mod
    from pixelvault.core.config import Settings

    old_settings = config_mod._settings
    old_service = service_mod._service

    test_settings = Settings(
        db_path=tmp_path / "pixelvault.db",
        session_ttl_seconds=3600,
        bcrypt_rounds=4,
        kdf_iterations=1000,
        audit_dir=tmp_path / "audit_logs",
    )
    config_mod._settings = test_settings
    service_mod._service = None

    yield test_settings

    config_mod._settings = old_settings
    service_mod._service = old_service


@pytest.fixture
def db_path(settings):
    return settings.db_path


@pytest.fixture
def service(settings):
    """A VaultService on the temp database, also installed as the singleton."""
    from pixelvault.service import VaultService, set_vault_service

    svc = VaultService(settings)
    set_vault_service(svc)
    return svc


@pytest.fixture
def registered(service):
    """alice, registered and logged in (session locked)."""
    account, token = service.register("alice", "alice@example.com", "account-pass", "master-pass")
    return account, token


@pytest.fixture
def unlocked(service, registered):
    """alice with an unlocked session."""
    account, token = registered
    service.verify_master(token, "master-pass")
    return account, token
