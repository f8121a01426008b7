# Vault Service - Server-side boundary
#
# Composes the credential store, session authority and entry store into the
# operations the HTTP API (and in-process callers) expose. Owner ids always
# come from the validated session, never from the caller.
#
# The service never sees plaintext entries: it accepts and returns
# ciphertext blobs only. Master-secret rotation arrives with every entry
# already re-encrypted by the client and commits in a single transaction.

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .accounts import Account, CredentialStore, check_secret_strength
from .core import EventSeverity, EventType, Settings, get_audit_logger, get_settings
from .core.db import AccountLocks, transaction
from .errors import InvalidCredential, NotAuthenticated, VaultError
from .sessions import SessionAuthority, SessionState
from .vault.entry_store import EntryRecord, EntryStore

logger = logging.getLogger(__name__)


class VaultService:
    """
    Account, session and ciphertext operations behind one object.

    Args:
        settings: Storage path, TTL and bcrypt cost. Defaults to the
                  process settings.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.db_path = Path(self.settings.db_path)
        self.locks = AccountLocks()

        # Accounts first: sessions and entries reference them.
        self.credentials = CredentialStore(self.db_path, bcrypt_rounds=self.settings.bcrypt_rounds)
        self.sessions = SessionAuthority(self.db_path, ttl_seconds=self.settings.session_ttl_seconds)
        self.entries = EntryStore(self.db_path, locks=self.locks)

        self.audit = get_audit_logger()

    # ── authentication ──────────────────────────────────────────────

    def register(
        self,
        handle: str,
        contact: str,
        account_secret: str,
        master_secret: str,
    ) -> Tuple[Account, str]:
        """Create an account and begin an authenticated (locked) session."""
        account = self.credentials.create_account(handle, contact, account_secret, master_secret)
        token = self.sessions.begin_session(account.id)

        self.audit.log_account_event(
            EventType.ACCOUNT_CREATED,
            account.id,
            f"Account registered: {account.handle}",
        )
        return account, token

    def login(self, handle: str, account_secret: str) -> Tuple[Account, str]:
        """Check the account secret and begin a session.

        Raises:
            InvalidCredential: Unknown handle or wrong secret (indistinguishable).
        """
        account = self.credentials.verify_account_secret(handle, account_secret)
        if account is None:
            self.audit.log_event(
                event_type=EventType.USER_LOGIN_FAILED,
                severity=EventSeverity.INVESTIGATE,
                message="Login rejected",
                details={"handle": handle},
            )
            raise InvalidCredential()

        self.sessions.purge_expired()
        token = self.sessions.begin_session(account.id)
        self.audit.log_account_event(
            EventType.USER_LOGIN, account.id, f"Login: {account.handle}"
        )
        return account, token

    def verify_master(self, token: Optional[str], master_secret: str) -> SessionState:
        """Unlock the vault for this session if the master secret matches.

        The check and the unlock run under the account lock in one immediate
        transaction, so a concurrent rotation either finishes first (and the
        old secret no longer matches) or relocks this session after it.

        Raises:
            NotAuthenticated: No valid session.
            InvalidCredential: Wrong master secret; the session stays locked.
        """
        state = self.sessions.require_authenticated(token)
        account_id = state.account_id
        try:
            with self.locks.for_account(account_id):
                with transaction(self.db_path, immediate=True) as conn:
                    ok = self.credentials.verify_master_secret(account_id, master_secret, conn)
                    state = self.sessions.unlock_vault(token, ok, conn)
        except InvalidCredential:
            self.audit.log_account_event(
                EventType.VAULT_UNLOCK_FAILED,
                account_id,
                "Vault unlock failed: incorrect master password",
                severity=EventSeverity.INVESTIGATE,
            )
            raise

        self.audit.log_account_event(
            EventType.VAULT_UNLOCKED, state.account_id, "Vault unlocked"
        )
        return state

    def lock(self, token: Optional[str]) -> None:
        state = self.sessions.require_authenticated(token)
        self.sessions.lock_vault(token)
        self.audit.log_account_event(EventType.VAULT_LOCKED, state.account_id, "Vault locked")

    def logout(self, token: Optional[str]) -> None:
        try:
            state = self.sessions.validate(token)
        except NotAuthenticated:
            return
        self.sessions.end_session(token)
        self.audit.log_account_event(EventType.USER_LOGOUT, state.account_id, "Logout")

    def session_info(self, token: Optional[str]) -> Dict:
        """Describe the caller's session; anonymous callers get both flags false."""
        try:
            state = self.sessions.validate(token)
        except NotAuthenticated:
            return {"authenticated": False, "unlocked": False, "account": None}

        account = self.credentials.get_account(state.account_id)
        return {
            "authenticated": state.authenticated,
            "unlocked": state.unlocked,
            "expires_at": state.expires_at,
            "kdf_iterations": self.settings.kdf_iterations,
            "account": account.to_dict(include_salt=True),
        }

    # ── profile ─────────────────────────────────────────────────────

    def get_profile(self, token: Optional[str]) -> Account:
        state = self.sessions.require_authenticated(token)
        return self.credentials.get_account(state.account_id)

    def update_profile(self, token: Optional[str], handle: str, contact: str) -> Account:
        state = self.sessions.require_authenticated(token)
        account = self.credentials.update_profile(state.account_id, handle, contact)
        self.audit.log_account_event(
            EventType.ACCOUNT_UPDATED, account.id, f"Profile updated: {account.handle}"
        )
        return account

    def change_account_secret(self, token: Optional[str], current: str, new: str) -> None:
        state = self.sessions.require_authenticated(token)
        self.credentials.rotate_account_secret(state.account_id, current, new)
        self.audit.log_account_event(
            EventType.ACCOUNT_SECRET_ROTATED, state.account_id, "Login password changed"
        )

    def change_master_secret(
        self,
        token: Optional[str],
        current: str,
        new: str,
        staged: Mapping[str, str],
    ) -> int:
        """Rotate the master secret together with every re-encrypted entry.

        ``staged`` maps each of the account's entry ids to its ciphertext
        under the new master secret. Under the account lock and one
        immediate transaction: the current secret is checked, the verifier is
        swapped, every blob is replaced, and every session is relocked.
        Any failure rolls all of it back.

        Returns:
            Number of entries re-encrypted.

        Raises:
            VaultLocked: Session not unlocked.
            WeakSecret: New master secret too short.
            InvalidCredential: Current master secret wrong.
            StaleEntrySet: Entries were added or removed since staging.
        """
        state = self.sessions.require_unlocked(token)
        check_secret_strength(new, "Master password")
        account_id = state.account_id

        try:
            with self.locks.for_account(account_id):
                with transaction(self.db_path, immediate=True) as conn:
                    self.credentials.rotate_master_secret(account_id, current, new, conn)
                    count = self.entries.replace_ciphertexts(account_id, staged, conn)
                    relocked = self.sessions.reset_unlocked(account_id, conn)
        except VaultError as e:
            self.audit.log_account_event(
                EventType.VAULT_ROTATION_FAILED,
                account_id,
                f"Master password rotation rejected: {type(e).__name__}",
                severity=EventSeverity.ALERT,
            )
            raise

        self.audit.log_account_event(
            EventType.VAULT_ROTATED,
            account_id,
            "Master password rotated",
            details={"entries_reencrypted": count, "sessions_relocked": relocked},
        )
        return count

    def delete_account(self, token: Optional[str], account_secret: str) -> None:
        state = self.sessions.require_authenticated(token)
        self.credentials.delete_account(state.account_id, account_secret)
        self.audit.log_account_event(
            EventType.ACCOUNT_DELETED, state.account_id, "Account deleted",
            severity=EventSeverity.ALERT,
        )

    # ── entries ─────────────────────────────────────────────────────

    def list_entries(self, token: Optional[str]) -> List[EntryRecord]:
        state = self.sessions.require_unlocked(token)
        return self.entries.list(state.account_id)

    def get_entry(self, token: Optional[str], entry_id: str) -> EntryRecord:
        state = self.sessions.require_unlocked(token)
        return self.entries.get(state.account_id, entry_id)

    def create_entry(self, token: Optional[str], kind: str, ciphertext: str) -> EntryRecord:
        state = self.sessions.require_unlocked(token)
        record = self.entries.create(state.account_id, kind, ciphertext)
        self.audit.log_account_event(
            EventType.ENTRY_CREATED, state.account_id, f"Entry created ({kind})",
            details={"entry_id": record.id, "kind": kind},
        )
        return record

    def update_entry(self, token: Optional[str], entry_id: str, ciphertext: str) -> EntryRecord:
        state = self.sessions.require_unlocked(token)
        record = self.entries.update(state.account_id, entry_id, ciphertext)
        self.audit.log_account_event(
            EventType.ENTRY_UPDATED, state.account_id, "Entry updated",
            details={"entry_id": entry_id},
        )
        return record

    def delete_entry(self, token: Optional[str], entry_id: str) -> None:
        state = self.sessions.require_unlocked(token)
        self.entries.delete(state.account_id, entry_id)
        self.audit.log_account_event(
            EventType.ENTRY_DELETED, state.account_id, "Entry deleted",
            details={"entry_id": entry_id},
        )

    def delete_all_entries(self, token: Optional[str]) -> int:
        state = self.sessions.require_unlocked(token)
        count = self.entries.delete_all(state.account_id)
        self.audit.log_account_event(
            EventType.ENTRIES_PURGED, state.account_id, "All entries deleted",
            severity=EventSeverity.ALERT,
            details={"deleted_count": count},
        )
        return count

    def summarize_entries(self, token: Optional[str]) -> Dict[str, int]:
        state = self.sessions.require_unlocked(token)
        return self.entries.summarize(state.account_id)


# ── Singleton ────────────────────────────────────────────────────────

_service: Optional[VaultService] = None


def get_vault_service() -> VaultService:
    """Lazy singleton, created on first use."""
    global _service
    if _service is None:
        _service = VaultService()
    return _service


def set_vault_service(service: Optional[VaultService]) -> None:
    """Replace the singleton (for testing)."""
    global _service
    _service = service
