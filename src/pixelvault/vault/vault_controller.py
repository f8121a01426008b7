# Vault Controller - Client-side vault orchestration
#
# Holds the only plaintext in the system. A VaultContext is created per
# unlocked session and passed explicitly to every operation; there is no
# process-wide vault state, so one session's entries or master key can never
# leak into another.
#
# The controller talks to a backend with the VaultService method set
# (verify_master, session_info, list_entries, get_entry, create_entry,
# update_entry, delete_entry, delete_all_entries, summarize_entries, lock,
# change_master_secret). Both VaultService (in-process) and VaultClient
# (HTTP) qualify.

import base64
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ..core import EventSeverity, EventType, get_audit_logger
from ..errors import DecryptionFailed, InvalidKind, VaultLocked
from .encryption import DEFAULT_KDF_ITERATIONS, EnvelopeCipher
from .entries import FileEdit, FileEntry, VaultEntry, VaultItem
from .entry_store import EntryRecord

logger = logging.getLogger(__name__)


@dataclass
class VaultContext:
    """State of one unlocked vault session.

    Attributes:
        token: Session token the backend knows this session by.
        account_id: Owner of the session.
        kdf_salt: The account's salt for key derivation.
        kdf_iterations: PBKDF2 work factor the entries are written with.
        cipher: Envelope cipher holding the derived key; None once closed.
        items: Decrypted entries by id, from the last open/save.
        dropped: Ids that failed to decrypt on the last open.
    """
    token: str
    account_id: str
    kdf_salt: bytes
    cipher: Optional[EnvelopeCipher]
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS
    items: Dict[str, VaultItem] = field(default_factory=dict)
    dropped: List[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.cipher is not None

    def close(self) -> None:
        """Forget the key and every decrypted entry."""
        self.cipher = None
        self.items.clear()
        self.dropped.clear()


class VaultController:
    """
    Decrypts, edits and re-encrypts vault entries for one backend.

    Args:
        backend: VaultService or VaultClient.
        kdf_iterations: PBKDF2 work factor. Defaults to the one the server
                        advertises in its session info.
    """

    def __init__(self, backend, kdf_iterations: Optional[int] = None):
        self.backend = backend
        self.kdf_iterations = kdf_iterations

    # ── session ─────────────────────────────────────────────────────

    def unlock(self, token: str, master_secret: str) -> VaultContext:
        """Verify the master secret with the backend and derive the entry key.

        Raises:
            NotAuthenticated: Token invalid or expired.
            InvalidCredential: Wrong master secret.
        """
        self.backend.verify_master(token, master_secret)
        info = self.backend.session_info(token)
        account = info["account"]
        salt = base64.b64decode(account["kdf_salt"])
        iterations = (
            self.kdf_iterations
            or info.get("kdf_iterations")
            or DEFAULT_KDF_ITERATIONS
        )
        return VaultContext(
            token=token,
            account_id=account["id"],
            kdf_salt=salt,
            cipher=EnvelopeCipher(master_secret, salt, iterations),
            kdf_iterations=iterations,
        )

    def lock(self, ctx: VaultContext) -> None:
        """Relock the session on the backend and wipe the context."""
        self.backend.lock(ctx.token)
        ctx.close()

    # ── reads ───────────────────────────────────────────────────────

    def open(self, ctx: VaultContext) -> List[VaultItem]:
        """Fetch and decrypt every entry, newest first.

        Entries that fail to decrypt are dropped from the result and listed
        in ``ctx.dropped``; one bad blob never blocks the rest.
        """
        cipher = self._require_open(ctx)
        records = self.backend.list_entries(ctx.token)

        items: Dict[str, VaultItem] = {}
        dropped: List[str] = []
        for record in records:
            try:
                entry = cipher.decrypt_entry(record.ciphertext, record.kind)
            except DecryptionFailed as e:
                logger.warning(
                    "Dropping entry %s (%s): %s", record.id, record.kind, type(e).__name__
                )
                dropped.append(record.id)
                continue
            items[record.id] = self._to_item(record, entry)

        ctx.items = items
        ctx.dropped = dropped
        if dropped:
            get_audit_logger().log_account_event(
                EventType.VAULT_DECRYPT_FAILED,
                ctx.account_id,
                f"{len(dropped)} entries could not be decrypted",
                severity=EventSeverity.INVESTIGATE,
                details={"entry_ids": dropped},
            )
        return list(items.values())

    def summary(self, ctx: VaultContext) -> Dict[str, int]:
        self._require_open(ctx)
        return self.backend.summarize_entries(ctx.token)

    # ── writes ──────────────────────────────────────────────────────

    def save(
        self,
        ctx: VaultContext,
        kind: str,
        payload: Union[VaultEntry, FileEdit],
        existing_id: Optional[str] = None,
    ) -> VaultItem:
        """Encrypt an entry and create it, or replace ``existing_id``.

        A ``FileEdit`` changes a file entry's title and category; its
        ``content`` says whether the stored bytes are kept or replaced.

        Raises:
            InvalidKind: ``kind`` disagrees with the payload or with the
                existing entry.
            NotFound: ``existing_id`` is not one of this account's entries.
        """
        cipher = self._require_open(ctx)

        existing = self._existing_item(ctx, existing_id) if existing_id else None
        if existing is not None and existing.kind != kind:
            raise InvalidKind("An entry's kind cannot change")

        if isinstance(payload, FileEdit):
            if kind != "file":
                raise InvalidKind("File edits only apply to file entries")
            current = existing.entry if existing is not None else None
            entry = payload.apply(current if isinstance(current, FileEntry) else None)
        else:
            entry = payload
        if entry.kind != kind:
            raise InvalidKind()

        ciphertext = cipher.encrypt_entry(entry)
        if existing_id:
            record = self.backend.update_entry(ctx.token, existing_id, ciphertext)
        else:
            record = self.backend.create_entry(ctx.token, kind, ciphertext)

        item = self._to_item(record, entry)
        ctx.items[item.id] = item
        return item

    def remove(self, ctx: VaultContext, entry_id: str) -> None:
        self._require_open(ctx)
        self.backend.delete_entry(ctx.token, entry_id)
        ctx.items.pop(entry_id, None)

    def remove_all(self, ctx: VaultContext) -> int:
        self._require_open(ctx)
        count = self.backend.delete_all_entries(ctx.token)
        ctx.items.clear()
        ctx.dropped.clear()
        return count

    # ── rotation ────────────────────────────────────────────────────

    def reencrypt_all(
        self,
        ctx: VaultContext,
        old_master_secret: str,
        new_master_secret: str,
    ) -> int:
        """Rotate the master secret, re-encrypting every entry.

        Stage then commit: every entry is decrypted under the old secret and
        re-encrypted under the new one locally. If any entry fails to
        decrypt, nothing is sent and the vault is untouched. Otherwise the
        whole staged set goes to the backend, which swaps the verifier and
        every blob in one transaction and relocks all sessions.

        The context is closed afterwards; unlock again with the new secret.

        Returns:
            Number of entries re-encrypted.

        Raises:
            DecryptionFailed: Some entry does not open under the old secret.
        """
        self._require_open(ctx)
        old_cipher = EnvelopeCipher(old_master_secret, ctx.kdf_salt, ctx.kdf_iterations)
        new_cipher = EnvelopeCipher(new_master_secret, ctx.kdf_salt, ctx.kdf_iterations)

        staged: Dict[str, str] = {}
        for record in self.backend.list_entries(ctx.token):
            try:
                entry = old_cipher.decrypt_entry(record.ciphertext, record.kind)
            except DecryptionFailed:
                logger.error("Rotation aborted: entry %s does not open under the old secret", record.id)
                raise
            staged[record.id] = new_cipher.encrypt_entry(entry)

        count = self.backend.change_master_secret(
            ctx.token, old_master_secret, new_master_secret, staged
        )
        ctx.close()
        logger.info("Master secret rotated, %d entries re-encrypted", count)
        return count

    # ── helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _require_open(ctx: VaultContext) -> EnvelopeCipher:
        if ctx.cipher is None:
            raise VaultLocked()
        return ctx.cipher

    def _existing_item(self, ctx: VaultContext, entry_id: str) -> VaultItem:
        item = ctx.items.get(entry_id)
        if item is not None:
            return item
        record = self.backend.get_entry(ctx.token, entry_id)
        entry = ctx.cipher.decrypt_entry(record.ciphertext, record.kind)
        return self._to_item(record, entry)

    @staticmethod
    def _to_item(record: EntryRecord, entry: VaultEntry) -> VaultItem:
        return VaultItem(
            id=record.id,
            kind=record.kind,
            entry=entry,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
