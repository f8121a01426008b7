# Vault - Entry Store
#
# Owner-scoped CRUD over opaque ciphertext blobs. The store knows each
# entry's kind, owner, identity and timestamps, and nothing about the
# plaintext. Every statement filters on owner_id, which callers take from a
# validated session, so an id belonging to another account behaves exactly
# like an id that does not exist.

import logging
import sqlite3
import uuid
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..core.config import MAX_CIPHERTEXT_BYTES
from ..core.db import AccountLocks, connect as db_connect, utc_timestamp
from ..errors import InvalidKind, NotFound, PayloadTooLarge, StaleEntrySet
from .entries import ENTRY_KINDS

logger = logging.getLogger(__name__)


@dataclass
class EntryRecord:
    """One persisted entry: ciphertext plus server-owned metadata.

    ``owner_id`` is None on records received over HTTP; the API never sends it.
    """
    id: str
    owner_id: Optional[str]
    kind: str
    ciphertext: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "ciphertext": self.ciphertext,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class EntryStore:
    """SQLite store for encrypted vault entries.

    Args:
        db_path: Path to the SQLite database file (shared with the
                 credential store so entries cascade with accounts).
        locks: Per-account advisory locks shared with master-secret rotation.
        max_ciphertext_bytes: Size ceiling per blob.
    """

    def __init__(
        self,
        db_path: Path,
        locks: Optional[AccountLocks] = None,
        max_ciphertext_bytes: int = MAX_CIPHERTEXT_BYTES,
    ):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.locks = locks or AccountLocks()
        self.max_ciphertext_bytes = max_ciphertext_bytes
        self._init_database()

    def _connect(self):
        return closing(db_connect(self.db_path, row_factory=True))

    def _init_database(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entries (
                    id          TEXT PRIMARY KEY,
                    owner_id    TEXT NOT NULL
                                REFERENCES accounts(id) ON DELETE CASCADE,
                    kind        TEXT NOT NULL
                                CHECK (kind IN ('credential', 'note', 'file')),
                    ciphertext  TEXT NOT NULL,
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_entries_owner "
                "ON entries(owner_id, updated_at DESC)"
            )

    # ── CRUD ────────────────────────────────────────────────────────

    def create(self, owner_id: str, kind: str, ciphertext: str) -> EntryRecord:
        """Persist a new blob.

        Raises:
            InvalidKind: ``kind`` is not credential, note or file.
            PayloadTooLarge: The blob exceeds the ceiling.
        """
        if kind not in ENTRY_KINDS:
            raise InvalidKind()
        self._check_size(ciphertext)

        entry_id = str(uuid.uuid4())
        now = utc_timestamp()
        with self.locks.for_account(owner_id), self._connect() as conn:
            conn.execute(
                """INSERT INTO entries
                   (id, owner_id, kind, ciphertext, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (entry_id, owner_id, kind, ciphertext, now, now),
            )
        logger.debug("Entry created: %s (%s) for %s", entry_id, kind, owner_id)
        return EntryRecord(entry_id, owner_id, kind, ciphertext, now, now)

    def get(self, owner_id: str, entry_id: str) -> EntryRecord:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM entries WHERE id = ? AND owner_id = ?",
                (entry_id, owner_id),
            ).fetchone()
        if row is None:
            raise NotFound()
        return self._row_to_record(row)

    def list(self, owner_id: str) -> List[EntryRecord]:
        """Return the owner's entries, most recently updated first."""
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM entries WHERE owner_id = ?
                   ORDER BY updated_at DESC, rowid DESC""",
                (owner_id,),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def update(self, owner_id: str, entry_id: str, ciphertext: str) -> EntryRecord:
        """Replace a blob; kind and created_at never change.

        Raises:
            NotFound: No such entry for this owner.
            PayloadTooLarge: The blob exceeds the ceiling.
        """
        self._check_size(ciphertext)
        with self.locks.for_account(owner_id), self._connect() as conn:
            cursor = conn.execute(
                """UPDATE entries
                   SET ciphertext = ?, updated_at = MAX(?, updated_at)
                   WHERE id = ? AND owner_id = ?""",
                (ciphertext, utc_timestamp(), entry_id, owner_id),
            )
        if cursor.rowcount == 0:
            raise NotFound()
        return self.get(owner_id, entry_id)

    def delete(self, owner_id: str, entry_id: str) -> None:
        with self.locks.for_account(owner_id), self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM entries WHERE id = ? AND owner_id = ?",
                (entry_id, owner_id),
            )
        if cursor.rowcount == 0:
            raise NotFound()

    def delete_all(self, owner_id: str) -> int:
        """Delete every entry of the owner. Returns the number removed."""
        with self.locks.for_account(owner_id), self._connect() as conn:
            cursor = conn.execute("DELETE FROM entries WHERE owner_id = ?", (owner_id,))
        return cursor.rowcount

    def summarize(self, owner_id: str) -> Dict[str, int]:
        """Counts per kind plus a total; kinds with no entries report 0."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT kind, COUNT(*) AS count FROM entries WHERE owner_id = ? GROUP BY kind",
                (owner_id,),
            ).fetchall()
        summary = {kind: 0 for kind in ENTRY_KINDS}
        for row in rows:
            summary[row["kind"]] = row["count"]
        summary["total"] = sum(summary[kind] for kind in ENTRY_KINDS)
        return summary

    # ── rotation ────────────────────────────────────────────────────

    def replace_ciphertexts(
        self,
        owner_id: str,
        staged: Mapping[str, str],
        conn: sqlite3.Connection,
    ) -> int:
        """Write a full set of re-encrypted blobs inside the caller's transaction.

        The caller holds the account lock and an immediate transaction on
        ``conn``; nothing is committed here.

        Raises:
            StaleEntrySet: ``staged`` does not cover exactly the owner's
                current entries.
            PayloadTooLarge: A staged blob exceeds the ceiling.
        """
        current = {
            row["id"]
            for row in conn.execute(
                "SELECT id FROM entries WHERE owner_id = ?", (owner_id,)
            ).fetchall()
        }
        if current != set(staged):
            raise StaleEntrySet()
        for ciphertext in staged.values():
            self._check_size(ciphertext)

        now = utc_timestamp()
        for entry_id, ciphertext in staged.items():
            conn.execute(
                """UPDATE entries
                   SET ciphertext = ?, updated_at = MAX(?, updated_at)
                   WHERE id = ? AND owner_id = ?""",
                (ciphertext, now, entry_id, owner_id),
            )
        return len(staged)

    # ── helpers ──────────────────────────────────────────────────────

    def _check_size(self, ciphertext: str) -> None:
        if len(ciphertext.encode("utf-8")) > self.max_ciphertext_bytes:
            raise PayloadTooLarge()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> EntryRecord:
        return EntryRecord(
            id=row["id"],
            owner_id=row["owner_id"],
            kind=row["kind"],
            ciphertext=row["ciphertext"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
