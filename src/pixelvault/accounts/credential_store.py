# Credential Store
#
# SQLite persistence for accounts: a unique handle, a unique contact address,
# a bcrypt hash of the account secret (login) and an independent bcrypt hash
# of the master secret (vault unlock). Plaintext secrets never touch the
# database or the logs.

import base64
import hashlib
import logging
import os
import sqlite3
import uuid
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import bcrypt

from ..core.config import MIN_SECRET_LENGTH
from ..core.db import connect as db_connect, utc_timestamp
from ..errors import DuplicateIdentity, InvalidCredential, NotFound, WeakSecret

logger = logging.getLogger(__name__)

KDF_SALT_LENGTH = 32  # 256-bit per-account salt for entry key derivation


@dataclass
class Account:
    """An account row without its secret hashes."""
    id: str
    handle: str
    contact: str
    kdf_salt: bytes
    created_at: str
    updated_at: str

    def to_dict(self, include_salt: bool = False) -> dict:
        data = {
            "id": self.id,
            "handle": self.handle,
            "contact": self.contact,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if include_salt:
            data["kdf_salt"] = base64.b64encode(self.kdf_salt).decode("ascii")
        return data


def _prepare_secret(secret: str) -> bytes:
    """SHA-256 then base64 so secrets longer than bcrypt's 72-byte cap still count."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.b64encode(digest)


def check_secret_strength(secret: str, label: str = "Secret") -> None:
    """Raise WeakSecret unless the secret meets the minimum length."""
    if not secret or len(secret) < MIN_SECRET_LENGTH:
        raise WeakSecret(f"{label} must be at least {MIN_SECRET_LENGTH} characters long")


class CredentialStore:
    """SQLite store for account credentials and master-secret verifiers.

    Args:
        db_path: Path to the SQLite database file (shared with the session
                 and entry stores).
        bcrypt_rounds: bcrypt work factor for new hashes.
    """

    def __init__(self, db_path: Path, bcrypt_rounds: int = 12):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.bcrypt_rounds = bcrypt_rounds
        self._dummy_hash: Optional[bytes] = None
        self._init_database()

    def _connect(self):
        return closing(db_connect(self.db_path, row_factory=True))

    def _init_database(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    id                   TEXT PRIMARY KEY,
                    handle               TEXT UNIQUE NOT NULL,
                    contact              TEXT UNIQUE NOT NULL,
                    account_secret_hash  BLOB NOT NULL,
                    master_secret_hash   BLOB NOT NULL,
                    kdf_salt             BLOB NOT NULL,
                    created_at           TEXT NOT NULL,
                    updated_at           TEXT NOT NULL
                )
            """)

    # ── hashing ─────────────────────────────────────────────────────

    def hash_secret(self, secret: str) -> bytes:
        return bcrypt.hashpw(_prepare_secret(secret), bcrypt.gensalt(rounds=self.bcrypt_rounds))

    @staticmethod
    def _matches(secret: str, hashed: bytes) -> bool:
        return bcrypt.checkpw(_prepare_secret(secret), bytes(hashed))

    def _burn_time(self, secret: str) -> None:
        """Run one bcrypt check so unknown handles cost as much as wrong secrets."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash_secret(uuid.uuid4().hex)
        self._matches(secret, self._dummy_hash)

    # ── accounts ────────────────────────────────────────────────────

    def create_account(
        self,
        handle: str,
        contact: str,
        account_secret: str,
        master_secret: str,
    ) -> Account:
        """Create an account.

        Raises:
            WeakSecret: Either secret is below the minimum length.
            DuplicateIdentity: The handle or contact address is taken.
        """
        check_secret_strength(account_secret, "Password")
        check_secret_strength(master_secret, "Master password")

        account_id = str(uuid.uuid4())
        now = utc_timestamp()
        salt = os.urandom(KDF_SALT_LENGTH)
        account_hash = self.hash_secret(account_secret)
        master_hash = self.hash_secret(master_secret)

        with self._connect() as conn:
            if self._identity_taken(conn, handle, contact):
                raise DuplicateIdentity()
            try:
                conn.execute(
                    """INSERT INTO accounts
                       (id, handle, contact, account_secret_hash, master_secret_hash,
                        kdf_salt, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (account_id, handle, contact, account_hash, master_hash,
                     salt, now, now),
                )
            except sqlite3.IntegrityError:
                # Lost a race with a concurrent registration
                raise DuplicateIdentity()

        logger.info("Account created: %s (%s)", account_id, handle)
        return Account(account_id, handle, contact, salt, now, now)

    def get_account(self, account_id: str) -> Account:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE id = ?", (account_id,)
            ).fetchone()
        if row is None:
            raise NotFound("Account not found")
        return self._row_to_account(row)

    def update_profile(self, account_id: str, handle: str, contact: str) -> Account:
        """Change handle and contact address; both stay globally unique."""
        with self._connect() as conn:
            if self._identity_taken(conn, handle, contact, exclude_id=account_id):
                raise DuplicateIdentity()
            try:
                cursor = conn.execute(
                    "UPDATE accounts SET handle = ?, contact = ?, updated_at = ? WHERE id = ?",
                    (handle, contact, utc_timestamp(), account_id),
                )
            except sqlite3.IntegrityError:
                raise DuplicateIdentity()
        if cursor.rowcount == 0:
            raise NotFound("Account not found")
        return self.get_account(account_id)

    def delete_account(self, account_id: str, account_secret: str) -> None:
        """Delete an account after re-checking its secret.

        Sessions and entries go with it (ON DELETE CASCADE).
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT account_secret_hash FROM accounts WHERE id = ?", (account_id,)
            ).fetchone()
            if row is None or not self._matches(account_secret, row["account_secret_hash"]):
                raise InvalidCredential()
            conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
        logger.info("Account deleted: %s", account_id)

    # ── verification ────────────────────────────────────────────────

    def verify_account_secret(self, handle: str, account_secret: str) -> Optional[Account]:
        """Return the account if the secret matches, else None.

        ``handle`` may be either the handle or the contact address.
        """
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE handle = ? OR contact = ?",
                (handle, handle),
            ).fetchone()
        if row is None:
            self._burn_time(account_secret)
            return None
        if not self._matches(account_secret, row["account_secret_hash"]):
            return None
        return self._row_to_account(row)

    def verify_master_secret(
        self,
        account_id: str,
        master_secret: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        if conn is None:
            with self._connect() as own:
                return self.verify_master_secret(account_id, master_secret, own)
        row = conn.execute(
            "SELECT master_secret_hash FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        if row is None:
            self._burn_time(master_secret)
            return False
        return self._matches(master_secret, row["master_secret_hash"])

    # ── rotation ────────────────────────────────────────────────────

    def rotate_master_secret(
        self,
        account_id: str,
        current_master_secret: str,
        new_master_secret: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        """Swap the master-secret verifier hash.

        Entry ciphertexts are untouched here; re-encryption belongs to the
        caller. Pass ``conn`` to join the caller's transaction.

        Raises:
            WeakSecret: The new secret is too short.
            InvalidCredential: The current secret does not match.
        """
        check_secret_strength(new_master_secret, "Master password")
        self._rotate(account_id, "master_secret_hash", current_master_secret,
                     new_master_secret, conn)

    def rotate_account_secret(
        self,
        account_id: str,
        current_account_secret: str,
        new_account_secret: str,
    ) -> None:
        """Swap the login secret hash (same contract as rotate_master_secret)."""
        check_secret_strength(new_account_secret, "Password")
        self._rotate(account_id, "account_secret_hash", current_account_secret,
                     new_account_secret, None)

    def _rotate(self, account_id, column, current, new, conn):
        if conn is None:
            with self._connect() as own:
                return self._rotate(account_id, column, current, new, own)
        row = conn.execute(
            f"SELECT {column} FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        if row is None or not self._matches(current, row[column]):
            raise InvalidCredential()
        conn.execute(
            f"UPDATE accounts SET {column} = ?, updated_at = ? WHERE id = ?",
            (self.hash_secret(new), utc_timestamp(), account_id),
        )

    # ── helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _identity_taken(conn, handle, contact, exclude_id=None) -> bool:
        # Login accepts either field, so a handle may not equal another
        # account's contact address either.
        row = conn.execute(
            """SELECT id FROM accounts
               WHERE (handle IN (?, ?) OR contact IN (?, ?)) AND id != ?""",
            (handle, contact, handle, contact, exclude_id or ""),
        ).fetchone()
        return row is not None

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            handle=row["handle"],
            contact=row["contact"],
            kdf_salt=bytes(row["kdf_salt"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
