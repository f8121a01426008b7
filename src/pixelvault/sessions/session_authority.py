# Session Authority
#
# Issues and validates session tokens. Each session tracks two independent
# facts: "authenticated" (the account secret was checked) and "unlocked"
# (the master secret was checked for the same account).
#
#   [anonymous] --begin_session--> [authenticated]
#   [authenticated] --unlock_vault(ok)--> [unlocked]
#   [unlocked] --master rotation / lock--> [authenticated]
#   [any] --end_session / expiry--> [anonymous]
#
# Tokens are 256-bit random strings handed to the client; only their SHA-256
# digest is stored, so a database leak does not yield live sessions.

import hashlib
import logging
import secrets
import time
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..core.db import connect as db_connect
from ..errors import InvalidCredential, NotAuthenticated, VaultLocked

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class SessionState:
    """Result of validating a token."""
    account_id: str
    authenticated: bool
    unlocked: bool
    created_at: float
    expires_at: float


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionAuthority:
    """SQLite-backed session table with an absolute TTL.

    Args:
        db_path: Path to the SQLite database file (shared with the
                 credential store so sessions cascade with accounts).
        ttl_seconds: Lifetime of a session from creation.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        db_path: Path,
        ttl_seconds: int = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._init_database()

    def _connect(self):
        return closing(db_connect(self.db_path, row_factory=True))

    def _init_database(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    token_hash     TEXT PRIMARY KEY,
                    account_id     TEXT NOT NULL
                                   REFERENCES accounts(id) ON DELETE CASCADE,
                    authenticated  INTEGER NOT NULL DEFAULT 1,
                    unlocked       INTEGER NOT NULL DEFAULT 0,
                    created_at     REAL NOT NULL,
                    expires_at     REAL NOT NULL,
                    CHECK (unlocked = 0 OR authenticated = 1)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_account ON sessions(account_id)"
            )

    # ── lifecycle ───────────────────────────────────────────────────

    def begin_session(self, account_id: str) -> str:
        """Start an authenticated, locked session and return its token."""
        token = secrets.token_urlsafe(32)
        now = self._clock()
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO sessions
                   (token_hash, account_id, authenticated, unlocked, created_at, expires_at)
                   VALUES (?, ?, 1, 0, ?, ?)""",
                (_digest(token), account_id, now, now + self.ttl_seconds),
            )
        return token

    def validate(self, token: Optional[str], conn=None) -> SessionState:
        """Return the session's state.

        Pass ``conn`` to read inside the caller's transaction.

        Raises:
            NotAuthenticated: Token missing, unknown or expired.
        """
        if not token:
            raise NotAuthenticated()
        if conn is None:
            with self._connect() as own:
                return self.validate(token, own)
        row = conn.execute(
            "SELECT * FROM sessions WHERE token_hash = ?", (_digest(token),)
        ).fetchone()
        if row is None:
            raise NotAuthenticated()
        if row["expires_at"] <= self._clock():
            conn.execute(
                "DELETE FROM sessions WHERE token_hash = ?", (row["token_hash"],)
            )
            logger.debug("Session expired for account %s", row["account_id"])
            raise NotAuthenticated()
        return SessionState(
            account_id=row["account_id"],
            authenticated=bool(row["authenticated"]),
            unlocked=bool(row["unlocked"]),
            created_at=row["created_at"],
            expires_at=row["expires_at"],
        )

    def require_authenticated(self, token: Optional[str], conn=None) -> SessionState:
        state = self.validate(token, conn)
        if not state.authenticated:
            raise NotAuthenticated()
        return state

    def require_unlocked(self, token: Optional[str]) -> SessionState:
        """Validate and insist on an unlocked vault.

        Raises:
            NotAuthenticated: No valid session.
            VaultLocked: Session valid but master secret not yet verified.
        """
        state = self.require_authenticated(token)
        if not state.unlocked:
            raise VaultLocked()
        return state

    def unlock_vault(
        self,
        token: Optional[str],
        master_secret_ok: bool,
        conn=None,
    ) -> SessionState:
        """Flip the unlocked flag after a master-secret check.

        Pass ``conn`` to flip it in the same transaction that ran the check.

        Raises:
            NotAuthenticated: No authenticated session behind the token.
            InvalidCredential: The master-secret check failed; the flag is
                left as it was.
        """
        if conn is None:
            with self._connect() as own:
                return self.unlock_vault(token, master_secret_ok, own)
        state = self.require_authenticated(token, conn)
        if not master_secret_ok:
            raise InvalidCredential()
        cursor = conn.execute(
            "UPDATE sessions SET unlocked = 1 WHERE token_hash = ? AND authenticated = 1",
            (_digest(token),),
        )
        if cursor.rowcount == 0:
            # Ended or expired since it was validated
            raise NotAuthenticated()
        return SessionState(state.account_id, True, True, state.created_at, state.expires_at)

    def lock_vault(self, token: Optional[str]) -> None:
        self.require_authenticated(token)
        with self._connect() as conn:
            conn.execute(
                "UPDATE sessions SET unlocked = 0 WHERE token_hash = ?", (_digest(token),)
            )

    def reset_unlocked(self, account_id: str, conn=None) -> int:
        """Relock every live session of an account. Returns sessions touched."""
        if conn is None:
            with self._connect() as own:
                return self.reset_unlocked(account_id, own)
        cursor = conn.execute(
            "UPDATE sessions SET unlocked = 0 WHERE account_id = ? AND unlocked = 1",
            (account_id,),
        )
        return cursor.rowcount

    def end_session(self, token: Optional[str]) -> None:
        """Destroy a session. Unknown tokens are ignored."""
        if not token:
            return
        with self._connect() as conn:
            conn.execute("DELETE FROM sessions WHERE token_hash = ?", (_digest(token),))

    def end_all_sessions(self, account_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE account_id = ?", (account_id,)
            )
        return cursor.rowcount

    def purge_expired(self) -> int:
        """Drop every expired session. Returns the number removed."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE expires_at <= ?", (self._clock(),)
            )
        if cursor.rowcount:
            logger.info("Purged %d expired sessions", cursor.rowcount)
        return cursor.rowcount
