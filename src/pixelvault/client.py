# PixelVault HTTP client
#
# Speaks the REST API with httpx and exposes the same method set as
# VaultService, so a VaultController can run against a remote server
# unchanged. Error responses are turned back into the typed VaultError the
# server raised.

import logging
from typing import Dict, List, Mapping, Optional, Tuple

import httpx

from .errors import (
    DuplicateIdentity,
    InvalidCredential,
    InvalidKind,
    NotAuthenticated,
    NotFound,
    PayloadTooLarge,
    StaleEntrySet,
    VaultError,
    VaultLocked,
    WeakSecret,
)
from .vault.entry_store import EntryRecord

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SEC = 30.0
SESSION_HEADER = "X-Session-Token"

# Checked in order; a status shared by several errors is told apart by the
# public message in the response detail.
_REMOTE_ERRORS = (
    InvalidCredential,
    NotAuthenticated,
    VaultLocked,
    DuplicateIdentity,
    StaleEntrySet,
    NotFound,
    InvalidKind,
    PayloadTooLarge,
)


class RemoteError(VaultError):
    """An error response that maps to no known vault error (e.g. 422 validation)."""

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        super().__init__(detail)


def error_from_response(resp: httpx.Response) -> VaultError:
    """Rebuild the VaultError behind an error response."""
    try:
        detail = resp.json().get("detail", "")
    except ValueError:
        detail = resp.text
    if not isinstance(detail, str):
        return RemoteError(resp.status_code, str(detail))

    for cls in _REMOTE_ERRORS:
        if cls.status_code == resp.status_code and cls.public_message == detail:
            return cls()
    if resp.status_code == WeakSecret.status_code:
        return WeakSecret(detail)
    return RemoteError(resp.status_code, detail)


class VaultClient:
    """
    Client for the PixelVault API.

    Args:
        base_url: Server root, e.g. ``http://127.0.0.1:8000``.
        http: Pre-built httpx client (or FastAPI TestClient); when given,
              ``base_url`` is ignored and the caller owns its lifetime.
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8000", http: Optional[httpx.Client] = None):
        self._owns_http = http is None
        self._http = http or httpx.Client(
            base_url=base_url,
            timeout=REQUEST_TIMEOUT_SEC,
            headers={"Accept": "application/json", "User-Agent": "PixelVault/0.1"},
        )

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ── HTTP helpers ────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        token: Optional[str] = None,
        json: Optional[dict] = None,
    ) -> dict:
        headers = {SESSION_HEADER: token} if token else {}
        resp = self._http.request(method, path, headers=headers, json=json)
        if resp.status_code >= 400:
            error = error_from_response(resp)
            logger.debug("%s %s -> %d %s", method, path, resp.status_code, type(error).__name__)
            raise error
        return resp.json()

    @staticmethod
    def _record(data: dict) -> EntryRecord:
        return EntryRecord(
            id=data["id"],
            owner_id=None,
            kind=data["kind"],
            ciphertext=data["ciphertext"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    # ── authentication ──────────────────────────────────────────────

    def register(self, handle: str, contact: str, account_secret: str, master_secret: str) -> Tuple[dict, str]:
        data = self._request("POST", "/api/auth/register", json={
            "username": handle,
            "email": contact,
            "password": account_secret,
            "master_password": master_secret,
        })
        return data["account"], data["token"]

    def login(self, handle: str, account_secret: str) -> Tuple[dict, str]:
        data = self._request("POST", "/api/auth/login", json={
            "username": handle,
            "password": account_secret,
        })
        return data["account"], data["token"]

    def verify_master(self, token: str, master_secret: str) -> dict:
        return self._request(
            "POST", "/api/auth/verify-master", token,
            json={"master_password": master_secret},
        )

    def lock(self, token: str) -> None:
        self._request("POST", "/api/auth/lock", token)

    def logout(self, token: str) -> None:
        self._request("POST", "/api/auth/logout", token)

    def session_info(self, token: Optional[str]) -> dict:
        return self._request("GET", "/api/auth/session", token)

    # ── profile ─────────────────────────────────────────────────────

    def get_profile(self, token: str) -> dict:
        return self._request("GET", "/api/users/profile", token)["account"]

    def update_profile(self, token: str, handle: str, contact: str) -> dict:
        data = self._request("PUT", "/api/users/profile", token, json={
            "username": handle,
            "email": contact,
        })
        return data["account"]

    def change_account_secret(self, token: str, current: str, new: str) -> None:
        self._request("PUT", "/api/users/change-password", token, json={
            "current_password": current,
            "new_password": new,
        })

    def change_master_secret(self, token: str, current: str, new: str, staged: Mapping[str, str]) -> int:
        data = self._request("PUT", "/api/users/change-master-password", token, json={
            "current_master_password": current,
            "new_master_password": new,
            "entries": dict(staged),
        })
        return data["reencrypted"]

    def delete_account(self, token: str, account_secret: str) -> None:
        self._request("DELETE", "/api/users/account", token, json={"password": account_secret})

    # ── entries ─────────────────────────────────────────────────────

    def list_entries(self, token: str) -> List[EntryRecord]:
        data = self._request("GET", "/api/entries", token)
        return [self._record(e) for e in data["entries"]]

    def get_entry(self, token: str, entry_id: str) -> EntryRecord:
        return self._record(self._request("GET", f"/api/entries/{entry_id}", token)["entry"])

    def create_entry(self, token: str, kind: str, ciphertext: str) -> EntryRecord:
        data = self._request("POST", "/api/entries", token, json={
            "kind": kind,
            "ciphertext": ciphertext,
        })
        return self._record(data["entry"])

    def update_entry(self, token: str, entry_id: str, ciphertext: str) -> EntryRecord:
        data = self._request("PUT", f"/api/entries/{entry_id}", token, json={"ciphertext": ciphertext})
        return self._record(data["entry"])

    def delete_entry(self, token: str, entry_id: str) -> None:
        self._request("DELETE", f"/api/entries/{entry_id}", token)

    def delete_all_entries(self, token: str) -> int:
        return self._request("DELETE", "/api/entries", token)["deleted_count"]

    def summarize_entries(self, token: str) -> Dict[str, int]:
        return self._request("GET", "/api/entries/summary", token)
