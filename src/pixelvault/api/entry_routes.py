# Entries API - Ciphertext CRUD for an unlocked session
#
# The server stores and returns opaque blobs. Kind is chosen at creation and
# never changes; the owner always comes from the session token.
#
# Routes are plain `def` so SQLite and lock waits run in the threadpool.

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..errors import VaultError
from ..service import get_vault_service
from .security import http_error, session_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/entries", tags=["entries"])


# ── Pydantic Models ──────────────────────────────────────────────────


class CreateEntryRequest(BaseModel):
    kind: str = Field(..., min_length=1)
    ciphertext: str = Field(..., min_length=1)


class UpdateEntryRequest(BaseModel):
    ciphertext: str = Field(..., min_length=1)


# ── Routes ───────────────────────────────────────────────────────────


@router.get("")
def list_entries(token: Optional[str] = Depends(session_token)):
    """List the caller's entries, most recently updated first."""
    try:
        records = get_vault_service().list_entries(token)
    except VaultError as e:
        raise http_error(e)
    return {"entries": [r.to_dict() for r in records]}


# Declared before /{entry_id} so "summary" is not taken for an id.
@router.get("/summary")
def summarize_entries(token: Optional[str] = Depends(session_token)):
    try:
        return get_vault_service().summarize_entries(token)
    except VaultError as e:
        raise http_error(e)


@router.get("/{entry_id}")
def get_entry(entry_id: str, token: Optional[str] = Depends(session_token)):
    try:
        record = get_vault_service().get_entry(token, entry_id)
    except VaultError as e:
        raise http_error(e)
    return {"entry": record.to_dict()}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_entry(
    body: CreateEntryRequest,
    token: Optional[str] = Depends(session_token),
):
    try:
        record = get_vault_service().create_entry(token, body.kind, body.ciphertext)
    except VaultError as e:
        raise http_error(e)
    return {"entry": record.to_dict()}


@router.put("/{entry_id}")
def update_entry(
    entry_id: str,
    body: UpdateEntryRequest,
    token: Optional[str] = Depends(session_token),
):
    """Replace an entry's ciphertext. Its kind and created_at stay."""
    try:
        record = get_vault_service().update_entry(token, entry_id, body.ciphertext)
    except VaultError as e:
        raise http_error(e)
    return {"entry": record.to_dict()}


@router.delete("/{entry_id}")
def delete_entry(entry_id: str, token: Optional[str] = Depends(session_token)):
    try:
        get_vault_service().delete_entry(token, entry_id)
    except VaultError as e:
        raise http_error(e)
    return {"success": True}


@router.delete("")
def delete_all_entries(token: Optional[str] = Depends(session_token)):
    try:
        count = get_vault_service().delete_all_entries(token)
    except VaultError as e:
        raise http_error(e)
    return {"deleted_count": count}
