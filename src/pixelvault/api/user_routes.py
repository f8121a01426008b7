# Users API - Profile, secret changes and account deletion

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..errors import VaultError
from ..service import get_vault_service
from .security import http_error, session_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


# ── Pydantic Models ──────────────────────────────────────────────────


class UpdateProfileRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ChangeMasterPasswordRequest(BaseModel):
    current_master_password: str
    new_master_password: str
    # Every entry id of the account -> its ciphertext under the new secret
    entries: Dict[str, str] = Field(default_factory=dict)


class DeleteAccountRequest(BaseModel):
    password: str


# ── Routes ───────────────────────────────────────────────────────────


@router.get("/profile")
def get_profile(token: Optional[str] = Depends(session_token)):
    try:
        account = get_vault_service().get_profile(token)
    except VaultError as e:
        raise http_error(e)
    return {"account": account.to_dict()}


@router.put("/profile")
def update_profile(
    body: UpdateProfileRequest,
    token: Optional[str] = Depends(session_token),
):
    try:
        account = get_vault_service().update_profile(token, body.username, body.email)
    except VaultError as e:
        raise http_error(e)
    return {"account": account.to_dict()}


@router.put("/change-password")
def change_password(
    body: ChangePasswordRequest,
    token: Optional[str] = Depends(session_token),
):
    """Change the login password. Does not touch the vault."""
    try:
        get_vault_service().change_account_secret(
            token, body.current_password, body.new_password
        )
    except VaultError as e:
        raise http_error(e)
    return {"success": True}


@router.put("/change-master-password")
def change_master_password(
    body: ChangeMasterPasswordRequest,
    token: Optional[str] = Depends(session_token),
):
    """
    Rotate the master password with every entry already re-encrypted.

    The body must carry a ciphertext for exactly the account's current
    entries; anything else is rejected with 409 and nothing changes. On
    success every session of the account is locked again.
    """
    try:
        count = get_vault_service().change_master_secret(
            token,
            body.current_master_password,
            body.new_master_password,
            body.entries,
        )
    except VaultError as e:
        raise http_error(e)
    return {"success": True, "unlocked": False, "reencrypted": count}


@router.delete("/account")
def delete_account(
    body: DeleteAccountRequest,
    token: Optional[str] = Depends(session_token),
):
    """Delete the account with all of its entries and sessions."""
    try:
        get_vault_service().delete_account(token, body.password)
    except VaultError as e:
        raise http_error(e)
    return {"success": True}
