# Auth API - Registration, login and the two-secret unlock
#
# A session starts authenticated but locked (account secret). Verifying the
# master secret unlocks it; lock/rotation relocks it; logout ends it.
#
# Routes are plain `def` so bcrypt runs in the threadpool, not on the loop.

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..errors import VaultError
from ..service import get_vault_service
from .security import http_error, session_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# ── Pydantic Models ──────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str
    master_password: str


class LoginRequest(BaseModel):
    # Either the username or the email address
    username: str = Field(..., min_length=1)
    password: str


class VerifyMasterRequest(BaseModel):
    master_password: str


# ── Routes ───────────────────────────────────────────────────────────


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest):
    """Create an account and return a locked session for it."""
    try:
        account, token = get_vault_service().register(
            body.username, body.email, body.password, body.master_password
        )
    except VaultError as e:
        raise http_error(e)
    return {"account": account.to_dict(include_salt=True), "token": token}


@router.post("/login")
def login(body: LoginRequest):
    """Check the account secret and begin a locked session."""
    try:
        account, token = get_vault_service().login(body.username, body.password)
    except VaultError as e:
        raise http_error(e)
    return {"account": account.to_dict(include_salt=True), "token": token}


@router.post("/verify-master")
def verify_master(
    body: VerifyMasterRequest,
    token: Optional[str] = Depends(session_token),
):
    """
    Unlock the vault for this session.

    A wrong master password leaves the session authenticated but locked.
    """
    try:
        state = get_vault_service().verify_master(token, body.master_password)
    except VaultError as e:
        raise http_error(e)
    return {"unlocked": state.unlocked}


@router.post("/lock")
def lock(token: Optional[str] = Depends(session_token)):
    try:
        get_vault_service().lock(token)
    except VaultError as e:
        raise http_error(e)
    return {"unlocked": False}


@router.post("/logout")
def logout(token: Optional[str] = Depends(session_token)):
    """End the session. Logging out without a live session still succeeds."""
    get_vault_service().logout(token)
    return {"success": True}


@router.get("/session")
def session_info(token: Optional[str] = Depends(session_token)):
    return get_vault_service().session_info(token)
