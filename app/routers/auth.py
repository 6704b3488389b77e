import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Header, HTTPException, status

from app.core.errors import DuplicateRecordError
from app.core.identity import IdentityTokenError, UnsupportedIssuerError, verify_id_token
from app.core.security import (
    check_password_strength,
    get_password_hash,
    issue_access_token,
    mint_refresh_token,
    split_refresh_token,
    verify_password,
)
from app.db import refresh_tokens, users
from app.models.user import RefreshRequest, UserRegister, to_api_user
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def _issue_session(user: Dict[str, Any]) -> Dict[str, Any]:
    refresh_token, doc = mint_refresh_token(user["_id"])
    if not refresh_tokens.save_refresh_token(doc):
        raise HTTPException(status_code=500, detail="session_failed")
    return {
        "token": issue_access_token(user),
        "refresh_token": refresh_token,
        "user": to_api_user(user).model_dump(),
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: UserRegister):
    ok, reason = check_password_strength(body.password)
    if not ok:
        raise HTTPException(status_code=400, detail={"error": "weak_password", "reason": reason})

    if users.get_user_by_email(body.email):
        raise HTTPException(status_code=409, detail="email_already_exists")

    try:
        user = users.create_user({
            "provider": "password",
            "email": body.email,
            "name": (body.name or "").strip() or body.email.split("@")[0],
            "password_hash": get_password_hash(body.password),
        })
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="email_already_exists")
    if not user:
        raise HTTPException(status_code=500, detail="register_failed")

    logger.info(f"Registered user {user['_id']}")
    return _issue_session(user)


def _password_login(payload: Dict[str, Any]) -> Dict[str, Any]:
    email = payload.get("email")
    password = payload.get("password")
    user = users.get_user_by_email(email)
    if not user:
        raise HTTPException(status_code=404, detail="user_not_found")
    if not user.get("password_hash"):
        raise HTTPException(status_code=409, detail="password_login_not_enabled")
    if not verify_password(password, user["password_hash"]):
        logger.warning(f"Invalid password for user {user['_id']}")
        raise HTTPException(status_code=401, detail="invalid_credentials")
    return _issue_session(user)


@router.post("/session")
def create_session(
    authorization: Optional[str] = Header(None),
    payload: Optional[Dict[str, Any]] = Body(None),
):
    """
    Sign in with an Apple/Google ID token (Authorization: Bearer ...) or
    with an email/password JSON body.
    """
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[len("Bearer "):].strip()
        try:
            identity = verify_id_token(token)
        except UnsupportedIssuerError:
            raise HTTPException(status_code=400, detail="unsupported_issuer")
        except IdentityTokenError as e:
            logger.info(f"ID token rejected: {e}")
            raise HTTPException(status_code=401, detail="invalid_token_or_credentials")

        try:
            user = users.upsert_provider_user(
                identity["provider"], identity["sub"], identity.get("email"), identity.get("name")
            )
        except DuplicateRecordError:
            raise HTTPException(status_code=409, detail="account_conflict")
        if not user:
            raise HTTPException(status_code=500, detail="session_failed")
        return _issue_session(user)

    if payload and isinstance(payload.get("email"), str) and isinstance(payload.get("password"), str):
        return _password_login(payload)

    raise HTTPException(status_code=400, detail="no_auth_supplied")


def _check_refresh_token(raw: Optional[str]) -> Dict[str, Any]:
    """Look up and verify a refresh token, returning its stored document."""
    if not raw:
        raise HTTPException(status_code=400, detail="missing_refresh_token")
    parts = split_refresh_token(raw)
    if parts is None:
        raise HTTPException(status_code=400, detail="invalid_refresh_token_format")

    selector, verifier = parts
    doc = refresh_tokens.get_by_selector(selector)
    if (
        not doc
        or doc.get("revoked")
        or doc["expires_at"] <= utcnow()
        or not verify_password(verifier, doc.get("hash"))
    ):
        raise HTTPException(status_code=401, detail="invalid_refresh_token")
    return doc


@router.post("/refresh")
def refresh(body: RefreshRequest):
    doc = _check_refresh_token(body.refresh_token)

    # single use: losing the race on revoke means the token was already spent
    if not refresh_tokens.revoke(doc["selector"]):
        raise HTTPException(status_code=401, detail="invalid_refresh_token")

    user = users.get_user_by_id(doc["user_id"])
    if not user:
        raise HTTPException(status_code=401, detail="invalid_refresh_token")
    return _issue_session(user)


@router.post("/logout")
def logout(body: RefreshRequest):
    doc = _check_refresh_token(body.refresh_token)
    refresh_tokens.revoke(doc["selector"])
    return {"success": True}
