import base64
import binascii
import logging
import re
import secrets
import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core.config import settings
from app.core.errors import DuplicateRecordError
from app.core.security import (
    check_password_strength,
    get_current_user_id,
    get_password_hash,
    verify_password,
)
from app.db import bills, budgets, recurring, refresh_tokens, rules, transactions, users
from app.db.mongo import to_object_id
from app.models.user import (
    AvatarUpdate,
    EmailChangeRequest,
    PasswordUpdate,
    ProfileUpdate,
    TimezoneUpdate,
    to_api_user,
)
from app.utils import email_service, storage
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

AVATAR_MAX_BYTES = 1024 * 1024
AVATAR_TYPES = {"image/png": "png", "image/jpeg": "jpg", "image/jpg": "jpg", "image/webp": "webp"}
EMAIL_CHANGE_TTL = timedelta(minutes=30)
_DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


def _load_user(user_id: str):
    user = users.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user_not_found")
    return user


@router.get("/me")
def get_me(user_id: str = Depends(get_current_user_id)):
    return {"user": to_api_user(_load_user(user_id)).model_dump()}


@router.get("/user/me")
def get_user_me(user_id: str = Depends(get_current_user_id)):
    return get_me(user_id)


@router.put("/user/profile")
def update_profile(body: ProfileUpdate, user_id: str = Depends(get_current_user_id)):
    fields = {}
    if body.name is not None and body.name.strip():
        fields["name"] = body.name.strip()
    if body.timezone is not None and body.timezone.strip():
        fields["timezone"] = body.timezone.strip()
    if not fields:
        raise HTTPException(status_code=400, detail="no_fields_to_update")

    _load_user(user_id)
    user = users.update_user(user_id, fields)
    if not user:
        raise HTTPException(status_code=500, detail="profile_update_failed")
    return {"user": to_api_user(user).model_dump()}


@router.put("/user/timezone")
def update_timezone(body: TimezoneUpdate, user_id: str = Depends(get_current_user_id)):
    timezone = (body.timezone or "").strip()
    if not timezone:
        raise HTTPException(status_code=400, detail="timezone_required")

    _load_user(user_id)
    user = users.update_user(user_id, {"timezone": timezone})
    if not user:
        raise HTTPException(status_code=500, detail="timezone_update_failed")
    return {"user": to_api_user(user).model_dump()}


@router.put("/user/password")
def change_password(body: PasswordUpdate, user_id: str = Depends(get_current_user_id)):
    user = _load_user(user_id)
    if not user.get("password_hash"):
        raise HTTPException(status_code=400, detail="password_change_not_supported")
    if not verify_password(body.current_password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="invalid_current_password")

    ok, reason = check_password_strength(body.new_password)
    if not ok:
        raise HTTPException(status_code=400, detail={"error": "weak_password", "reason": reason})

    updated = users.update_user(user_id, {
        "password_hash": get_password_hash(body.new_password),
        "token_version": user.get("token_version", 1) + 1,
    })
    if not updated:
        raise HTTPException(status_code=500, detail="password_update_failed")
    logger.info(f"Password changed for user {user_id}")
    return {"success": True}


@router.post("/user/email/request-change")
def request_email_change(body: EmailChangeRequest, user_id: str = Depends(get_current_user_id)):
    user = _load_user(user_id)
    if user.get("password_hash") and not verify_password(body.current_password or "", user["password_hash"]):
        raise HTTPException(status_code=401, detail="invalid_current_password")

    new_email = users.normalize_email(body.new_email)
    existing = users.get_user_by_email(new_email)
    if existing and existing["_id"] != user["_id"]:
        raise HTTPException(status_code=409, detail="email_in_use")

    now = utcnow()
    token = secrets.token_urlsafe(32)
    saved = users.create_email_verification({
        "user_id": user["_id"],
        "new_email": new_email,
        "token": token,
        "used": False,
        "created_at": now,
        "expires_at": now + EMAIL_CHANGE_TTL,
    })
    if not saved:
        raise HTTPException(status_code=500, detail="email_change_failed")

    verify_url = f"{settings.PUBLIC_BASE_URL}{settings.API_PREFIX}/user/email/verify?token={token}"
    sent = email_service.send_email_change_verification(new_email, user.get("name"), verify_url)
    return {"success": True, "email_sent": sent}


@router.get("/user/email/verify")
def verify_email_change(token: str = Query("")):
    verification = users.get_email_verification(token) if token else None
    if not verification:
        raise HTTPException(status_code=400, detail="invalid_token")
    if verification.get("used"):
        raise HTTPException(status_code=400, detail="token_used")
    if verification["expires_at"] <= utcnow():
        raise HTTPException(status_code=400, detail="token_expired")

    existing = users.get_user_by_email(verification["new_email"])
    if existing and existing["_id"] != verification["user_id"]:
        raise HTTPException(status_code=409, detail="email_in_use")

    try:
        user = users.update_user(verification["user_id"], {"email": verification["new_email"]})
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="email_in_use")
    if not user:
        raise HTTPException(status_code=404, detail="user_not_found")

    users.mark_email_verification_used(verification["_id"])
    return {"success": True, "email": user["email"]}


@router.put("/user/avatar")
def update_avatar(body: AvatarUpdate, user_id: str = Depends(get_current_user_id)):
    match = _DATA_URL.match(body.avatar.strip())
    if not match or match.group("mime").lower() not in AVATAR_TYPES:
        raise HTTPException(status_code=400, detail="invalid_image")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="invalid_image")
    if not data:
        raise HTTPException(status_code=400, detail="invalid_image")
    if len(data) > AVATAR_MAX_BYTES:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="image_too_large")

    user = _load_user(user_id)
    mime = match.group("mime").lower()
    key = f"avatars/{user_id}/{uuid.uuid4().hex}.{AVATAR_TYPES[mime]}"
    url = storage.upload_bytes(key, data, mime)
    if not url:
        raise HTTPException(status_code=500, detail="avatar_upload_failed")

    updated = users.update_user(user_id, {"avatar_url": url})
    if not updated:
        raise HTTPException(status_code=500, detail="avatar_update_failed")
    storage.delete_object(storage.key_from_url(user.get("avatar_url")))
    return {"user": to_api_user(updated).model_dump()}


@router.delete("/account")
def delete_account(user_id: str = Depends(get_current_user_id)):
    """Delete the user and everything they own."""
    user = users.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="user_not_found")

    oid = to_object_id(user_id)
    deleted = {
        "refresh_tokens": refresh_tokens.delete_for_user(oid),
        "transactions": transactions.delete_for_user(oid),
        "budgets": budgets.delete_for_user(oid),
        "bills": bills.delete_for_user(oid),
        "recurring_expenses": recurring.delete_for_user(oid),
        "rules": rules.delete_for_user(oid),
    }
    if not users.delete_user(oid):
        raise HTTPException(status_code=500, detail="account_delete_failed")
    storage.delete_object(storage.key_from_url(user.get("avatar_url")))

    logger.info(f"Deleted account {user_id}: {deleted}")
    return {
        "success": True,
        "message": "Account and all data successfully deleted",
        "deleted": {**deleted, "user": 1},
    }
