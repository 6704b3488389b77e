import base64
import logging
import secrets
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

import bcrypt
from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from app.core.config import settings
from app.db.mongo import to_object_id
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

COMMON_PASSWORDS = {
    "password", "123456", "qwerty", "letmein", "abc123", "111111", "123456789", "iloveyou",
}


def get_password_hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def check_password_strength(password: str) -> Tuple[bool, Optional[str]]:
    """Returns (ok, reason). Needs 8+ chars and three of lower/upper/digit/symbol."""
    if not isinstance(password, str) or len(password) < 8:
        return False, "min_8_chars"
    classes = [
        any(c.islower() for c in password),
        any(c.isupper() for c in password),
        any(c.isdigit() for c in password),
        any(not c.isalnum() and not c.isspace() for c in password),
    ]
    if sum(classes) < 3:
        return False, "use_mix_of_upper_lower_digit_symbol"
    if password.lower() in COMMON_PASSWORDS:
        return False, "too_common"
    return True, None


def create_access_token(data: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    now = utcnow()
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    to_encode = dict(data)
    to_encode.update({
        "iss": settings.JWT_ISSUER,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            issuer=settings.JWT_ISSUER,
            options={"leeway": 60},
        )
    except JWTError as e:
        logger.info(f"JWT verification failed: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def issue_access_token(user: Dict[str, Any]) -> str:
    return create_access_token({
        "sub": str(user["_id"]),
        "roles": user.get("roles") or ["user"],
        "ver": user.get("token_version", 1),
    })


def mint_refresh_token(user_id) -> Tuple[str, Dict[str, Any]]:
    """
    Opaque refresh token "<selector>.<verifier>". Only the bcrypt hash of the
    verifier is stored; the selector is the lookup key.
    """
    selector = str(uuid.uuid4())
    verifier = base64.urlsafe_b64encode(secrets.token_bytes(32)).rstrip(b"=").decode("ascii")
    now = utcnow()
    doc = {
        "selector": selector,
        "hash": get_password_hash(verifier),
        "user_id": user_id,
        "jti": str(uuid.uuid4()),
        "revoked": False,
        "created_at": now,
        "expires_at": now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    }
    return f"{selector}.{verifier}", doc


def split_refresh_token(token: str) -> Optional[Tuple[str, str]]:
    selector, _, verifier = (token or "").partition(".")
    if not selector or not verifier:
        return None
    return selector, verifier


def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """Extract user_id from the bearer JWT"""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_bearer")

    token = authorization[len("Bearer "):].strip()
    payload = decode_access_token(token)
    user_id = payload.get("sub")
    if not user_id or to_object_id(user_id) is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
    return user_id
