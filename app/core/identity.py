"""
Sign in with Apple / Google.
ID tokens are verified against the provider's published JWKS.
"""
import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

import requests
from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

APPLE_ISSUER = "https://appleid.apple.com"
APPLE_JWKS_URL = "https://appleid.apple.com/auth/keys"
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"


class IdentityTokenError(Exception):
    """The ID token could not be verified."""


class UnsupportedIssuerError(IdentityTokenError):
    """The ID token was issued by a provider we do not accept."""


@lru_cache(maxsize=4)
def fetch_jwks(url: str) -> Dict[str, Any]:
    """Fetch and cache a provider's public keys."""
    response = requests.get(url, timeout=10)
    response.raise_for_status()
    return response.json()


def peek_issuer(token: str) -> str:
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as e:
        raise IdentityTokenError(f"malformed token: {e}")
    return str(claims.get("iss", ""))


def _key_for(kid: Optional[str], jwks_url: str) -> Optional[Dict[str, Any]]:
    try:
        keys = fetch_jwks(jwks_url).get("keys", [])
    except requests.RequestException as e:
        logger.error(f"Fetching JWKS from {jwks_url} failed: {e}")
        raise IdentityTokenError("jwks unavailable")
    return next((key for key in keys if key.get("kid") == kid), None)


def find_signing_key(token: str, jwks_url: str) -> Dict[str, Any]:
    try:
        header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise IdentityTokenError(f"malformed token header: {e}")

    kid = header.get("kid")
    key = _key_for(kid, jwks_url)
    if key is None:
        # unknown kid: the provider may have rotated its keys since we cached them
        logger.info(f"Signing key {kid} not cached, refreshing {jwks_url}")
        fetch_jwks.cache_clear()
        key = _key_for(kid, jwks_url)
    if key is None:
        raise IdentityTokenError(f"no signing key matches kid={kid}")
    return key


def _verify(token: str, jwks_url: str, audiences: List[str], issuer: str) -> Dict[str, Any]:
    if not audiences:
        raise IdentityTokenError("no client ids configured for provider")

    key = find_signing_key(token, jwks_url)
    last_error = None
    # jose checks a single audience per call
    for audience in audiences:
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[key.get("alg", "RS256")],
                audience=audience,
                issuer=issuer,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            last_error = e
    raise IdentityTokenError(f"token rejected: {last_error}")


def verify_apple_id_token(token: str) -> Dict[str, Any]:
    return _verify(token, APPLE_JWKS_URL, settings.APPLE_CLIENT_IDS, APPLE_ISSUER)


def verify_google_id_token(token: str) -> Dict[str, Any]:
    issuer = peek_issuer(token)
    return _verify(token, GOOGLE_JWKS_URL, settings.GOOGLE_CLIENT_IDS, issuer)


def verify_id_token(token: str) -> Dict[str, Any]:
    """
    Route the token to its provider by the unverified `iss` claim.
    Returns {"provider", "sub", "email", "name"}.
    """
    issuer = peek_issuer(token)
    if issuer == APPLE_ISSUER:
        claims = verify_apple_id_token(token)
        provider = "apple"
    elif issuer in GOOGLE_ISSUERS:
        claims = verify_google_id_token(token)
        provider = "google"
    else:
        raise UnsupportedIssuerError(issuer or "missing iss")

    logger.info(f"Verified {provider} identity token")
    return {
        "provider": provider,
        "sub": str(claims["sub"]),
        "email": claims.get("email"),
        "name": claims.get("name"),
    }
