"""OIDC JWT authentication.

Provides:
- verify_token(): Validates JWT and returns subject claim
- get_current_user(): FastAPI dependency for the authenticated principal
- get_optional_user(): Same, but anonymous requests yield None
"""

from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass
from typing import Any

import jwt
import requests
from fastapi import Depends, HTTPException, Request

# JWKS cache with TTL
_jwks_cache: dict[str, Any] | None = None
_jwks_cache_time: float = 0
_jwks_cache_lock = threading.Lock()
_JWKS_CACHE_TTL = 600  # 10 minutes


@dataclass
class CurrentUser:
    """Authenticated principal."""

    id: str
    external_subject: str
    email: str | None
    name: str | None
    role: str = "user"


def _get_settings() -> dict[str, str | None]:
    """Load OIDC settings from environment."""
    return {
        "issuer": os.environ.get("OIDC_ISSUER"),
        "audience": os.environ.get("OIDC_AUDIENCE"),
        "jwks_url": os.environ.get("OIDC_JWKS_URL"),
    }


def _fetch_jwks(jwks_url: str) -> dict[str, Any]:
    """Fetch JWKS from URL."""
    resp = requests.get(jwks_url, timeout=10)
    resp.raise_for_status()
    return resp.json()


def _get_jwks(jwks_url: str, force_refresh: bool = False) -> dict[str, Any]:
    """Get JWKS with caching."""
    global _jwks_cache, _jwks_cache_time

    with _jwks_cache_lock:
        now = time.time()
        if not force_refresh and _jwks_cache is not None and (now - _jwks_cache_time) < _JWKS_CACHE_TTL:
            return _jwks_cache

        try:
            _jwks_cache = _fetch_jwks(jwks_url)
        except requests.RequestException:
            raise HTTPException(status_code=503, detail="Auth temporarily unavailable")
        _jwks_cache_time = now
        return _jwks_cache


def _find_key(jwks: dict[str, Any], kid: str) -> dict[str, Any] | None:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def _decode(token: str, jwk_data: dict[str, Any], issuer: str, audience: str) -> dict[str, Any]:
    try:
        public_key = jwt.algorithms.RSAAlgorithm.from_jwk(jwk_data)
    except (ValueError, jwt.exceptions.InvalidKeyError):
        raise HTTPException(status_code=401, detail="Invalid token")

    return jwt.decode(
        token,
        public_key,
        algorithms=["RS256"],
        issuer=issuer,
        audience=audience,
        options={"require": ["exp", "iss", "aud", "sub"]},
    )


def verify_token(token: str) -> str:
    """Verify JWT and return subject claim.

    Raises:
        HTTPException: 401 if token is invalid, 503 if JWKS is unreachable.
    """
    settings = _get_settings()
    issuer = settings["issuer"]
    audience = settings["audience"]
    jwks_url = settings["jwks_url"]

    if not issuer or not audience or not jwks_url:
        raise HTTPException(status_code=401, detail="OIDC not configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except jwt.exceptions.DecodeError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not kid:
        raise HTTPException(status_code=401, detail="Invalid token")

    key_data = _find_key(_get_jwks(jwks_url), kid)
    if key_data is None:
        # Key may have rotated; refresh once
        key_data = _find_key(_get_jwks(jwks_url, force_refresh=True), kid)
    if key_data is None:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        payload = _decode(token, key_data, issuer, audience)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sub


def _extract_bearer_token(request: Request) -> str | None:
    """Bearer token from the Authorization header, None if absent.

    Raises:
        HTTPException: 401 if the header is malformed.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization header")
    return parts[1]


def _get_user_from_db(external_subject: str) -> CurrentUser | None:
    """Lookup user by external_subject."""
    from hoteria.infra.db import txn
    from hoteria.infra.repositories.loyalty_repository import find_user_by_subject

    with txn() as cur:
        user = find_user_by_subject(cur, external_subject=external_subject)
    if user is None:
        return None
    return CurrentUser(
        id=user["id"],
        external_subject=user["external_subject"],
        email=user["email"],
        name=user["name"],
        role=user["role"],
    )


def _resolve_user(token: str) -> CurrentUser:
    user = _get_user_from_db(verify_token(token))
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: get authenticated user.

    Raises:
        HTTPException: 401 if token invalid/missing, 403 if user not found.
    """
    token = _extract_bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    return _resolve_user(token)


def get_optional_user(request: Request) -> CurrentUser | None:
    """FastAPI dependency: authenticated user, or None for anonymous requests.

    A token that is present but invalid is still rejected.
    """
    token = _extract_bearer_token(request)
    if token is None:
        return None
    return _resolve_user(token)


# Dependency alias for cleaner imports
CurrentUserDep = Depends(get_current_user)
