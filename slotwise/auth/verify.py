"""
verify.py
---------
Purpose:
    JWT verification using Supabase JWKS (ES256).

Notes:
    - Fetches JWKS from Supabase and caches keys.
    - Provides `auth_dependency` for protected routes.
    - Provides `browser_auth_dependency` for routes opened by a browser
      redirect, where the token may arrive as a `token` query parameter.
"""

import jwt
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from slotwise.config import settings

SUPABASE_AUDIENCE = "authenticated"

_jwk_client = PyJWKClient(settings.jwks_url())
_security = HTTPBearer()
_optional_security = HTTPBearer(auto_error=False)


def verify_jwt(token: str) -> dict:
    try:
        signing_key = _jwk_client.get_signing_key_from_jwt(token)
        decoded = jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            audience=SUPABASE_AUDIENCE,
            options={"verify_exp": True, "require": ["exp", "sub"]},
        )
        return decoded
    except jwt.PyJWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)


def browser_auth_dependency(
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_security),
    token: str | None = Query(default=None, description="Access token for browser redirects"),
) -> dict | None:
    """Claims from the Authorization header or `token` query; None when neither is sent."""
    raw = credentials.credentials if credentials else token
    if not raw:
        return None
    return verify_jwt(raw)
