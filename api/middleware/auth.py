"""
Authentication for the admin endpoints.

Supports both API key and JWT bearer token authentication.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from fastapi import HTTPException, Security, Depends, status
from fastapi.security import APIKeyHeader, HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from config.settings import get_settings

logger = logging.getLogger(__name__)

# ── Security schemes ───────────────────────────────────────────────
API_KEY_HEADER = "X-API-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


# ── JWT ────────────────────────────────────────────────────────────

def create_jwt_token(data: Dict[str, Any]) -> Tuple[str, int]:
    """
    Create a JWT token.

    Returns:
        Tuple of (token_string, expires_in_seconds)
    """
    settings = get_settings()
    expires = datetime.utcnow() + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {**data, "exp": expires}
    token = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return token, settings.jwt_expire_minutes * 60


def decode_jwt_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
        )


# ── Dependencies ──────────────────────────────────────────────────

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    api_key: Optional[str] = Security(api_key_header),
) -> Dict[str, Any]:
    """
    Get current user from JWT token or API key.

    Returns user payload dict with at least: sub, role
    """
    if credentials and credentials.credentials:
        return decode_jwt_token(credentials.credentials)

    expected_key = get_settings().admin_api_key
    if not expected_key:
        # Dev mode: no admin key configured
        logger.warning("Admin authentication disabled - no ADMIN_API_KEY configured")
        return {"sub": "anonymous", "role": "admin"}

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "ApiKey"},
        )
    if api_key != expected_key:
        logger.warning("Invalid API key attempt")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")

    return {"sub": "api_key_user", "role": "admin"}


def require_role(*roles: str) -> Callable:
    """
    Factory that returns a dependency requiring specific roles.

    Usage:
        @router.get("/admin", dependencies=[Depends(require_role("admin"))])
    """
    async def _check_role(user: Dict = Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of roles: {', '.join(roles)}",
            )
        return user
    return _check_role


require_admin = require_role("admin")
