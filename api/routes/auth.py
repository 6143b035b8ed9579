"""
Authentication routes.

Exchanges the admin API key for a short-lived JWT so dashboards do not
have to hold the key itself.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.middleware.auth import create_jwt_token, require_admin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str


@router.post("/token", response_model=TokenResponse)
async def issue_token(user: Dict[str, Any] = Depends(require_admin)):
    """Issue an admin JWT to a caller holding the API key or a valid admin token."""
    token, expires_in = create_jwt_token({"sub": user.get("sub", "admin"), "role": "admin"})
    logger.info(f"Issued admin token for {user.get('sub')}")
    return TokenResponse(access_token=token, expires_in=expires_in, role="admin")
