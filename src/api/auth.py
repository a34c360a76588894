"""Operator authentication.

This module handles:
- Exchanging the shared operator secret for a signed session token
- Resolving bearer tokens into AdminSession credentials for privileged routes
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from src import auth_utils
from src.auth_utils import AdminSession
from src.api.common import ApiModel
from src.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])
security = HTTPBearer(auto_error=False)


# ============================================================================
# Pydantic Models
# ============================================================================

class LoginRequest(ApiModel):
    """Operator login request."""
    password: str


class TokenResponse(ApiModel):
    """Operator session token."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class SessionResponse(ApiModel):
    """Details of the caller's operator session."""
    subject: str
    issued_at: datetime
    expires_at: datetime


# ============================================================================
# Authentication Dependencies
# ============================================================================

async def get_admin_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> AdminSession:
    """
    Dependency that requires a valid operator session.

    Raises HTTPException 401 if the bearer token is missing or invalid.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        return auth_utils.session_from_token(credentials.credentials)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )


async def get_optional_admin_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[AdminSession]:
    """Dependency yielding the operator session if one was presented, else None."""
    if credentials is None:
        return None
    try:
        return auth_utils.session_from_token(credentials.credentials)
    except ValueError:
        return None


# ============================================================================
# Authentication Endpoints
# ============================================================================

@router.post("/login", response_model=TokenResponse)
async def login(credentials: LoginRequest):
    """
    Exchange the operator secret for a session token.

    - Compares against ADMIN_PASSWORD_HASH (bcrypt) or ADMIN_PASSWORD
    - Returns a short-lived bearer token
    """
    if not settings.admin_password and not settings.admin_password_hash:
        logger.warning("Operator login attempted but no admin password is configured")

    if not auth_utils.verify_admin_password(credentials.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password"
        )

    return TokenResponse(
        access_token=auth_utils.create_admin_token(),
        expires_in=settings.jwt_access_token_expire_minutes * 60
    )


@router.get("/session", response_model=SessionResponse)
async def get_session(session: AdminSession = Depends(get_admin_session)):
    """Return the operator session the bearer token resolves to."""
    return SessionResponse(
        subject=session.subject,
        issued_at=session.issued_at,
        expires_at=session.expires_at
    )
