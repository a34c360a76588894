"""Authentication utilities for the operator credential.

There is a single operator secret (``ADMIN_PASSWORD`` or, preferably, its
bcrypt hash in ``ADMIN_PASSWORD_HASH``). A successful login yields a signed
JWT; each privileged request turns that token back into an explicit
``AdminSession`` that is handed to the operation it authorizes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import secrets

import bcrypt
import jwt
from jwt.exceptions import InvalidTokenError

from src.config import settings


ADMIN_ROLE = "admin"
ADMIN_SUBJECT = "admin"


# ============================================================================
# Password Hashing (using bcrypt directly)
# ============================================================================

def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Used to produce the value for ADMIN_PASSWORD_HASH.

    Args:
        password: Plain text password

    Returns:
        Hashed password
    """
    password_bytes = password.encode('utf-8')

    # Bcrypt has a max password length of 72 bytes, truncate if necessary
    if len(password_bytes) > 72:
        password_bytes = password_bytes[:72]

    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to compare against

    Returns:
        True if password matches, False otherwise
    """
    password_bytes = plain_password.encode('utf-8')
    if len(password_bytes) > 72:
        password_bytes = password_bytes[:72]

    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode('utf-8'))
    except ValueError:
        # Malformed hash in configuration
        return False


def verify_admin_password(candidate: str) -> bool:
    """
    Check a login attempt against the configured operator secret.

    Returns False when no secret is configured at all.
    """
    candidate = (candidate or "").strip()
    if settings.admin_password_hash:
        return verify_password(candidate, settings.admin_password_hash)
    if settings.admin_password:
        expected = settings.admin_password.strip()
        return secrets.compare_digest(candidate.encode('utf-8'), expected.encode('utf-8'))
    return False


# ============================================================================
# JWT Token Management
# ============================================================================

@dataclass(frozen=True)
class AdminSession:
    """Operator credential passed explicitly into privileged operations."""
    subject: str
    issued_at: datetime
    expires_at: datetime


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "access"
    })

    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def create_admin_token(expires_delta: Optional[timedelta] = None) -> str:
    """Create an access token carrying the operator role."""
    return create_access_token({"sub": ADMIN_SUBJECT, "role": ADMIN_ROLE}, expires_delta)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Raises:
        InvalidTokenError: If token is invalid or expired
    """
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm]
    )


def validate_access_token(token: str) -> Dict[str, Any]:
    """
    Validate an access token and return its payload.

    Raises:
        ValueError: If token is invalid, expired, or wrong type
    """
    try:
        payload = decode_token(token)
    except InvalidTokenError as e:
        raise ValueError(f"Invalid token: {str(e)}")

    if payload.get("type") != "access":
        raise ValueError("Invalid token type")

    return payload


def session_from_token(token: str) -> AdminSession:
    """
    Turn a bearer token into an AdminSession.

    Raises:
        ValueError: If the token is invalid or does not carry the operator role
    """
    payload = validate_access_token(token)
    if payload.get("role") != ADMIN_ROLE:
        raise ValueError("Admin privileges required")

    return AdminSession(
        subject=str(payload.get("sub")),
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
