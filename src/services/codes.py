"""Access code format handling and issuance.

Canonical codes are eight uppercase alphanumerics grouped as ``XXXX-XXXX``.
Generated codes avoid characters that are easy to misread (0/O, 1/I).
"""

import logging
import re
import secrets
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth_utils import AdminSession
from ..config import settings
from ..database import crud
from ..database.models import AccessCode
from .errors import CodeIssueError, store_guard

logger = logging.getLogger(__name__)

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_GROUP_LENGTH = 4
CODE_LENGTH = CODE_GROUP_LENGTH * 2

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def normalize_code(raw) -> Optional[str]:
    """
    Bring user input into canonical ``XXXX-XXXX`` form.

    Any punctuation or whitespace is dropped and letters are upper-cased.

    Returns:
        Canonical code, or None if the input cannot be normalized
    """
    if not isinstance(raw, str):
        return None
    stripped = _NON_ALNUM.sub("", raw).upper()
    if len(stripped) != CODE_LENGTH:
        return None
    return f"{stripped[:CODE_GROUP_LENGTH]}-{stripped[CODE_GROUP_LENGTH:]}"


def generate_code() -> str:
    """Generate a random canonical code from the unambiguous alphabet."""
    chars = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
    return f"{chars[:CODE_GROUP_LENGTH]}-{chars[CODE_GROUP_LENGTH:]}"


def issue_access_code(
    db: Session,
    session: AdminSession,
    name: Optional[str],
    max_uses: int,
    expires_at: Optional[datetime] = None,
    is_long_term: bool = False,
    code: Optional[str] = None
) -> AccessCode:
    """
    Issue a new access code on behalf of an operator.

    Args:
        db: Database session
        session: Credential of the operator issuing the code
        name: Operator-facing label
        max_uses: Quota, 0 for unlimited
        expires_at: Optional expiry
        is_long_term: Exempt the code from auto-retirement
        code: Operator-chosen code; generated when omitted

    Raises:
        CodeIssueError: Chosen code is malformed or taken, or no free code
            could be generated
    """
    if max_uses < 0:
        raise CodeIssueError("maxUses must be zero or positive")

    if code is not None:
        canonical = normalize_code(code)
        if canonical is None:
            raise CodeIssueError("Code must contain exactly 8 letters or digits")
        with store_guard(db, "issue"):
            if crud.get_access_code_by_code(db, canonical) is not None:
                raise CodeIssueError("Access code already exists")
            try:
                return crud.create_access_code(
                    db, canonical, name, max_uses, expires_at, is_long_term, session.subject
                )
            except IntegrityError:
                db.rollback()
                raise CodeIssueError("Access code already exists")

    for _ in range(settings.code_issue_max_attempts):
        candidate = generate_code()
        with store_guard(db, "issue"):
            try:
                access_code = crud.create_access_code(
                    db, candidate, name, max_uses, expires_at, is_long_term, session.subject
                )
            except IntegrityError:
                db.rollback()
                logger.info("Generated code %s collided, drawing another", candidate)
                continue
        logger.info("Issued access code %s (max_uses=%d, long_term=%s) by %s",
                    access_code.code, max_uses, is_long_term, session.subject)
        return access_code

    raise CodeIssueError("Could not generate a unique access code")
