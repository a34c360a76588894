"""CRUD (Create, Read, Update, Delete) operations for database models.

This module provides reusable database operations for access codes, the
redemption audit trail, and protected templates.

Functions that take part in a redemption transaction (``consume_access_code``,
``retire_access_code_if_spent``) never commit; the caller owns the
transaction boundary.
"""

from typing import List, Optional, Any
from datetime import datetime
from uuid import UUID
from sqlalchemy.orm import Session
from sqlalchemy import select, update, and_, or_

from .models import AccessCode, RedemptionAttempt, Template
from ..clock import as_utc, utcnow


# ============================================================================
# Shared SQL predicates
# ============================================================================

def redeemable_clause(now: datetime):
    """Row predicate for a code that can absorb one more redemption at ``now``."""
    return and_(
        AccessCode.is_active == True,
        or_(AccessCode.expires_at == None, AccessCode.expires_at > now),
        or_(AccessCode.max_uses == 0, AccessCode.used_count < AccessCode.max_uses),
    )


def spent_clause(now: datetime):
    """Row predicate for a code that is expired or has exhausted its quota."""
    return or_(
        and_(AccessCode.expires_at != None, AccessCode.expires_at <= now),
        and_(AccessCode.max_uses > 0, AccessCode.used_count >= AccessCode.max_uses),
    )


# ============================================================================
# Access Code CRUD Operations
# ============================================================================

def create_access_code(
    db: Session,
    code: str,
    name: Optional[str] = None,
    max_uses: int = 0,
    expires_at: Optional[datetime] = None,
    is_long_term: bool = False,
    created_by: Optional[str] = None
) -> AccessCode:
    """Create a new access code. ``code`` must already be in canonical form."""
    access_code = AccessCode(
        code=code,
        name=name,
        max_uses=max_uses,
        expires_at=as_utc(expires_at),
        is_long_term=is_long_term,
        created_by=created_by,
        created_at=utcnow()
    )
    db.add(access_code)
    db.commit()
    db.refresh(access_code)
    return access_code


def get_access_code_by_id(db: Session, code_id: UUID) -> Optional[AccessCode]:
    """Get access code by ID."""
    return db.get(AccessCode, code_id, populate_existing=True)


def get_access_code_by_code(db: Session, code: str) -> Optional[AccessCode]:
    """Get an access code by its canonical code string, bypassing the identity map."""
    stmt = (
        select(AccessCode)
        .where(AccessCode.code == code)
        .execution_options(populate_existing=True)
    )
    return db.scalar(stmt)


def consume_access_code(db: Session, code: str, now: datetime) -> int:
    """
    Atomically take one use from a code if it is currently redeemable.

    The validity checks and the increment are a single conditional UPDATE, so
    concurrent callers are serialized by the database row lock rather than by
    anything held in this process.

    Returns:
        Number of rows updated (0 when the code is missing or not redeemable)
    """
    stmt = (
        update(AccessCode)
        .where(AccessCode.code == code, redeemable_clause(now))
        .values(used_count=AccessCode.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount


def retire_access_code_if_spent(db: Session, code_id: UUID, now: datetime) -> bool:
    """Flag a short-term code as retired if it is expired or exhausted right now."""
    stmt = (
        update(AccessCode)
        .where(
            AccessCode.id == code_id,
            AccessCode.is_long_term == False,
            AccessCode.is_retired == False,
            spent_clause(now),
        )
        .values(is_retired=True, retired_at=now)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount > 0


def retire_spent_access_codes(db: Session, now: datetime) -> int:
    """Flag every spent short-term code as retired. Returns the number retired."""
    stmt = (
        update(AccessCode)
        .where(
            AccessCode.is_long_term == False,
            AccessCode.is_retired == False,
            spent_clause(now),
        )
        .values(is_retired=True, retired_at=now)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount


def reinstate_access_code_if_unspent(db: Session, code_id: UUID, now: datetime) -> bool:
    """Clear the retired flag of a code that is long-term or no longer spent."""
    stmt = (
        update(AccessCode)
        .where(
            AccessCode.id == code_id,
            AccessCode.is_retired == True,
            or_(AccessCode.is_long_term == True, ~spent_clause(now)),
        )
        .values(is_retired=False, retired_at=None)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount > 0


def list_access_codes(
    db: Session,
    limit: int = 100,
    offset: int = 0,
    include_retired: bool = False
) -> List[AccessCode]:
    """Get access codes, newest first. Retired short-term codes are hidden by default."""
    stmt = select(AccessCode)
    if not include_retired:
        stmt = stmt.where(AccessCode.is_retired == False)
    stmt = stmt.order_by(AccessCode.created_at.desc()).offset(offset).limit(limit)
    return list(db.scalars(stmt.execution_options(populate_existing=True)))


def update_access_code(
    db: Session,
    code_id: UUID,
    now: Optional[datetime] = None,
    **kwargs: Any
) -> Optional[AccessCode]:
    """
    Apply operator edits to an access code.

    ``used_count`` and the code itself cannot be edited. After the edit the
    retirement flag is re-evaluated against the row as stored, so lowering a
    quota can retire a code and raising it can bring a retired one back.
    """
    access_code = db.get(AccessCode, code_id)
    if access_code is None:
        return None

    now = now or utcnow()
    for key, value in kwargs.items():
        if key in ("name", "max_uses", "expires_at", "is_active", "is_long_term"):
            if key == "expires_at":
                value = as_utc(value)
            setattr(access_code, key, value)
    db.flush()

    retire_access_code_if_spent(db, code_id, now)
    reinstate_access_code_if_unspent(db, code_id, now)
    db.commit()
    db.refresh(access_code)
    return access_code


def deactivate_access_code(db: Session, code_id: UUID) -> bool:
    """Deactivate an access code."""
    access_code = db.get(AccessCode, code_id)
    if access_code:
        access_code.is_active = False
        db.commit()
        return True
    return False


def delete_access_code(db: Session, code_id: UUID) -> bool:
    """Hard-delete an access code. Its redemption attempts are kept."""
    access_code = db.get(AccessCode, code_id)
    if access_code:
        db.delete(access_code)
        db.commit()
        return True
    return False


# ============================================================================
# Redemption Attempt Operations
# ============================================================================

def create_redemption_attempt(db: Session, attempt: RedemptionAttempt) -> RedemptionAttempt:
    """Append a redemption attempt to the audit trail."""
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    return attempt


def get_redemption_attempts(
    db: Session,
    code_id: Optional[UUID] = None,
    subject_id: Optional[str] = None,
    outcome: Optional[str] = None,
    requester_identity: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0
) -> List[Any]:
    """
    Get redemption attempts, newest first.

    Returns:
        Rows of ``(RedemptionAttempt, code)`` where ``code`` is the current
        code string, or None when the attempt matched nothing or the code was
        deleted since.
    """
    stmt = select(RedemptionAttempt, AccessCode.code).outerjoin(
        AccessCode, AccessCode.id == RedemptionAttempt.code_id
    )

    if code_id is not None:
        stmt = stmt.where(RedemptionAttempt.code_id == code_id)
    if subject_id is not None:
        stmt = stmt.where(RedemptionAttempt.subject_id == subject_id)
    if outcome is not None:
        stmt = stmt.where(RedemptionAttempt.outcome == outcome)
    if requester_identity is not None:
        stmt = stmt.where(RedemptionAttempt.requester_identity == requester_identity)
    if since is not None:
        stmt = stmt.where(RedemptionAttempt.created_at >= as_utc(since))
    if until is not None:
        stmt = stmt.where(RedemptionAttempt.created_at <= as_utc(until))

    stmt = stmt.order_by(
        RedemptionAttempt.created_at.desc(),
        RedemptionAttempt.id.desc()
    ).offset(offset).limit(limit)
    return list(db.execute(stmt).all())


# ============================================================================
# Template Operations
# ============================================================================

def create_template(
    db: Session,
    title: str,
    code_content: Optional[str] = None,
    requires_code: bool = True
) -> Template:
    """Create a new template."""
    template = Template(
        title=title,
        code_content=code_content,
        requires_code=requires_code
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def get_template_by_id(db: Session, template_id: UUID) -> Optional[Template]:
    """Get template by ID."""
    return db.get(Template, template_id)


def increment_template_usage(db: Session, template_id: UUID) -> None:
    """Atomically bump a template's unlock counter."""
    db.execute(
        update(Template)
        .where(Template.id == template_id)
        .values(usage_count=Template.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()
