"""SQLAlchemy database models.

This module defines the database schema for access codes, their redemption
audit trail, and the protected template content they unlock.
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Text, Index, CheckConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func
import uuid

from ..clock import as_utc, utcnow


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class AccessCode(Base):
    """
    Redeemable access code gating visibility of protected content.

    The code is stored in its canonical ``XXXX-XXXX`` uppercase form, so the
    unique index on ``code`` is effectively case-insensitive. ``max_uses == 0``
    means unlimited. Short-term codes are flagged ``is_retired`` once they are
    exhausted or expired; long-term codes never are.
    """
    __tablename__ = "access_codes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(9), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=True)
    max_uses = Column(Integer, nullable=False, default=0)
    used_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_long_term = Column(Boolean, default=False, nullable=False)
    is_retired = Column(Boolean, default=False, nullable=False)
    retired_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_access_codes_listing", "is_retired", "created_at"),
        CheckConstraint("max_uses >= 0", name="ck_access_codes_max_uses_non_negative"),
        CheckConstraint("used_count >= 0", name="ck_access_codes_used_count_non_negative"),
        CheckConstraint("max_uses = 0 OR used_count <= max_uses", name="ck_access_codes_within_quota"),
    )

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses > 0 and self.used_count >= self.max_uses

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and as_utc(self.expires_at) <= now

    def __repr__(self):
        return f"<AccessCode(code={self.code}, uses={self.used_count}/{self.max_uses})>"


class RedemptionAttempt(Base):
    """
    Append-only audit record of one redemption attempt.

    ``code_id`` is not a foreign key and outlives deletion of the code.
    """
    __tablename__ = "redemption_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code_id = Column(UUID(as_uuid=True), nullable=True)
    submitted_code = Column(String(64), nullable=True)
    subject_id = Column(String(255), nullable=False)
    requester_identity = Column(String(255), nullable=True)
    outcome = Column(String(16), nullable=False)
    failure_reason = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_redemption_attempts_created", "created_at"),
        Index("ix_redemption_attempts_code_created", "code_id", "created_at"),
        Index("ix_redemption_attempts_subject", "subject_id"),
    )

    def __repr__(self):
        return f"<RedemptionAttempt(id={self.id}, code_id={self.code_id}, outcome={self.outcome})>"


class Template(Base):
    """Marketplace template whose source text may be gated behind an access code."""
    __tablename__ = "templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    code_content = Column(Text, nullable=True)
    requires_code = Column(Boolean, default=True, nullable=False)
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Template(id={self.id}, title={self.title})>"
