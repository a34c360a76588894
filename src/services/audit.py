"""Append-only audit trail of redemption attempts.

Recording is best-effort. A failed write is reported on this module's logger
and never undoes a redemption that has already been committed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..database import crud
from ..database.models import RedemptionAttempt
from .errors import store_guard

logger = logging.getLogger(__name__)

OUTCOME_ACCEPTED = "accepted"
OUTCOME_REJECTED = "rejected"


@dataclass
class AuditFilters:
    code_id: Optional[UUID] = None
    subject_id: Optional[str] = None
    outcome: Optional[str] = None
    requester_identity: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class AuditRecord:
    """Read view of a RedemptionAttempt with its code reference resolved."""
    id: int
    code_id: Optional[UUID]
    code: Optional[str]
    code_display: str
    submitted_code: Optional[str]
    subject_id: str
    requester_identity: Optional[str]
    outcome: str
    failure_reason: Optional[str]
    created_at: datetime


class AuditLogger:
    """Writes and queries redemption attempts."""

    def __init__(self, db: Session):
        self.db = db

    def record(self, attempt: RedemptionAttempt) -> bool:
        """
        Append an attempt to the audit trail.

        Returns:
            True if the row was written, False if writing failed (logged)
        """
        try:
            crud.create_redemption_attempt(self.db, attempt)
            return True
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(
                "Failed to record redemption attempt (code_id=%s, subject=%s, outcome=%s, reason=%s)",
                attempt.code_id, attempt.subject_id, attempt.outcome, attempt.failure_reason
            )
            return False

    def query(self, filters: Optional[AuditFilters] = None) -> List[AuditRecord]:
        """Get attempts matching ``filters``, newest first."""
        filters = filters or AuditFilters()
        limit = filters.limit or settings.audit_log_default_limit
        limit = min(limit, settings.audit_log_max_limit)

        with store_guard(self.db, "audit query"):
            rows = crud.get_redemption_attempts(
                self.db,
                code_id=filters.code_id,
                subject_id=filters.subject_id,
                outcome=filters.outcome,
                requester_identity=filters.requester_identity,
                since=filters.since,
                until=filters.until,
                limit=limit,
                offset=filters.offset
            )

        return [self._to_record(attempt, code) for attempt, code in rows]

    @staticmethod
    def _to_record(attempt: RedemptionAttempt, code: Optional[str]) -> AuditRecord:
        if code is not None:
            display = code
        elif attempt.code_id is not None:
            display = "deleted"
        else:
            display = "unknown"

        return AuditRecord(
            id=attempt.id,
            code_id=attempt.code_id,
            code=code,
            code_display=display,
            submitted_code=attempt.submitted_code,
            subject_id=attempt.subject_id,
            requester_identity=attempt.requester_identity,
            outcome=attempt.outcome,
            failure_reason=attempt.failure_reason,
            created_at=attempt.created_at
        )
