"""Access code redemption.

``RedemptionCoordinator.redeem`` is the only code path that changes a code's
``used_count``. Validation and increment happen in one conditional UPDATE
(see ``crud.consume_access_code``); nothing in this module holds locks or
shared state, so any number of workers and processes can redeem the same
code at once.

A redemption that is committed but whose response never reaches the caller
still counts. Redemption is not idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from ..clock import utcnow
from ..config import settings
from ..database import crud
from ..database.models import RedemptionAttempt
from .audit import AuditLogger, OUTCOME_ACCEPTED, OUTCOME_REJECTED
from .codes import normalize_code
from .errors import InternalInconsistency, StoreUnavailable, store_guard
from .lifecycle import LifecycleSweeper
from .validator import RejectReason, evaluate, remaining_uses

logger = logging.getLogger(__name__)

SUBMITTED_CODE_MAX_LENGTH = 64


class Outcome(str, Enum):
    ACCEPTED = OUTCOME_ACCEPTED
    REJECTED = OUTCOME_REJECTED


@dataclass(frozen=True)
class RedemptionResult:
    outcome: Outcome
    reason: Optional[RejectReason] = None
    remaining_uses: Optional[int] = None
    code_id: Optional[UUID] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is Outcome.ACCEPTED


class RedemptionCoordinator:
    """Validates and consumes access codes, auditing every attempt."""

    def __init__(
        self,
        db: Session,
        audit_logger: Optional[AuditLogger] = None,
        sweeper: Optional[LifecycleSweeper] = None,
        max_attempts: Optional[int] = None
    ):
        self.db = db
        self.audit_logger = audit_logger or AuditLogger(db)
        self.sweeper = sweeper or LifecycleSweeper(db)
        self.max_attempts = max_attempts or settings.redemption_max_attempts

    def redeem(
        self,
        code_text,
        subject_id: str,
        requester_identity: Optional[str],
        now: Optional[datetime] = None
    ) -> RedemptionResult:
        """
        Redeem one use of ``code_text`` for ``subject_id``.

        Malformed input is rejected before the store is touched. Otherwise the
        code is consumed atomically; on a miss the record is re-read to report
        the specific reason.

        Returns:
            RedemptionResult; rejections are results, not exceptions

        Raises:
            StoreUnavailable: Store unreachable or contended; nothing consumed
            InternalInconsistency: The increment broke a store invariant
        """
        now = now or utcnow()
        code = normalize_code(code_text)
        if code is None:
            return self._reject(RejectReason.MALFORMED_CODE, None, code_text, subject_id, requester_identity, now)

        for _ in range(self.max_attempts):
            consumed = self._consume(code, now)
            if consumed is not None:
                code_id, remaining = consumed
                self.audit_logger.record(RedemptionAttempt(
                    code_id=code_id,
                    submitted_code=code,
                    subject_id=subject_id,
                    requester_identity=requester_identity,
                    outcome=OUTCOME_ACCEPTED,
                    created_at=now
                ))
                return RedemptionResult(Outcome.ACCEPTED, remaining_uses=remaining, code_id=code_id)

            with store_guard(self.db, "redeem"):
                record = crud.get_access_code_by_code(self.db, code)
            decision = evaluate(record, now)
            if not decision.accepted:
                return self._reject(
                    decision.reason, record.id if record is not None else None,
                    code, subject_id, requester_identity, now
                )
            # Conditional update missed but the fresh row validates: an
            # operator edit landed in between.
            logger.info("Access code %s changed during redemption, retrying", code)

        raise StoreUnavailable(f"redeem: access code {code} kept changing during redemption")

    def _consume(self, code: str, now: datetime) -> Optional[Tuple[UUID, Optional[int]]]:
        """
        Take one use from ``code`` and commit.

        Returns:
            ``(code_id, remaining_uses)`` on success, None when the conditional
            update matched no row (nothing is changed in that case)
        """
        with store_guard(self.db, "redeem"):
            matched = crud.consume_access_code(self.db, code, now)
            if matched == 0:
                self.db.rollback()
                return None
            if matched > 1:
                self._inconsistent(f"{matched} rows matched access code {code}")

            record = crud.get_access_code_by_code(self.db, code)
            if record is None:
                self._inconsistent(f"access code {code} vanished after increment")
            if record.max_uses > 0 and record.used_count > record.max_uses:
                self._inconsistent(
                    f"access code {code} used {record.used_count} times with max_uses={record.max_uses}"
                )

            code_id = record.id
            remaining = remaining_uses(record.max_uses, record.used_count)
            self.sweeper.retire_if_exhausted(record, now)
            self.db.commit()

        return code_id, remaining

    def _inconsistent(self, message: str):
        self.db.rollback()
        logger.error("Redemption invariant violated: %s", message)
        raise InternalInconsistency(message)

    def _reject(
        self,
        reason: RejectReason,
        code_id: Optional[UUID],
        submitted,
        subject_id: str,
        requester_identity: Optional[str],
        now: datetime
    ) -> RedemptionResult:
        if not isinstance(submitted, str):
            submitted = None if submitted is None else repr(submitted)

        self.audit_logger.record(RedemptionAttempt(
            code_id=code_id,
            submitted_code=submitted[:SUBMITTED_CODE_MAX_LENGTH] if submitted is not None else None,
            subject_id=subject_id,
            requester_identity=requester_identity,
            outcome=OUTCOME_REJECTED,
            failure_reason=reason.value,
            created_at=now
        ))
        return RedemptionResult(Outcome.REJECTED, reason=reason, code_id=code_id)
