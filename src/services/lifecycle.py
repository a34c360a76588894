"""Retirement of short-term access codes.

A short-term code that is exhausted or expired is flagged ``is_retired`` and
drops out of the default code listing. Its audit rows stay. Long-term codes
are never retired here.

Every retirement is a conditional UPDATE that re-checks the row as stored, so
a sweep racing a redemption acts on the committed counter, never on a value
read earlier.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..clock import utcnow
from ..database import crud
from ..database.models import AccessCode
from .errors import store_guard

logger = logging.getLogger(__name__)


class LifecycleSweeper:
    """Retires spent short-term codes, inline or in bulk."""

    def __init__(self, db: Session):
        self.db = db

    def retire_if_exhausted(self, record: AccessCode, now: Optional[datetime] = None) -> bool:
        """
        Retire ``record`` if it is short-term and now expired or exhausted.

        Runs inside the caller's transaction and does not commit, so it
        becomes visible together with the redemption that triggered it.
        """
        if record.is_long_term:
            return False
        retired = crud.retire_access_code_if_spent(self.db, record.id, now or utcnow())
        if retired:
            logger.info("Retired short-term access code %s", record.id)
        return retired

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Retire every short-term code that is expired or exhausted.

        Idempotent; safe to run concurrently with redemptions.

        Returns:
            Number of codes retired by this pass
        """
        with store_guard(self.db, "sweep"):
            retired = crud.retire_spent_access_codes(self.db, now or utcnow())
            self.db.commit()
        if retired:
            logger.info("Sweep retired %d short-term access code(s)", retired)
        return retired
