"""Pure validation of an access code record.

``evaluate`` never touches the database and never mutates the record, so it
can back read-only "can this be redeemed?" checks.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from ..clock import as_utc


class RejectReason(str, Enum):
    """Why a redemption was refused. Values are the wire names."""
    MALFORMED_CODE = "MalformedCode"
    CODE_NOT_FOUND = "CodeNotFound"
    CODE_INACTIVE = "CodeInactive"
    CODE_EXPIRED = "CodeExpired"
    QUOTA_EXHAUSTED = "QuotaExhausted"


@dataclass(frozen=True)
class Decision:
    accepted: bool
    reason: Optional[RejectReason] = None
    remaining_uses: Optional[int] = None

    @classmethod
    def accept(cls, remaining_uses: Optional[int]) -> "Decision":
        return cls(accepted=True, remaining_uses=remaining_uses)

    @classmethod
    def reject(cls, reason: RejectReason) -> "Decision":
        return cls(accepted=False, reason=reason)


def remaining_uses(max_uses: int, used_count: int) -> Optional[int]:
    """Uses left on a quota, or None for unlimited codes."""
    if max_uses == 0:
        return None
    return max(max_uses - used_count, 0)


def evaluate(record, now: datetime) -> Decision:
    """
    Decide whether ``record`` can be redeemed at ``now``.

    Checks run in a fixed order and stop at the first failure: existence,
    active flag, expiry, quota. The reported reason is therefore deterministic
    (an inactive code is reported inactive even when it is also expired).

    Args:
        record: AccessCode-like object, or None when nothing matched
        now: Aware UTC timestamp to judge expiry against

    Returns:
        Decision with the pre-increment ``remaining_uses`` on acceptance
    """
    if record is None:
        return Decision.reject(RejectReason.CODE_NOT_FOUND)
    if not record.is_active:
        return Decision.reject(RejectReason.CODE_INACTIVE)
    if record.expires_at is not None and as_utc(record.expires_at) <= now:
        return Decision.reject(RejectReason.CODE_EXPIRED)
    if record.max_uses != 0 and record.used_count >= record.max_uses:
        return Decision.reject(RejectReason.QUOTA_EXHAUSTED)
    return Decision.accept(remaining_uses(record.max_uses, record.used_count))
