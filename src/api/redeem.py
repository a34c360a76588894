"""Public redemption endpoints.

This module provides endpoints for:
- Redeeming an access code for a content subject
- Fetching a template's source text, gated by ContentGate

Logical rejections are returned with HTTP 200; only infrastructure faults
produce error statuses (see the exception handlers in main.py).
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.api.auth import get_optional_admin_session
from src.api.common import ApiModel, get_requester_identity
from src.auth_utils import AdminSession
from src.database import crud
from src.database.session import get_db
from src.services.content_gate import DisclosureTier, decide_tier, discloses_content
from src.services.errors import store_guard
from src.services.redemption import Outcome, RedemptionCoordinator, RedemptionResult
from src.services.validator import RejectReason

logger = logging.getLogger(__name__)

router = APIRouter(tags=["redemption"])


# ============================================================================
# Pydantic Models
# ============================================================================

class RedeemRequest(ApiModel):
    """Redemption request."""
    code: str
    subject_id: str = Field(min_length=1, max_length=255)


class RedeemResponse(ApiModel):
    """Redemption decision."""
    outcome: Outcome
    reason: Optional[RejectReason] = None
    remaining_uses: Optional[int] = None

    @classmethod
    def from_result(cls, result: RedemptionResult) -> "RedeemResponse":
        return cls(
            outcome=result.outcome,
            reason=result.reason,
            remaining_uses=result.remaining_uses
        )


class SourceRequest(ApiModel):
    """Request for a template's source text, optionally carrying an access code."""
    code: Optional[str] = None


class SourceResponse(ApiModel):
    """Template source disclosure."""
    template_id: UUID
    tier: DisclosureTier
    content: Optional[str] = None
    redemption: Optional[RedeemResponse] = None


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/redeem", response_model=RedeemResponse)
def redeem_code(
    payload: RedeemRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Redeem one use of an access code.

    - Code casing and punctuation are normalized server-side
    - Every attempt is audit-logged, accepted or not
    - remainingUses is null for unlimited codes
    """
    coordinator = RedemptionCoordinator(db)
    result = coordinator.redeem(
        payload.code,
        payload.subject_id,
        get_requester_identity(request)
    )
    return RedeemResponse.from_result(result)


@router.post("/templates/{template_id}/source", response_model=SourceResponse)
def get_template_source(
    template_id: UUID,
    request: Request,
    payload: Optional[SourceRequest] = None,
    admin_session: Optional[AdminSession] = Depends(get_optional_admin_session),
    db: Session = Depends(get_db)
):
    """
    Return a template's source text if the caller may see it.

    - Free templates are always visible and consume nothing
    - Operators see everything without redeeming
    - Anyone else must submit a code; each request redeems afresh
    """
    with store_guard(db, "template lookup"):
        template = crud.get_template_by_id(db, template_id)
    if not template:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Template not found"
        )

    is_privileged = admin_session is not None
    redemption = None
    if template.requires_code and not is_privileged and payload and payload.code is not None:
        redemption = RedemptionCoordinator(db).redeem(
            payload.code,
            str(template_id),
            get_requester_identity(request)
        )
        if redemption.accepted:
            try:
                crud.increment_template_usage(db, template_id)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Failed to bump usage count of template %s", template_id)

    tier = decide_tier(
        is_privileged_caller=is_privileged,
        has_accepted_redemption=redemption is not None and redemption.accepted,
        content_requires_code=template.requires_code
    )

    return SourceResponse(
        template_id=template_id,
        tier=tier,
        content=template.code_content if discloses_content(tier) else None,
        redemption=RedeemResponse.from_result(redemption) if redemption else None
    )
