"""Admin API endpoints for managing access codes and reviewing redemptions.

All endpoints require an operator session (see src.api.auth).
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field, computed_field, field_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api.auth import get_admin_session
from src.api.common import ApiModel, utc_or_none
from src.auth_utils import AdminSession
from src.config import settings
from src.database import crud
from src.database.session import get_db
from src.services.audit import AuditFilters, AuditLogger
from src.services.codes import issue_access_code
from src.services.errors import CodeIssueError, store_guard
from src.services.lifecycle import LifecycleSweeper
from src.services.validator import remaining_uses as uses_left


router = APIRouter(prefix="/admin", tags=["admin"])


# ============================================================================
# Pydantic Models
# ============================================================================

class AccessCodeResponse(ApiModel):
    """Access code response."""
    id: UUID
    code: str
    name: Optional[str] = None
    max_uses: int
    used_count: int
    expires_at: Optional[datetime] = None
    is_active: bool
    is_long_term: bool
    is_retired: bool
    is_exhausted: bool
    retired_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime

    @field_validator("expires_at", "retired_at", "created_at")
    @classmethod
    def ensure_utc(cls, v):
        return utc_or_none(v)

    @computed_field
    @property
    def remaining_uses(self) -> Optional[int]:
        return uses_left(self.max_uses, self.used_count)


class IssueCodeRequest(ApiModel):
    """Request to issue an access code."""
    name: str = Field(max_length=100)
    max_uses: int = Field(ge=0)
    expires_at: Optional[datetime] = None
    is_long_term: bool = False
    code: Optional[str] = None


class UpdateCodeRequest(ApiModel):
    """Request to update an access code."""
    name: Optional[str] = Field(None, max_length=100)
    max_uses: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    clear_expiry: bool = False
    is_active: Optional[bool] = None
    is_long_term: Optional[bool] = None


class SweepResponse(ApiModel):
    """Result of a lifecycle sweep."""
    retired: int


class RedemptionAttemptResponse(ApiModel):
    """Audit log row."""
    id: int
    code_id: Optional[UUID] = None
    code: Optional[str] = None
    code_display: str
    submitted_code: Optional[str] = None
    subject_id: str
    requester_identity: Optional[str] = None
    outcome: str
    failure_reason: Optional[str] = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v):
        return utc_or_none(v)


# ============================================================================
# Access Code Management Endpoints
# ============================================================================

@router.get("/codes", response_model=List[AccessCodeResponse])
def list_access_codes(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    include_retired: bool = Query(False, alias="includeRetired"),
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Get access codes, newest first (admin only).

    Retired short-term codes are hidden unless includeRetired is set.
    Exhausted long-term codes stay listed with isExhausted set.
    """
    if settings.sweep_on_listing:
        LifecycleSweeper(db).sweep_expired()

    with store_guard(db, "list codes"):
        return crud.list_access_codes(
            db, limit=limit, offset=offset, include_retired=include_retired
        )


@router.post("/codes", response_model=AccessCodeResponse, status_code=status.HTTP_201_CREATED)
def create_access_code(
    request: IssueCodeRequest,
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Issue a new access code (admin only).

    - Code is generated unless one is supplied
    - maxUses 0 means unlimited
    - Long-term codes are never auto-retired
    """
    try:
        return issue_access_code(
            db,
            admin_session,
            name=request.name,
            max_uses=request.max_uses,
            expires_at=request.expires_at,
            is_long_term=request.is_long_term,
            code=request.code
        )
    except CodeIssueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.post("/codes/sweep", response_model=SweepResponse)
def sweep_access_codes(
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """Retire every spent short-term code now (admin only)."""
    return SweepResponse(retired=LifecycleSweeper(db).sweep_expired())


@router.get("/codes/{code_id}", response_model=AccessCodeResponse)
def get_access_code(
    code_id: UUID,
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Get details about a specific access code (admin only).
    """
    with store_guard(db, "get code"):
        code = crud.get_access_code_by_id(db, code_id)
    if not code:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Access code not found"
        )
    return code


@router.patch("/codes/{code_id}", response_model=AccessCodeResponse)
def update_access_code(
    code_id: UUID,
    request: UpdateCodeRequest,
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Update an access code (admin only).

    - Can update name, max uses, expiry, active and long-term flags
    - clearExpiry removes the expiry date
    - Cannot change the code itself or its used count
    """
    update_data = {}
    if request.name is not None:
        update_data["name"] = request.name
    if request.max_uses is not None:
        update_data["max_uses"] = request.max_uses
    if request.clear_expiry:
        update_data["expires_at"] = None
    elif request.expires_at is not None:
        update_data["expires_at"] = request.expires_at
    if request.is_active is not None:
        update_data["is_active"] = request.is_active
    if request.is_long_term is not None:
        update_data["is_long_term"] = request.is_long_term

    with store_guard(db, "update code"):
        try:
            code = crud.update_access_code(db, code_id, **update_data)
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="maxUses cannot be lower than the number of uses already made"
            )
    if not code:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Access code not found"
        )

    return code


@router.delete("/codes/{code_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_access_code(
    code_id: UUID,
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Delete an access code (admin only).

    Redemption history referencing the code is kept.
    """
    with store_guard(db, "delete code"):
        success = crud.delete_access_code(db, code_id)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Access code not found"
        )

    return None


# ============================================================================
# Redemption Audit Endpoints
# ============================================================================

@router.get("/redemptions", response_model=List[RedemptionAttemptResponse])
def list_redemption_attempts(
    code_id: Optional[UUID] = Query(None, alias="codeId"),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    outcome: Optional[str] = Query(None, pattern="^(accepted|rejected)$"),
    requester_identity: Optional[str] = Query(None, alias="requesterIdentity"),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    admin_session: AdminSession = Depends(get_admin_session),
    db: Session = Depends(get_db)
):
    """
    Get redemption attempts, newest first (admin only).

    codeDisplay shows the code, "deleted" if the code has since been deleted,
    or "unknown" if the attempt matched no code.
    since and until bound the attempt time, both inclusive.
    """
    filters = AuditFilters(
        code_id=code_id,
        subject_id=subject_id,
        outcome=outcome,
        requester_identity=requester_identity,
        since=since,
        until=until,
        limit=limit,
        offset=offset
    )
    return AuditLogger(db).query(filters)
