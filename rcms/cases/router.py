from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.auth.dependencies import any_role, require_intake, require_rn
from rcms.auth.schemas import Principal
from rcms.cases.schemas import (
    ActiveCaseResponse,
    CaseContentUpdate,
    CaseCreate,
    CaseRecordRead,
    CaseResponse,
    CurrentDraftResponse,
    EditModeResponse,
    LineageResponse,
    ReleaseHistoryItem,
    ReleaseResult,
    RevisionResult,
)
from rcms.cases.service import CaseService
from rcms.cases.state_machine import is_editable, is_immutable
from rcms.database import get_db

router = APIRouter(prefix="/cases", tags=["cases"])


def to_response(record: CaseRecordRead) -> CaseResponse:
    return CaseResponse(
        **record.model_dump(),
        is_editable=is_editable(record.status) and not record.is_superseded,
        is_immutable=is_immutable(record.status),
    )


@router.post("", response_model=CaseResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    case_in: CaseCreate,
    current_user: Principal = Depends(require_intake),
    db: AsyncSession = Depends(get_db),
):
    record = await CaseService(db).create_case(case_in, current_user.id)
    return to_response(record)


@router.get("/active", response_model=ActiveCaseResponse)
async def get_active_case(
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    case_id = await CaseService(db).get_active_case(current_user.id)
    return ActiveCaseResponse(user_id=current_user.id, case_id=case_id)


@router.get("/{case_id}", response_model=CaseResponse)
async def get_case(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return to_response(await CaseService(db).get_case(case_id))


@router.patch("/{case_id}/content", response_model=CaseResponse)
async def save_content(
    case_id: UUID,
    update: CaseContentUpdate,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    record = await CaseService(db).save_content(case_id, update, current_user.id)
    return to_response(record)


@router.post("/{case_id}/ready", response_model=CaseResponse)
async def mark_ready(
    case_id: UUID,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    return to_response(await CaseService(db).mark_ready(case_id, current_user.id))


@router.post("/{case_id}/release", response_model=ReleaseResult)
async def release_case(
    case_id: UUID,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).release(case_id, current_user.id)


@router.post("/{case_id}/revisions", response_model=RevisionResult, status_code=status.HTTP_201_CREATED)
async def create_revision(
    case_id: UUID,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    """Open a new draft from the released snapshot ``case_id``."""
    return await CaseService(db).create_revision(case_id, current_user.id)


@router.post("/{case_id}/close", response_model=CaseResponse)
async def close_case(
    case_id: UUID,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    return to_response(await CaseService(db).close(case_id, current_user.id))


@router.get("/{case_id}/lineage", response_model=LineageResponse)
async def get_lineage(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).lineage(case_id)


@router.get("/{case_id}/latest-released", response_model=Optional[CaseResponse])
async def get_latest_released(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    record = await CaseService(db).latest_released(case_id)
    return to_response(record) if record else None


@router.get("/{case_id}/current-draft", response_model=CurrentDraftResponse)
async def get_current_draft(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).current_draft(case_id)


@router.get("/{case_id}/release-history", response_model=List[ReleaseHistoryItem])
async def get_release_history(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).release_history(case_id)


@router.get("/{case_id}/edit-mode", response_model=EditModeResponse)
async def get_edit_mode(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return await CaseService(db).edit_mode(case_id)
