from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.assignments.schemas import (
    AcceptanceState,
    AcceptanceStateResponse,
    AcceptRequest,
    AssignRequest,
    DeclineRequest,
)
from rcms.assignments.service import AssignmentService
from rcms.auth.dependencies import any_role, require_rn, require_supervisor
from rcms.auth.schemas import Principal
from rcms.cases.service import CaseService
from rcms.database import get_db

router = APIRouter(prefix="/cases", tags=["assignments"])


async def _lineage_of(db: AsyncSession, case_id: UUID) -> UUID:
    record = await CaseService(db).get_case(case_id)
    return record.lineage_id


def _response(lineage_id: UUID, rn_id: str, state: AcceptanceState) -> AcceptanceStateResponse:
    return AcceptanceStateResponse(
        lineage_id=lineage_id,
        rn_id=rn_id,
        status=state.status,
        epoch_id=state.epoch_id,
        accepted_at=state.accepted_at,
        declined_at=state.declined_at,
        reason_code=state.reason_code,
    )


@router.post("/{case_id}/assignments", response_model=AcceptanceStateResponse, status_code=status.HTTP_201_CREATED)
async def assign_case(
    case_id: UUID,
    request: AssignRequest,
    current_user: Principal = Depends(require_supervisor),
    db: AsyncSession = Depends(get_db),
):
    lineage_id = await _lineage_of(db, case_id)
    state = await AssignmentService(db).record_assignment(lineage_id, request.rn_id, current_user.id)
    return _response(lineage_id, request.rn_id, state)


@router.get("/{case_id}/assignments/state", response_model=AcceptanceStateResponse)
async def get_acceptance_state(
    case_id: UUID,
    rn_id: Optional[str] = None,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    lineage_id = await _lineage_of(db, case_id)
    rn_id = rn_id or current_user.id
    state = await AssignmentService(db).get_acceptance_state(lineage_id, rn_id)
    return _response(lineage_id, rn_id, state)


@router.post("/{case_id}/assignments/accept", response_model=AcceptanceStateResponse)
async def accept_assignment(
    case_id: UUID,
    request: AcceptRequest,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    lineage_id = await _lineage_of(db, case_id)
    state = await AssignmentService(db).record_accept(lineage_id, current_user.id, request.epoch_id)
    return _response(lineage_id, current_user.id, state)


@router.post("/{case_id}/assignments/decline", response_model=AcceptanceStateResponse)
async def decline_assignment(
    case_id: UUID,
    request: DeclineRequest,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    lineage_id = await _lineage_of(db, case_id)
    state = await AssignmentService(db).record_decline(
        lineage_id, current_user.id, request.epoch_id, request.reason_code, request.reason_text
    )
    return _response(lineage_id, current_user.id, state)
