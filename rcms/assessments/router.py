from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.assessments import scoring
from rcms.assessments.schemas import (
    AssessmentEvaluation,
    AssessmentKind,
    AssessmentResponse,
    AssessmentSaveRequest,
    ItemEditRequest,
    ItemEditResponse,
    ScoreEditRequest,
)
from rcms.assessments.service import AssessmentService
from rcms.auth.dependencies import any_role, require_rn
from rcms.auth.schemas import Principal
from rcms.database import get_db

router = APIRouter(prefix="/cases", tags=["assessments"])


# Edit-boundary checks; nothing here is persisted

@router.post("/assessments/items/score", response_model=ItemEditResponse)
async def apply_score(request: ScoreEditRequest, current_user: Principal = Depends(require_rn)):
    item = scoring.apply_reviewer_score(request.item, request.value)
    return ItemEditResponse(item=item, evaluation=scoring.evaluate_item(item))


@router.post("/assessments/items/reset", response_model=ItemEditResponse)
async def reset_score(request: ItemEditRequest, current_user: Principal = Depends(require_rn)):
    item = scoring.reset_reviewer_score(request.item)
    return ItemEditResponse(item=item, evaluation=scoring.evaluate_item(item))


@router.post("/assessments/items/clear", response_model=ItemEditResponse)
async def clear_score(request: ItemEditRequest, current_user: Principal = Depends(require_rn)):
    item = scoring.clear_reviewer_score(request.item)
    return ItemEditResponse(item=item, evaluation=scoring.evaluate_item(item))


@router.post("/{case_id}/assessments/{kind}/evaluate", response_model=AssessmentEvaluation)
async def evaluate_assessment(
    case_id: UUID,
    kind: AssessmentKind,
    request: AssessmentSaveRequest,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return await AssessmentService(db).evaluate(case_id, kind, request)


@router.put("/{case_id}/assessments/{kind}", response_model=AssessmentResponse)
async def save_assessment(
    case_id: UUID,
    kind: AssessmentKind,
    request: AssessmentSaveRequest,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    return await AssessmentService(db).save_assessment(case_id, kind, request, current_user.id)


@router.get("/{case_id}/assessments/{kind}", response_model=AssessmentResponse)
async def get_assessment(
    case_id: UUID,
    kind: AssessmentKind,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    assessment = await AssessmentService(db).get_assessment(case_id, kind)
    if not assessment:
        raise HTTPException(status_code=404, detail=f"No {kind.value} assessment saved for this case")
    return assessment
