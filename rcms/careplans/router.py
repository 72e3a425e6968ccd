from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.auth.dependencies import any_role, require_rn
from rcms.auth.schemas import Principal
from rcms.careplans.schemas import CarePlanResponse, CarePlanSubmit
from rcms.careplans.service import CarePlanService
from rcms.cases.service import CaseService
from rcms.database import get_db

router = APIRouter(prefix="/cases", tags=["care-plans"])


@router.post("/{case_id}/care-plans", response_model=CarePlanResponse, status_code=status.HTTP_201_CREATED)
async def submit_care_plan(
    case_id: UUID,
    plan_in: CarePlanSubmit,
    current_user: Principal = Depends(require_rn),
    db: AsyncSession = Depends(get_db),
):
    cases = CaseService(db)
    record = await cases.get_case(case_id)
    await cases.guardrails.require_acceptance(record, current_user.id)
    cases.guardrails.assert_mutable(record)
    return await CarePlanService(db).submit(record.id, plan_in, current_user.id)


@router.get("/{case_id}/care-plans", response_model=List[CarePlanResponse])
async def list_care_plans(
    case_id: UUID,
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    return await CarePlanService(db).list_for_case(case_id)
