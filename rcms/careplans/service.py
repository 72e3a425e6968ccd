import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.careplans.models import CarePlan, CarePlanStatus
from rcms.careplans.schemas import CarePlanSubmit
from rcms.config import settings
from rcms.exceptions import StoreFailure
from rcms.shared.models import utcnow

logger = logging.getLogger(__name__)


class CarePlanService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit(self, case_id: UUID, plan_in: CarePlanSubmit, submitted_by: str) -> CarePlan:
        plan = CarePlan(
            case_id=case_id,
            status=CarePlanStatus.SUBMITTED,
            follow_up_interval_days=plan_in.follow_up_interval_days,
            submitted_at=utcnow(),
            submitted_by=submitted_by,
            plan=plan_in.plan,
        )
        self.db.add(plan)
        await self.db.commit()
        await self.db.refresh(plan)
        return plan

    async def list_for_case(self, case_id: UUID) -> List[CarePlan]:
        result = await self.db.execute(
            select(CarePlan)
            .where(CarePlan.case_id == case_id)
            .order_by(desc(CarePlan.created_at))
        )
        return list(result.scalars().all())

    async def latest_submitted(self, case_id: UUID) -> Optional[CarePlan]:
        result = await self.db.execute(
            select(CarePlan)
            .where(CarePlan.case_id == case_id, CarePlan.status == CarePlanStatus.SUBMITTED)
            .order_by(desc(CarePlan.submitted_at))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def schedule_follow_up(self, case_id: UUID, released_at: datetime) -> Optional[CarePlan]:
        """Set ``next_due_at`` on the newest submitted plan of the released case."""
        plan = await self.latest_submitted(case_id)
        if plan is None:
            logger.info(f"No submitted care plan for case {case_id}; follow-up not scheduled")
            return None

        days = plan.follow_up_interval_days or settings.FOLLOW_UP_INTERVAL_DAYS
        plan.next_due_at = released_at + timedelta(days=days)
        try:
            await self.db.commit()
            await self.db.refresh(plan)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Failed to schedule follow-up for case {case_id}: {e}")
        logger.info(f"Care plan {plan.id} follow-up due {plan.next_due_at.isoformat()}")
        return plan
