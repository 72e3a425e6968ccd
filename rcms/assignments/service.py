"""Assignment epochs and the accept/decline record.

Every assignment opens a new epoch; the assigned case manager must accept it
before mutating the case. Epoch events live in the audit log, keyed by the
lineage id, so one acceptance covers every record of the case's history.
"""
import logging
import uuid
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rcms.assignments.schemas import (
    AcceptanceState,
    AcceptanceStatus,
    AssignmentEpoch,
    DeclineReasonCode,
)
from rcms.audit.models import AuditEventType
from rcms.audit.service import AuditService
from rcms.exceptions import IllegalTransition

logger = logging.getLogger(__name__)

EPOCH_EVENTS = (
    AuditEventType.RN_ASSIGNED_TO_CASE,
    AuditEventType.RN_ACCEPTED_ASSIGNMENT,
    AuditEventType.RN_DECLINED_ASSIGNMENT,
)


class AssignmentService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def get_acceptance_state(self, lineage_id: UUID, rn_id: str) -> AcceptanceState:
        events = await self.audit.list_events([lineage_id], EPOCH_EVENTS)

        # 1. Latest epoch assigned to this case manager (events are newest first)
        epoch = None
        for event in events:
            detail = event.detail or {}
            if (
                event.event_type == AuditEventType.RN_ASSIGNED_TO_CASE
                and detail.get("assigned_rn_id") == rn_id
            ):
                epoch = AssignmentEpoch(
                    epoch_id=detail.get("assignment_epoch_id", ""),
                    assigned_at=event.created_at,
                    assigned_rn_id=rn_id,
                )
                break

        if epoch is None:
            return AcceptanceState(status=AcceptanceStatus.NO_EPOCH)

        # 2. Accept or decline recorded against that epoch
        accepted_at = declined_at = reason_code = None
        for event in events:
            detail = event.detail or {}
            if detail.get("assignment_epoch_id") != epoch.epoch_id:
                continue
            if event.event_type == AuditEventType.RN_ACCEPTED_ASSIGNMENT and accepted_at is None:
                accepted_at = event.created_at
            if event.event_type == AuditEventType.RN_DECLINED_ASSIGNMENT and declined_at is None:
                declined_at = event.created_at
                reason_code = detail.get("reason_code", "unknown")

        if accepted_at:
            return AcceptanceState(status=AcceptanceStatus.ACCEPTED, epoch=epoch, accepted_at=accepted_at)
        if declined_at:
            return AcceptanceState(
                status=AcceptanceStatus.DECLINED,
                epoch=epoch,
                declined_at=declined_at,
                reason_code=reason_code,
            )
        return AcceptanceState(status=AcceptanceStatus.PENDING, epoch=epoch)

    async def record_assignment(self, lineage_id: UUID, rn_id: str, assigned_by: str) -> AcceptanceState:
        epoch_id = str(uuid.uuid4())
        await self.audit.record(
            lineage_id,
            AuditEventType.RN_ASSIGNED_TO_CASE,
            actor_id=assigned_by,
            detail={
                "governance": True,
                "assignment_epoch_id": epoch_id,
                "assigned_rn_id": rn_id,
            },
        )
        logger.info(f"Case {lineage_id} assigned to {rn_id} (epoch {epoch_id})")
        return await self.get_acceptance_state(lineage_id, rn_id)

    async def _require_pending_epoch(self, lineage_id: UUID, rn_id: str, epoch_id: str) -> AcceptanceState:
        state = await self.get_acceptance_state(lineage_id, rn_id)
        if state.status != AcceptanceStatus.PENDING or state.epoch_id != epoch_id:
            raise IllegalTransition(
                f"Epoch {epoch_id} is not the pending assignment for {rn_id} on case {lineage_id} "
                f"(current state: {state.status.value})"
            )
        return state

    async def record_accept(self, lineage_id: UUID, rn_id: str, epoch_id: str) -> AcceptanceState:
        await self._require_pending_epoch(lineage_id, rn_id, epoch_id)
        await self.audit.record(
            lineage_id,
            AuditEventType.RN_ACCEPTED_ASSIGNMENT,
            actor_id=rn_id,
            detail={
                "governance": True,
                "assignment_epoch_id": epoch_id,
                "assigned_rn_id": rn_id,
            },
        )
        return await self.get_acceptance_state(lineage_id, rn_id)

    async def record_decline(
        self,
        lineage_id: UUID,
        rn_id: str,
        epoch_id: str,
        reason_code: DeclineReasonCode,
        reason_text: str | None = None,
    ) -> AcceptanceState:
        await self._require_pending_epoch(lineage_id, rn_id, epoch_id)
        detail = {
            "governance": True,
            "assignment_epoch_id": epoch_id,
            "assigned_rn_id": rn_id,
            "reason_code": reason_code.value,
        }
        if reason_code == DeclineReasonCode.OTHER and reason_text:
            detail["reason_text"] = reason_text.strip()
        await self.audit.record(
            lineage_id, AuditEventType.RN_DECLINED_ASSIGNMENT, actor_id=rn_id, detail=detail
        )
        return await self.get_acceptance_state(lineage_id, rn_id)
