import copy
import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rcms.assignments.service import AssignmentService
from rcms.audit.models import AuditEventType
from rcms.audit.service import AuditService
from rcms.careplans.service import CarePlanService
from rcms.cases.chain import RevisionChainResolver
from rcms.cases.guardrails import GuardrailEnforcer
from rcms.cases.models import CaseStatus
from rcms.cases.release import ReleaseTransaction
from rcms.cases.schemas import (
    ENGINE_CONTENT_KEYS,
    CaseContentUpdate,
    CaseCreate,
    CaseRecordRead,
    CurrentDraftResponse,
    EditMode,
    EditModeResponse,
    LineageResponse,
    NewCaseRecord,
    ReleaseHistoryItem,
    ReleaseResult,
    RevisionResult,
)
from rcms.cases.state_machine import CaseAction, assert_transition
from rcms.cases.store import CaseStore, SQLAlchemyCaseStore
from rcms.exceptions import GuardrailViolation, IllegalTransition, IntegrityViolation, StatusConflict
from rcms.shared.models import utcnow

logger = logging.getLogger(__name__)


class CaseService:
    def __init__(self, db: AsyncSession, store: Optional[CaseStore] = None):
        self.db = db
        self.store = store or SQLAlchemyCaseStore(db)
        self.assignments = AssignmentService(db)
        self.guardrails = GuardrailEnforcer(self.assignments)
        self.resolver = RevisionChainResolver(self.store)
        self.audit = AuditService(db)
        self.care_plans = CarePlanService(db)

    # Reads

    async def get_case(self, case_id: UUID) -> CaseRecordRead:
        return await self.store.get_by_id(case_id)

    async def get_active_case(self, user_id: str) -> Optional[UUID]:
        return await self.store.get_active_case(user_id)

    async def lineage(self, case_id: UUID) -> LineageResponse:
        root_id, records = await self.resolver.lineage(case_id)
        return LineageResponse(lineage_id=root_id, records=records)

    async def latest_released(self, case_id: UUID) -> Optional[CaseRecordRead]:
        return await self.resolver.latest_released(case_id)

    async def release_history(self, case_id: UUID) -> List[ReleaseHistoryItem]:
        return await self.resolver.release_history(case_id)

    async def current_draft(self, case_id: UUID) -> CurrentDraftResponse:
        try:
            return await self.resolver.current_draft(case_id)
        except IntegrityViolation as e:
            await self.audit.record_quietly(
                case_id,
                AuditEventType.INTEGRITY_WARNING,
                detail={"reason": "multiple_live_drafts", "case_ids": [str(c) for c in e.case_ids]},
            )
            raise

    async def edit_mode(self, case_id: UUID) -> EditModeResponse:
        record = await self.store.get_by_id(case_id)
        if record.status in (CaseStatus.RELEASED, CaseStatus.CLOSED):
            mode = EditMode(record.status.value)
            chain = await self.current_draft(case_id)
            back_to_draft_id = chain.draft.id if chain.draft else None
        else:
            mode = EditMode.DRAFT
            back_to_draft_id = None
        return EditModeResponse(
            case_id=record.id,
            mode=mode,
            status=record.status,
            is_view_only=mode != EditMode.DRAFT or record.is_superseded,
            back_to_draft_id=back_to_draft_id,
        )

    # Writes

    async def create_case(self, case_in: CaseCreate, user_id: str) -> CaseRecordRead:
        record = await self.store.insert(
            NewCaseRecord(
                status=CaseStatus.DRAFT,
                content=case_in.content.model_dump(mode="json", exclude_none=True),
            )
        )
        await self.store.set_active_case(user_id, record.id)
        await self.audit.record_quietly(record.id, AuditEventType.CASE_CREATED, actor_id=user_id)
        return record

    async def save_content(self, case_id: UUID, update: CaseContentUpdate, user_id: str) -> CaseRecordRead:
        record = await self.store.get_by_id(case_id)
        await self.guardrails.require_acceptance(record, user_id)
        self.guardrails.assert_action(record, CaseAction.SAVE)

        changes = update.model_dump(mode="json", exclude_unset=True)
        owned = sorted(ENGINE_CONTENT_KEYS.intersection(changes))
        if owned:
            raise GuardrailViolation(f"Fields {owned} cannot be written directly")

        content = copy.deepcopy(record.content)
        content.update(changes)
        try:
            saved = await self.store.update_content(record.id, content)
        except StatusConflict:
            raise GuardrailViolation(
                f"Case {record.id} stopped being editable before the save",
                safe_message="This case is no longer editable.",
            )
        await self.audit.record_quietly(
            record.id, AuditEventType.CONTENT_SAVED, actor_id=user_id, detail={"fields": sorted(changes)}
        )
        return saved

    async def mark_ready(self, case_id: UUID, user_id: str) -> CaseRecordRead:
        record = await self.store.get_by_id(case_id)
        await self.guardrails.require_acceptance(record, user_id)
        self.guardrails.assert_mutable(record)
        transition = assert_transition(record.status, CaseAction.MARK_READY)
        try:
            ready = await self.store.update_status(record.id, transition.allowed_from, transition.to_status)
        except StatusConflict:
            raise IllegalTransition(f"Case {record.id} changed before it could be marked ready")
        await self.audit.record_quietly(record.id, AuditEventType.CASE_MARKED_READY, actor_id=user_id)
        return ready

    async def release(self, case_id: UUID, user_id: str) -> ReleaseResult:
        record = await self.store.get_by_id(case_id)
        await self.guardrails.require_acceptance(record, user_id)
        transaction = ReleaseTransaction(
            self.store,
            self.resolver,
            side_effects=[self._schedule_follow_up, self._record_release],
        )
        return await transaction.execute(case_id, user_id)

    async def create_revision(self, released_id: UUID, user_id: str) -> RevisionResult:
        record = await self.store.get_by_id(released_id)
        await self.guardrails.require_acceptance(record, user_id)
        result = await self.resolver.create_revision_from_snapshot(released_id, user_id)
        await self.audit.record_quietly(
            result.revision.id,
            AuditEventType.REVISION_CREATED,
            actor_id=user_id,
            detail={"source_id": str(released_id)},
        )
        return result

    async def close(self, case_id: UUID, user_id: str) -> CaseRecordRead:
        record = await self.store.get_by_id(case_id)
        await self.guardrails.require_acceptance(record, user_id)
        assert_transition(record.status, CaseAction.CLOSE)
        try:
            closed = await self.store.close(record.id, utcnow())
        except StatusConflict:
            raise IllegalTransition(f"Case {record.id} is no longer released")
        await self.audit.record_quietly(record.id, AuditEventType.CASE_CLOSED, actor_id=user_id)
        return closed

    # Post-release steps; failures are logged by the transaction

    async def _schedule_follow_up(self, record, released, continuation) -> None:
        await self.care_plans.schedule_follow_up(record.id, released.released_at)

    async def _record_release(self, record, released, continuation) -> None:
        await self.audit.record(
            released.id,
            AuditEventType.CASE_RELEASED,
            actor_id=released.released_by,
            detail={
                "source_id": str(record.id),
                "continuation_id": str(continuation.id),
                "release_version": released.content.get("release_version"),
            },
        )
