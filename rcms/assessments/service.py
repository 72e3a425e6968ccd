import copy
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rcms.assessments import scoring
from rcms.assessments.schemas import (
    AssessmentDocument,
    AssessmentEvaluation,
    AssessmentKind,
    AssessmentResponse,
    AssessmentSaveRequest,
    StoredAssessment,
)
from rcms.audit.models import AuditEventType
from rcms.cases.schemas import CaseRecordRead
from rcms.cases.service import CaseService
from rcms.exceptions import GuardrailViolation, StatusConflict
from rcms.shared.models import utcnow

logger = logging.getLogger(__name__)


def _stored(record: CaseRecordRead, kind: AssessmentKind) -> Optional[StoredAssessment]:
    raw = (record.content.get("assessments") or {}).get(kind.value)
    if raw is None:
        return None
    return StoredAssessment.model_validate(raw)


class AssessmentService:
    """Persists 4Ps and SDOH assessments under the case content."""

    def __init__(self, db: AsyncSession, cases: Optional[CaseService] = None):
        self.cases = cases or CaseService(db)

    async def get_assessment(self, case_id: UUID, kind: AssessmentKind) -> Optional[AssessmentResponse]:
        record = await self.cases.get_case(case_id)
        stored = _stored(record, kind)
        if stored is None:
            return None
        return AssessmentResponse(case_id=record.id, **stored.model_dump())

    async def evaluate(
        self, case_id: UUID, kind: AssessmentKind, request: AssessmentSaveRequest
    ) -> AssessmentEvaluation:
        record = await self.cases.get_case(case_id)
        previous = _stored(record, kind)
        document = AssessmentDocument(kind=kind, items=request.items, narrative=request.narrative)
        return scoring.evaluate_document(document, previous.to_document() if previous else None)

    async def save_assessment(
        self, case_id: UUID, kind: AssessmentKind, request: AssessmentSaveRequest, user_id: str
    ) -> AssessmentResponse:
        record = await self.cases.get_case(case_id)
        await self.cases.guardrails.require_acceptance(record, user_id)
        self.cases.guardrails.assert_mutable(record)

        previous = _stored(record, kind)
        document = AssessmentDocument(kind=kind, items=request.items, narrative=request.narrative)
        scoring.validate_for_save(document, previous.to_document() if previous else None)

        stored = StoredAssessment(
            kind=kind,
            items=document.items,
            narrative=document.narrative,
            notes=scoring.format_rationale_notes(document, document.narrative),
            domain_scores=scoring.domain_scores(document),
            overall_score=scoring.overall_score(document),
            saved_by=user_id,
            saved_at=utcnow(),
        )
        content = copy.deepcopy(record.content)
        content.setdefault("assessments", {})[kind.value] = stored.model_dump(mode="json")
        try:
            await self.cases.store.update_content(record.id, content)
        except StatusConflict:
            raise GuardrailViolation(
                f"Case {record.id} stopped being editable before the {kind.value} save",
                safe_message="This case is no longer editable.",
            )

        logger.info(f"{kind.value} assessment saved on case {record.id} (overall {stored.overall_score})")
        await self.cases.audit.record_quietly(
            record.id,
            AuditEventType.ASSESSMENT_SAVED,
            actor_id=user_id,
            detail={"kind": kind.value, "overall_score": stored.overall_score},
        )
        return AssessmentResponse(case_id=record.id, **stored.model_dump())
