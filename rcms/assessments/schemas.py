from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AssessmentKind(str, Enum):
    FOURPS = "fourps"
    SDOH = "sdoh"


class AggregationRule(str, Enum):
    WORST = "worst"
    MEAN = "mean"


class AdjustmentFlag(str, Enum):
    UNCHANGED = "unchanged"
    ADJUSTED = "adjusted"
    LEGACY_ABOVE_BASELINE = "legacy_above_baseline"
    BASELINE_MISSING = "baseline_missing"


class AssessmentItem(BaseModel):
    id: str
    domain: Optional[str] = None
    label: Optional[str] = None
    subject_score: Optional[int] = Field(default=None, ge=1, le=5)
    # Range is checked by the ceiling rules so legacy values still load
    reviewer_score: Optional[int] = None
    rationale: Optional[str] = None
    subject_note: Optional[str] = None


class AssessmentDocument(BaseModel):
    kind: AssessmentKind
    items: List[AssessmentItem] = []
    narrative: Optional[str] = None


class ItemEvaluation(BaseModel):
    id: str
    max_allowed: Optional[int] = None
    selectable_scores: List[int]
    flag: AdjustmentFlag
    needs_rationale: bool
    has_rationale: bool
    effective_score: Optional[int] = None
    severity_label: Optional[str] = None


class AssessmentEvaluation(BaseModel):
    kind: AssessmentKind
    items: List[ItemEvaluation]
    domain_scores: Dict[str, Optional[int]] = {}
    overall_score: Optional[int] = None
    overall_label: Optional[str] = None
    ceiling_breaches: List[str] = []
    missing_scores: List[str] = []
    missing_rationales: List[str] = []
    can_save: bool


class ScoreEditRequest(BaseModel):
    item: AssessmentItem
    value: int


class ItemEditRequest(BaseModel):
    item: AssessmentItem


class ItemEditResponse(BaseModel):
    item: AssessmentItem
    evaluation: ItemEvaluation


class AssessmentSaveRequest(BaseModel):
    items: List[AssessmentItem]
    narrative: Optional[str] = None


class StoredAssessment(BaseModel):
    """Shape persisted under ``content.assessments[kind]``."""
    kind: AssessmentKind
    items: List[AssessmentItem]
    narrative: Optional[str] = None
    notes: str = ""
    domain_scores: Dict[str, Optional[int]] = {}
    overall_score: Optional[int] = None
    saved_by: Optional[str] = None
    saved_at: Optional[datetime] = None

    def to_document(self) -> AssessmentDocument:
        return AssessmentDocument(kind=self.kind, items=self.items, narrative=self.narrative)


class AssessmentResponse(StoredAssessment):
    case_id: UUID
