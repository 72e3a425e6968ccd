from datetime import date, datetime
from enum import Enum
from uuid import UUID
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from rcms.cases.models import CaseStatus

# Content keys owned by the lifecycle engine and the assessment service
ENGINE_CONTENT_KEYS = frozenset({
    "release_version",
    "last_released_at",
    "release_summary",
    "assessments",
})


class CaseRecordRead(BaseModel):
    """A persisted case record as returned by the store."""
    id: UUID
    lineage_id: UUID
    parent_id: Optional[UUID] = None
    status: CaseStatus
    is_superseded: bool = False
    released_at: Optional[datetime] = None
    released_by: Optional[str] = None
    closed_at: Optional[datetime] = None
    content: Dict[str, Any] = {}
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NewCaseRecord(BaseModel):
    """Insert payload; id, lineage and timestamps are assigned by the store."""
    status: CaseStatus
    parent_id: Optional[UUID] = None
    released_at: Optional[datetime] = None
    released_by: Optional[str] = None
    content: Dict[str, Any] = {}


class CaseContent(BaseModel):
    case_type: Optional[str] = None
    date_of_injury: Optional[date] = None
    jurisdiction: Optional[str] = None
    client_id: Optional[str] = None
    attorney_id: Optional[str] = None
    assigned_rn_id: Optional[str] = None
    incident: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class CaseCreate(BaseModel):
    content: CaseContent = Field(default_factory=CaseContent)


class CaseContentUpdate(CaseContent):
    pass


class CaseResponse(CaseRecordRead):
    is_editable: bool
    is_immutable: bool


class ReleaseResult(BaseModel):
    released: CaseRecordRead
    continuation: CaseRecordRead
    release_version: int
    active_case_id: UUID


class RevisionResult(BaseModel):
    source_id: UUID
    revision: CaseRecordRead
    active_case_id: UUID


class ReleaseHistoryItem(BaseModel):
    id: UUID
    status: CaseStatus
    released_at: Optional[datetime] = None
    released_by: Optional[str] = None
    release_version: Optional[int] = None


class EditMode(str, Enum):
    DRAFT = "draft"
    RELEASED = "released"
    CLOSED = "closed"


class EditModeResponse(BaseModel):
    case_id: UUID
    mode: EditMode
    status: CaseStatus
    is_view_only: bool
    back_to_draft_id: Optional[UUID] = None


class CurrentDraftResponse(BaseModel):
    lineage_id: UUID
    draft: Optional[CaseRecordRead] = None
    # A released snapshot exists but its continuation has not been created yet
    awaiting_continuation: bool = False
    latest_released_id: Optional[UUID] = None


class ActiveCaseResponse(BaseModel):
    user_id: str
    case_id: Optional[UUID] = None


class LineageResponse(BaseModel):
    lineage_id: UUID
    records: List[CaseRecordRead]
