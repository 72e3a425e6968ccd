from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class AcceptanceStatus(str, Enum):
    NO_EPOCH = "no_epoch"
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class DeclineReasonCode(str, Enum):
    OVER_LIMIT_SCORE = "over_limit_score"
    CAPACITY_CONSTRAINT = "capacity_constraint"
    SCHEDULE_UNAVAILABLE = "schedule_unavailable"
    SCOPE_MISMATCH = "scope_mismatch"
    OTHER = "other"


class AssignmentEpoch(BaseModel):
    epoch_id: str
    assigned_at: datetime
    assigned_rn_id: str


class AcceptanceState(BaseModel):
    status: AcceptanceStatus
    epoch: Optional[AssignmentEpoch] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    reason_code: Optional[str] = None

    @property
    def epoch_id(self) -> Optional[str]:
        return self.epoch.epoch_id if self.epoch else None


class AssignRequest(BaseModel):
    rn_id: str


class AcceptRequest(BaseModel):
    epoch_id: str


class DeclineRequest(BaseModel):
    epoch_id: str
    reason_code: DeclineReasonCode
    reason_text: Optional[str] = None


class AcceptanceStateResponse(BaseModel):
    lineage_id: UUID
    rn_id: str
    status: AcceptanceStatus
    epoch_id: Optional[str] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    reason_code: Optional[str] = None
