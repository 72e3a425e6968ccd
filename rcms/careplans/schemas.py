from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field
from rcms.careplans.models import CarePlanStatus

class CarePlanSubmit(BaseModel):
    follow_up_interval_days: Optional[int] = Field(default=None, gt=0, le=365)
    plan: Optional[Dict[str, Any]] = None

class CarePlanResponse(BaseModel):
    id: UUID
    case_id: UUID
    status: CarePlanStatus
    follow_up_interval_days: Optional[int] = None
    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    next_due_at: Optional[datetime] = None
    plan: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)
