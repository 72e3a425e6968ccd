from enum import Enum
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid, Enum as SAEnum
from rcms.database import Base
from rcms.shared.models import AuditMixin, JSONType

class CarePlanStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"

class CarePlan(Base, AuditMixin):
    __tablename__ = "rc_care_plans"

    case_id = Column(Uuid(as_uuid=True), ForeignKey("rc_cases.id"), nullable=False, index=True)
    status = Column(SAEnum(CarePlanStatus, name="care_plan_status", values_callable=lambda e: [m.value for m in e]), default=CarePlanStatus.DRAFT, nullable=False)
    follow_up_interval_days = Column(Integer, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    submitted_by = Column(String, nullable=True)
    # Set when the case is released; the follow-up reminder is due then
    next_due_at = Column(DateTime, nullable=True)
    plan = Column(JSONType, nullable=True)
