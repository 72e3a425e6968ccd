from enum import Enum
from sqlalchemy import Column, String, ForeignKey, Boolean, DateTime, Uuid, Enum as SAEnum
from sqlalchemy.orm import relationship
from rcms.database import Base
from rcms.shared.models import AuditMixin, TimestampMixin, JSONType

class CaseStatus(str, Enum):
    DRAFT = "draft"
    WORKING = "working"
    REVISED = "revised"
    READY = "ready"
    RELEASED = "released"
    CLOSED = "closed"

class CaseRecord(Base, AuditMixin):
    __tablename__ = "rc_cases"

    # Root id of the lineage; equals id for the first record
    lineage_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("rc_cases.id"), nullable=True, index=True)

    status = Column(
        SAEnum(CaseStatus, name="case_status", values_callable=lambda e: [m.value for m in e]),
        default=CaseStatus.DRAFT,
        nullable=False,
    )
    is_superseded = Column(Boolean, default=False, nullable=False)

    released_at = Column(DateTime, nullable=True)
    released_by = Column(String, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    content = Column(JSONType, nullable=False, default=dict)

    parent = relationship("CaseRecord", remote_side="CaseRecord.id")

class ActiveCase(Base, TimestampMixin):
    """Per-user pointer to the case record currently being worked on."""
    __tablename__ = "rc_active_cases"

    user_id = Column(String, primary_key=True)
    case_id = Column(Uuid(as_uuid=True), ForeignKey("rc_cases.id"), nullable=False)

    case = relationship("CaseRecord")
