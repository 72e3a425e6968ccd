from enum import Enum
from sqlalchemy import Column, String, Uuid
from sqlalchemy import Enum as SAEnum
from rcms.database import Base
from rcms.shared.models import AuditMixin, JSONType


class AuditEventType(str, Enum):
    CASE_CREATED = "CASE_CREATED"
    CONTENT_SAVED = "CONTENT_SAVED"
    ASSESSMENT_SAVED = "ASSESSMENT_SAVED"
    CASE_MARKED_READY = "CASE_MARKED_READY"
    CASE_RELEASED = "CASE_RELEASED"
    REVISION_CREATED = "REVISION_CREATED"
    CASE_CLOSED = "CASE_CLOSED"
    INTEGRITY_WARNING = "INTEGRITY_WARNING"
    RN_ASSIGNED_TO_CASE = "RN_ASSIGNED_TO_CASE"
    RN_ACCEPTED_ASSIGNMENT = "RN_ACCEPTED_ASSIGNMENT"
    RN_DECLINED_ASSIGNMENT = "RN_DECLINED_ASSIGNMENT"


class AuditEvent(Base, AuditMixin):
    __tablename__ = "rc_audit_events"

    # Lifecycle events reference the record acted on; assignment events the lineage id
    case_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    event_type = Column(SAEnum(AuditEventType, name="audit_event_type"), nullable=False)
    actor_id = Column(String, nullable=True)
    detail = Column(JSONType, nullable=True)
