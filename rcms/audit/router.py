from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.auth.dependencies import any_role
from rcms.auth.schemas import Principal
from rcms.database import get_db
from rcms.audit.models import AuditEventType
from rcms.audit.schemas import AuditEventResponse
from rcms.audit.service import AuditService
from rcms.cases.service import CaseService

router = APIRouter(prefix="/cases", tags=["audit"])


@router.get("/{case_id}/audit", response_model=List[AuditEventResponse])
async def list_audit_events(
    case_id: UUID,
    event_type: Optional[List[AuditEventType]] = Query(default=None),
    current_user: Principal = Depends(any_role),
    db: AsyncSession = Depends(get_db),
):
    """Events for every record of the case's lineage, newest first."""
    lineage = await CaseService(db).lineage(case_id)
    case_ids = {lineage.lineage_id, *(r.id for r in lineage.records)}
    return await AuditService(db).list_events(case_ids, event_type)
