import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.audit.models import AuditEvent, AuditEventType
from rcms.exceptions import StoreFailure

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        case_id: UUID,
        event_type: AuditEventType,
        actor_id: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            case_id=case_id,
            event_type=event_type,
            actor_id=actor_id,
            detail=detail,
        )
        try:
            self.db.add(event)
            await self.db.commit()
            await self.db.refresh(event)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Failed to record {event_type.value} for case {case_id}: {e}")
        return event

    async def record_quietly(
        self,
        case_id: UUID,
        event_type: AuditEventType,
        actor_id: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an event whose loss must not fail the calling operation."""
        try:
            await self.record(case_id, event_type, actor_id, detail)
        except StoreFailure as e:
            logger.warning(f"Audit event dropped: {e}")

    async def list_events(
        self,
        case_ids: Iterable[UUID],
        event_types: Optional[Iterable[AuditEventType]] = None,
    ) -> List[AuditEvent]:
        stmt = (
            select(AuditEvent)
            .where(AuditEvent.case_id.in_(list(case_ids)))
            .order_by(desc(AuditEvent.created_at))
        )
        if event_types is not None:
            stmt = stmt.where(AuditEvent.event_type.in_(list(event_types)))
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Failed to read audit events: {e}")
        return list(result.scalars().all())
