import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rcms.cases.models import ActiveCase, CaseRecord, CaseStatus
from rcms.cases.schemas import CaseRecordRead, NewCaseRecord
from rcms.cases.state_machine import EDITABLE_STATUSES, IMMUTABLE_STATUSES
from rcms.exceptions import CaseNotFound, StatusConflict, StoreFailure
from rcms.shared.models import utcnow

logger = logging.getLogger(__name__)


class CaseStore(ABC):
    """Contract the lifecycle engine needs from the case table.

    Every call is an independent round-trip; there is no transaction spanning
    two calls.
    """

    @abstractmethod
    async def insert(self, record: NewCaseRecord) -> CaseRecordRead: ...

    @abstractmethod
    async def get_by_id(self, case_id: UUID) -> CaseRecordRead: ...

    @abstractmethod
    async def list_by_parent_chain(self, root_id: UUID) -> List[CaseRecordRead]: ...

    @abstractmethod
    async def find_children(self, parent_id: UUID) -> List[CaseRecordRead]: ...

    @abstractmethod
    async def update_status(
        self, case_id: UUID, from_statuses: Iterable[CaseStatus], to_status: CaseStatus
    ) -> CaseRecordRead: ...

    @abstractmethod
    async def update_content(self, case_id: UUID, content: Dict[str, Any]) -> CaseRecordRead: ...

    @abstractmethod
    async def supersede(self, case_id: UUID) -> CaseRecordRead: ...

    @abstractmethod
    async def restore(self, case_id: UUID) -> CaseRecordRead: ...

    @abstractmethod
    async def retire(self, case_id: UUID) -> CaseRecordRead: ...

    @abstractmethod
    async def close(self, case_id: UUID, closed_at: datetime) -> CaseRecordRead: ...

    @abstractmethod
    async def get_active_case(self, user_id: str) -> Optional[UUID]: ...

    @abstractmethod
    async def set_active_case(self, user_id: str, case_id: UUID) -> None: ...


class SQLAlchemyCaseStore(CaseStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fail(self, op: str, e: Exception) -> StoreFailure:
        await self.db.rollback()
        logger.error(f"Case store {op} failed: {e}")
        return StoreFailure(f"Case store {op} failed: {e}")

    async def _load(self, case_id: UUID) -> CaseRecord:
        result = await self.db.execute(
            select(CaseRecord)
            .where(CaseRecord.id == case_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise CaseNotFound(case_id)
        return row

    async def _conditional_update(self, case_id: UUID, conditions: list, values: dict, what: str) -> CaseRecordRead:
        try:
            result = await self.db.execute(
                update(CaseRecord)
                .where(CaseRecord.id == case_id, *conditions)
                .values(updated_at=utcnow(), **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await self.db.rollback()
                await self._load(case_id)  # raises CaseNotFound for a missing id
                raise StatusConflict(f"Conditional {what} on case {case_id} matched no row")
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail(what, e)
        return await self.get_by_id(case_id)

    async def insert(self, record: NewCaseRecord) -> CaseRecordRead:
        try:
            lineage_id = None
            if record.parent_id is not None:
                parent = await self._load(record.parent_id)
                lineage_id = parent.lineage_id

            new_id = uuid.uuid4()
            row = CaseRecord(
                id=new_id,
                lineage_id=lineage_id or new_id,
                parent_id=record.parent_id,
                status=record.status,
                released_at=record.released_at,
                released_by=record.released_by,
                content=record.content,
            )
            self.db.add(row)
            await self.db.commit()
            await self.db.refresh(row)
        except SQLAlchemyError as e:
            raise await self._fail("insert", e)
        return CaseRecordRead.model_validate(row)

    async def get_by_id(self, case_id: UUID) -> CaseRecordRead:
        try:
            row = await self._load(case_id)
        except SQLAlchemyError as e:
            raise await self._fail("read", e)
        return CaseRecordRead.model_validate(row)

    async def list_by_parent_chain(self, root_id: UUID) -> List[CaseRecordRead]:
        try:
            result = await self.db.execute(
                select(CaseRecord)
                .where(CaseRecord.lineage_id == root_id)
                .order_by(CaseRecord.created_at)
                .execution_options(populate_existing=True)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise await self._fail("lineage read", e)
        return [CaseRecordRead.model_validate(r) for r in rows]

    async def find_children(self, parent_id: UUID) -> List[CaseRecordRead]:
        try:
            result = await self.db.execute(
                select(CaseRecord)
                .where(CaseRecord.parent_id == parent_id)
                .order_by(CaseRecord.created_at)
                .execution_options(populate_existing=True)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise await self._fail("children read", e)
        return [CaseRecordRead.model_validate(r) for r in rows]

    async def update_status(
        self, case_id: UUID, from_statuses: Iterable[CaseStatus], to_status: CaseStatus
    ) -> CaseRecordRead:
        # Never touches a released or closed record, whatever the caller asks for
        allowed = set(from_statuses) - IMMUTABLE_STATUSES
        if not allowed or to_status in IMMUTABLE_STATUSES:
            raise StatusConflict(f"Status update {sorted(s.value for s in from_statuses)} -> {to_status.value} is not permitted")
        return await self._conditional_update(
            case_id,
            [CaseRecord.status.in_(allowed), CaseRecord.is_superseded.is_(False)],
            {"status": to_status},
            "status update",
        )

    async def update_content(self, case_id: UUID, content: Dict[str, Any]) -> CaseRecordRead:
        return await self._conditional_update(
            case_id,
            [CaseRecord.status.in_(EDITABLE_STATUSES), CaseRecord.is_superseded.is_(False)],
            {"content": content},
            "content update",
        )

    async def supersede(self, case_id: UUID) -> CaseRecordRead:
        return await self._conditional_update(
            case_id,
            [CaseRecord.status == CaseStatus.READY, CaseRecord.is_superseded.is_(False)],
            {"is_superseded": True},
            "supersede",
        )

    async def restore(self, case_id: UUID) -> CaseRecordRead:
        return await self._conditional_update(
            case_id,
            [CaseRecord.status == CaseStatus.READY, CaseRecord.is_superseded.is_(True)],
            {"is_superseded": False},
            "restore",
        )

    async def retire(self, case_id: UUID) -> CaseRecordRead:
        """Set aside a live draft that a newer revision replaces."""
        return await self._conditional_update(
            case_id,
            [CaseRecord.status.in_(EDITABLE_STATUSES), CaseRecord.is_superseded.is_(False)],
            {"is_superseded": True},
            "retire",
        )

    async def close(self, case_id: UUID, closed_at: datetime) -> CaseRecordRead:
        return await self._conditional_update(
            case_id,
            [CaseRecord.status == CaseStatus.RELEASED],
            {"status": CaseStatus.CLOSED, "closed_at": closed_at},
            "close",
        )

    async def get_active_case(self, user_id: str) -> Optional[UUID]:
        try:
            pointer = await self.db.get(ActiveCase, user_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise await self._fail("active case read", e)
        return pointer.case_id if pointer else None

    async def set_active_case(self, user_id: str, case_id: UUID) -> None:
        try:
            pointer = await self.db.get(ActiveCase, user_id)
            if pointer:
                pointer.case_id = case_id
            else:
                self.db.add(ActiveCase(user_id=user_id, case_id=case_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            raise await self._fail("active case update", e)
