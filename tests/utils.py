from typing import Dict
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rcms.assignments.service import AssignmentService
from rcms.auth.security import create_access_token

RN_ID = "rn-1"
OTHER_RN_ID = "rn-2"
SUPERVISOR_ID = "sup-1"
ATTORNEY_ID = "atty-1"


def auth_headers(user_id: str, role: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


async def accept_assignment(db: AsyncSession, lineage_id: UUID, rn_id: str = RN_ID) -> str:
    """Assign ``rn_id`` to the lineage and accept; returns the epoch id."""
    service = AssignmentService(db)
    state = await service.record_assignment(lineage_id, rn_id, SUPERVISOR_ID)
    await service.record_accept(lineage_id, rn_id, state.epoch_id)
    return state.epoch_id
