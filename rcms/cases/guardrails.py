import logging

from rcms.assignments.schemas import AcceptanceStatus
from rcms.assignments.service import AssignmentService
from rcms.cases.schemas import CaseRecordRead
from rcms.cases.state_machine import (
    CaseAction,
    assert_transition,
    is_editable,
    is_immutable,
    is_releasable,
)
from rcms.exceptions import AcceptanceRequired, GuardrailViolation

logger = logging.getLogger(__name__)


class GuardrailEnforcer:
    """Decides whether a case record may be mutated and by whom."""

    is_editable = staticmethod(is_editable)
    is_releasable = staticmethod(is_releasable)
    is_immutable = staticmethod(is_immutable)

    def __init__(self, assignments: AssignmentService):
        self.assignments = assignments

    def assert_mutable(self, record: CaseRecordRead) -> None:
        if is_immutable(record.status):
            raise GuardrailViolation(
                f"Case {record.id} is {record.status.value} and can no longer be changed",
                safe_message="Released and closed cases are read-only.",
            )
        if record.is_superseded:
            raise GuardrailViolation(
                f"Case {record.id} was superseded and can no longer be changed",
                safe_message="This draft was released or replaced; continue on the current draft.",
            )
        if not is_editable(record.status):
            raise GuardrailViolation(f"Case {record.id} in status {record.status.value} is not editable")

    def assert_action(self, record: CaseRecordRead, action: CaseAction) -> None:
        """Check the state machine edge and, for edits, mutability."""
        if action == CaseAction.SAVE:
            self.assert_mutable(record)
        assert_transition(record.status, action)

    async def require_acceptance(self, record: CaseRecordRead, reviewer_id: str) -> None:
        """Acceptance gate: the reviewer must hold an accepted assignment epoch."""
        state = await self.assignments.get_acceptance_state(record.lineage_id, reviewer_id)
        if state.status != AcceptanceStatus.ACCEPTED:
            logger.warning(
                f"Acceptance gate blocked {reviewer_id} on case {record.id}: {state.status.value}"
            )
            raise AcceptanceRequired(
                f"Reviewer {reviewer_id} has no accepted assignment for case {record.lineage_id} "
                f"(state: {state.status.value})",
                state=state.status.value,
                epoch_id=state.epoch_id,
            )
