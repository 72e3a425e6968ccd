"""Exception hierarchy for the case lifecycle engine.

Every error raised by the engine derives from ``CaseLifecycleError`` so the
HTTP layer can map the whole family with a single handler. ``safe_message`` is
what gets returned to clients; the full message is for logs.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional
from uuid import UUID


class CaseLifecycleError(Exception):
    """Base exception for the case lifecycle engine."""

    kind = "lifecycle_error"

    def __init__(self, message: str, *, safe_message: str | None = None) -> None:
        super().__init__(message)
        self._safe_message = safe_message or message

    @property
    def safe_message(self) -> str:
        return self._safe_message

    def to_detail(self) -> dict[str, Any]:
        return {"detail": self.safe_message, "error": self.kind}


class IllegalTransition(CaseLifecycleError):
    """Requested action is not an edge of the case state machine.

    Raised when:
    - releasing a record that was never marked ready
    - releasing a record a second time
    - closing or revising anything but a released snapshot
    """

    kind = "illegal_transition"


class GuardrailViolation(CaseLifecycleError):
    """Mutation attempted on a record that may not be mutated."""

    kind = "guardrail_violation"


class AcceptanceRequired(GuardrailViolation):
    """The reviewer has no accepted assignment epoch for the case."""

    kind = "acceptance_required"

    def __init__(self, message: str, *, state: str, epoch_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            safe_message="Assignment must be accepted before this case can be changed.",
        )
        self.state = state
        self.epoch_id = epoch_id

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["acceptance_state"] = self.state
        return detail


class _ItemScopedError(CaseLifecycleError):
    def __init__(self, message: str, *, item_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.item_ids = list(item_ids)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["items"] = self.item_ids
        return detail


class CeilingViolation(_ItemScopedError):
    """Reviewer score exceeds the subject-reported baseline."""

    kind = "ceiling_violation"


class RationaleRequired(_ItemScopedError):
    """Downward adjustment without rationale, or a missing score where no baseline exists."""

    kind = "rationale_required"


class InvalidScoreEdit(_ItemScopedError):
    """Reset or clear requested outside of its precondition."""

    kind = "invalid_score_edit"


class IntegrityViolation(CaseLifecycleError):
    """Lineage data breaks an invariant and needs operator action.

    Never repaired automatically.
    """

    kind = "integrity_violation"

    def __init__(self, message: str, *, case_ids: Iterable[UUID] = ()) -> None:
        super().__init__(message)
        self.case_ids = list(case_ids)

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        detail["case_ids"] = [str(c) for c in self.case_ids]
        return detail


class StoreFailure(CaseLifecycleError):
    """Underlying store operation failed.

    ``orphaned_release_id`` is set when a release snapshot was persisted but
    its continuation draft was not; recover with an explicit create-revision.
    """

    kind = "store_failure"

    def __init__(self, message: str, *, orphaned_release_id: Optional[UUID] = None) -> None:
        super().__init__(message, safe_message="Case store unavailable. Please retry.")
        self.orphaned_release_id = orphaned_release_id

    def to_detail(self) -> dict[str, Any]:
        detail = super().to_detail()
        if self.orphaned_release_id:
            detail["orphaned_release_id"] = str(self.orphaned_release_id)
        return detail


class CaseNotFound(StoreFailure):
    kind = "not_found"

    def __init__(self, case_id: Any) -> None:
        CaseLifecycleError.__init__(self, f"Case {case_id} not found", safe_message="Case not found")
        self.orphaned_release_id = None
        self.case_id = case_id


class StatusConflict(StoreFailure):
    """Conditional update matched no row in the expected state."""

    kind = "conflict"

    def __init__(self, message: str) -> None:
        CaseLifecycleError.__init__(self, message)
        self.orphaned_release_id = None
