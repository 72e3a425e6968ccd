"""Authoritative transition table for case records.

A record is editable while drafting (``draft``, ``working``, ``revised``,
``ready``), becomes an immutable snapshot when released, and ``closed`` is
terminal. Release and create-revision never change the source record's
status; they insert a new record in the target status.
"""
from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Optional

from rcms.cases.models import CaseStatus
from rcms.exceptions import IllegalTransition

EDITABLE_STATUSES: FrozenSet[CaseStatus] = frozenset({
    CaseStatus.DRAFT,
    CaseStatus.WORKING,
    CaseStatus.REVISED,
    CaseStatus.READY,
})
RELEASABLE_STATUSES: FrozenSet[CaseStatus] = frozenset({CaseStatus.READY})
IMMUTABLE_STATUSES: FrozenSet[CaseStatus] = frozenset({CaseStatus.RELEASED, CaseStatus.CLOSED})

# Editable statuses a corrective update may force back to draft
CORRECTABLE_STATUSES: FrozenSet[CaseStatus] = EDITABLE_STATUSES - {CaseStatus.DRAFT}


class CaseAction(str, Enum):
    SAVE = "save"
    MARK_READY = "mark_ready"
    RELEASE = "release"
    CREATE_REVISION = "create_revision"
    CLOSE = "close"


class Transition(NamedTuple):
    allowed_from: FrozenSet[CaseStatus]
    # Status of the record the action produces; None when no record changes status
    to_status: Optional[CaseStatus]


TRANSITIONS: Dict[CaseAction, Transition] = {
    CaseAction.SAVE: Transition(EDITABLE_STATUSES, None),
    CaseAction.MARK_READY: Transition(
        frozenset({CaseStatus.DRAFT, CaseStatus.WORKING, CaseStatus.REVISED}),
        CaseStatus.READY,
    ),
    # The source stays as it is; a new released snapshot is inserted
    CaseAction.RELEASE: Transition(RELEASABLE_STATUSES, CaseStatus.RELEASED),
    # Any released snapshot, not only the latest one
    CaseAction.CREATE_REVISION: Transition(frozenset({CaseStatus.RELEASED}), CaseStatus.DRAFT),
    CaseAction.CLOSE: Transition(frozenset({CaseStatus.RELEASED}), CaseStatus.CLOSED),
}


def coerce_status(status) -> CaseStatus:
    if isinstance(status, CaseStatus):
        return status
    return CaseStatus(str(status).strip().lower())


def is_editable(status) -> bool:
    return coerce_status(status) in EDITABLE_STATUSES


def is_releasable(status) -> bool:
    return coerce_status(status) in RELEASABLE_STATUSES


def is_immutable(status) -> bool:
    return coerce_status(status) in IMMUTABLE_STATUSES


def can_transition(status, action: CaseAction) -> bool:
    return coerce_status(status) in TRANSITIONS[action].allowed_from


def assert_transition(status, action: CaseAction) -> Transition:
    """Return the transition for ``action`` or raise ``IllegalTransition``."""
    current = coerce_status(status)
    transition = TRANSITIONS[action]
    if current not in transition.allowed_from:
        allowed = ", ".join(sorted(s.value for s in transition.allowed_from))
        raise IllegalTransition(
            f"Cannot {action.value} a case in status '{current.value}' (allowed from: {allowed})"
        )
    return transition
