"""Continuation drafts: the editable record that follows a snapshot.

A continuation is built by copying a source record and then forcing the few
fields that must never be inherited. The two steps are kept separate and
explicit so either can be tested on its own.
"""
import copy
import logging
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from rcms.cases.models import CaseStatus
from rcms.cases.schemas import CaseRecordRead, NewCaseRecord
from rcms.cases.state_machine import CORRECTABLE_STATUSES, IMMUTABLE_STATUSES
from rcms.cases.store import CaseStore
from rcms.exceptions import IntegrityViolation, StoreFailure

logger = logging.getLogger(__name__)

# Identity, lineage and lifecycle stamps of the source; never copied
STRIPPED_FIELDS = frozenset({
    "id",
    "lineage_id",
    "parent_id",
    "status",
    "is_superseded",
    "released_at",
    "released_by",
    "closed_at",
    "created_at",
    "updated_at",
})

# Everything else a record has; must be copied
COPIED_FIELDS = frozenset({"content"})


def strip_source(source: CaseRecordRead) -> Dict[str, Any]:
    fields = source.model_dump()
    for name in STRIPPED_FIELDS:
        fields.pop(name, None)
    unknown = set(fields) - COPIED_FIELDS
    if unknown:
        # A new column must be classified before it can flow into drafts
        raise ValueError(f"Unclassified case fields: {sorted(unknown)}")
    fields["content"] = copy.deepcopy(fields.get("content") or {})
    return fields


def force_draft(fields: Dict[str, Any], parent_id: UUID) -> NewCaseRecord:
    forced = {
        **fields,
        "status": CaseStatus.DRAFT,
        "released_at": None,
        "released_by": None,
        "parent_id": parent_id,
    }
    return NewCaseRecord(**forced)


def build_continuation(
    source: CaseRecordRead,
    parent_id: UUID,
    carry_content: Optional[Mapping[str, Any]] = None,
) -> NewCaseRecord:
    """Copy ``source`` then force draft status under ``parent_id``.

    ``carry_content`` keys overwrite the copied content (used to carry the
    release counter forward).
    """
    fields = strip_source(source)
    if carry_content:
        fields["content"].update(carry_content)
    payload = force_draft(fields, parent_id)
    if payload.status != CaseStatus.DRAFT or payload.released_at or payload.released_by:
        raise IntegrityViolation("Continuation must be an unreleased draft", case_ids=[source.id])
    return payload


async def insert_continuation(store: CaseStore, payload: NewCaseRecord) -> CaseRecordRead:
    """Insert a continuation draft and make sure it is persisted as ``draft``."""
    draft = await store.insert(payload)
    if draft.status == CaseStatus.DRAFT:
        return draft

    logger.error(f"Continuation {draft.id} persisted with status {draft.status.value}, expected draft")
    if draft.status in IMMUTABLE_STATUSES:
        raise IntegrityViolation(
            f"Continuation {draft.id} was persisted as {draft.status.value}; refusing to alter an immutable record",
            case_ids=[draft.id],
        )

    logger.warning(f"Forcing continuation {draft.id} back to draft")
    try:
        return await store.update_status(draft.id, CORRECTABLE_STATUSES, CaseStatus.DRAFT)
    except StoreFailure as e:
        raise IntegrityViolation(
            f"Corrective update of continuation {draft.id} failed: {e}",
            case_ids=[draft.id],
        ) from e
