import logging
from collections import defaultdict
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from rcms.cases.continuation import build_continuation, insert_continuation
from rcms.cases.models import CaseStatus
from rcms.cases.schemas import (
    CaseRecordRead,
    CurrentDraftResponse,
    ReleaseHistoryItem,
    RevisionResult,
)
from rcms.cases.state_machine import (
    EDITABLE_STATUSES,
    IMMUTABLE_STATUSES,
    CaseAction,
    assert_transition,
)
from rcms.cases.store import CaseStore
from rcms.exceptions import IllegalTransition, IntegrityViolation, StatusConflict

logger = logging.getLogger(__name__)


def _released_sort_key(record: CaseRecordRead):
    # Snapshots always carry released_at; created_at breaks ties
    return (record.released_at or record.created_at, record.created_at)


def _is_live(record: CaseRecordRead) -> bool:
    return record.status in EDITABLE_STATUSES and not record.is_superseded


class RevisionChainResolver:
    """Read-side queries over a lineage (records linked through ``parent_id``)."""

    def __init__(self, store: CaseStore):
        self.store = store

    async def lineage(self, case_id: UUID) -> Tuple[UUID, List[CaseRecordRead]]:
        """Return the lineage root id and every record reachable from it."""
        record = await self.store.get_by_id(case_id)
        root_id = record.lineage_id
        records = await self.store.list_by_parent_chain(root_id)

        children: Dict[Optional[UUID], List[CaseRecordRead]] = defaultdict(list)
        by_id = {}
        for r in records:
            by_id[r.id] = r
            children[r.parent_id].append(r)

        if root_id not in by_id:
            raise IntegrityViolation(f"Lineage root {root_id} of case {case_id} is missing", case_ids=[case_id])

        reachable = []
        seen = {root_id}
        queue = [by_id[root_id]]
        while queue:
            current = queue.pop(0)
            reachable.append(current)
            for child in children.get(current.id, []):
                if child.id not in seen:
                    seen.add(child.id)
                    queue.append(child)
        return root_id, reachable

    async def latest_released(self, case_id: UUID, include_closed: bool = False) -> Optional[CaseRecordRead]:
        _, records = await self.lineage(case_id)
        statuses = IMMUTABLE_STATUSES if include_closed else {CaseStatus.RELEASED}
        released = [r for r in records if r.status in statuses]
        if not released:
            return None
        return max(released, key=_released_sort_key)

    async def release_history(self, case_id: UUID) -> List[ReleaseHistoryItem]:
        """Released and closed snapshots of the lineage, newest first."""
        _, records = await self.lineage(case_id)
        snapshots = sorted(
            (r for r in records if r.status in IMMUTABLE_STATUSES),
            key=_released_sort_key,
            reverse=True,
        )
        return [
            ReleaseHistoryItem(
                id=r.id,
                status=r.status,
                released_at=r.released_at,
                released_by=r.released_by,
                release_version=r.content.get("release_version"),
            )
            for r in snapshots
        ]

    async def current_draft(self, case_id: UUID) -> CurrentDraftResponse:
        """Locate the live editable record of the lineage.

        Normally the draft hangs off the latest snapshot, or off an older one
        after a revision from it. Every live draft anywhere in the lineage is
        counted: more than one is an integrity problem and is raised, never
        resolved by picking one.
        """
        root_id, records = await self.lineage(case_id)
        snapshots = [r for r in records if r.status in IMMUTABLE_STATUSES]
        anchor = max(snapshots, key=_released_sort_key) if snapshots else None
        candidates = [r for r in records if _is_live(r)]

        if len(candidates) > 1:
            ids = [c.id for c in candidates]
            logger.error(f"Lineage {root_id} has {len(ids)} live drafts: {ids}")
            raise IntegrityViolation(
                f"Lineage {root_id} has more than one current draft",
                case_ids=ids,
            )

        draft = candidates[0] if candidates else None
        return CurrentDraftResponse(
            lineage_id=root_id,
            draft=draft,
            awaiting_continuation=(
                draft is None and anchor is not None and anchor.status == CaseStatus.RELEASED
            ),
            latest_released_id=anchor.id if anchor else None,
        )

    async def find_release_of(self, source_id: UUID) -> Optional[CaseRecordRead]:
        """The snapshot released from ``source_id``, if one was persisted."""
        children = await self.store.find_children(source_id)
        snapshots = [c for c in children if c.status in IMMUTABLE_STATUSES]
        if len(snapshots) > 1:
            raise IntegrityViolation(
                f"Case {source_id} was released more than once",
                case_ids=[s.id for s in snapshots],
            )
        return snapshots[0] if snapshots else None

    async def create_revision_from_snapshot(self, released_id: UUID, user_id: str) -> RevisionResult:
        """Open a new draft from any released snapshot of the lineage.

        The snapshot itself is untouched. A live draft elsewhere in the lineage
        is retired first so the lineage keeps a single current draft; if the
        insert then fails the lineage has no draft and the call can be retried.
        """
        source = await self.store.get_by_id(released_id)
        assert_transition(source.status, CaseAction.CREATE_REVISION)

        _, records = await self.lineage(source.id)
        live = [r for r in records if _is_live(r)]
        # A retry must not open a second draft under the same snapshot
        under_source = [r for r in live if r.parent_id == source.id]
        if under_source:
            raise IllegalTransition(
                f"Snapshot {source.id} already has an open draft {under_source[0].id}",
                safe_message="This snapshot already has an open draft.",
            )

        for draft in live:
            try:
                await self.store.retire(draft.id)
            except StatusConflict:
                raise IllegalTransition(
                    f"Draft {draft.id} changed while opening a revision from {source.id}",
                    safe_message="The case changed while opening the revision. Reload and try again.",
                )
            logger.info(f"Draft {draft.id} retired in favour of a revision from snapshot {source.id}")

        payload = build_continuation(source, parent_id=source.id)
        revision = await insert_continuation(self.store, payload)
        await self.store.set_active_case(user_id, revision.id)
        logger.info(f"Revision {revision.id} created from snapshot {source.id}")
        return RevisionResult(source_id=source.id, revision=revision, active_case_id=revision.id)
