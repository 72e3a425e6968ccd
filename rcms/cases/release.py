"""Release: turn a ready draft into an immutable snapshot plus a new draft.

The steps are separate store round-trips with no transaction around them:

1. check the record is releasable
2. stamp release counter, timestamp and summary onto a copy of the content
3. claim the source and insert the released snapshot
4. verify the snapshot came back as released
5. build the continuation draft from the pre-release record
6. insert it and verify (or correct) its status
7. point the reviewer's active case at the continuation
8. best-effort side effects

A failure in 3 or 4 leaves nothing behind (the claim is given back). A
failure in 5 or 6 leaves a released snapshot without a draft; the chain
resolver reports it as awaiting continuation and an explicit create-revision
recovers it.
"""
import copy
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from rcms.assessments.scoring import summarize_for_release
from rcms.cases.chain import RevisionChainResolver
from rcms.cases.continuation import build_continuation, insert_continuation
from rcms.cases.models import CaseStatus
from rcms.cases.schemas import CaseRecordRead, NewCaseRecord, ReleaseResult
from rcms.cases.state_machine import CaseAction, assert_transition
from rcms.cases.store import CaseStore
from rcms.exceptions import IllegalTransition, IntegrityViolation, StatusConflict, StoreFailure
from rcms.shared.models import utcnow

logger = logging.getLogger(__name__)

# (pre-release record, released snapshot, continuation draft)
SideEffect = Callable[[CaseRecordRead, CaseRecordRead, CaseRecordRead], Awaitable[Any]]


def stamp_snapshot(content: Dict[str, Any], released_at: datetime) -> Tuple[int, Dict[str, Any]]:
    """Return the next release counter and the content to freeze."""
    prior = int(content.get("release_version") or 0)
    version = prior + 1
    stamped = copy.deepcopy(content)
    stamped["release_version"] = version
    stamped["last_released_at"] = released_at.isoformat()
    stamped["release_summary"] = summarize_for_release(content.get("assessments") or {})
    return version, stamped


class ReleaseTransaction:
    def __init__(
        self,
        store: CaseStore,
        resolver: Optional[RevisionChainResolver] = None,
        side_effects: Optional[List[SideEffect]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.resolver = resolver or RevisionChainResolver(store)
        self.side_effects = side_effects or []
        self.clock = clock

    async def _reject_if_not_releasable(self, record: CaseRecordRead) -> None:
        if record.is_superseded:
            # Retried release, or a draft retired by a later revision
            snapshot = await self.resolver.find_release_of(record.id)
            if snapshot is None:
                raise IllegalTransition(
                    f"Case {record.id} was replaced by a newer revision",
                    safe_message="This draft was replaced; continue on the current draft.",
                )
            raise IllegalTransition(
                f"Case {record.id} was already released as {snapshot.id}",
                safe_message="This case was already released.",
            )
        assert_transition(record.status, CaseAction.RELEASE)

    async def _claim(self, record: CaseRecordRead) -> None:
        current = await self.store.get_by_id(record.id)
        if current.status != CaseStatus.READY or current.is_superseded:
            raise IllegalTransition(
                f"Case {record.id} changed to {current.status.value} before release",
                safe_message="The case changed while releasing. Reload and try again.",
            )
        try:
            await self.store.supersede(record.id)
        except StatusConflict:
            raise IllegalTransition(
                f"Case {record.id} is being released by another request",
                safe_message="The case changed while releasing. Reload and try again.",
            )

    async def _give_back_claim(self, record: CaseRecordRead) -> None:
        try:
            await self.store.restore(record.id)
        except StoreFailure as e:
            logger.error(f"Could not restore release claim on case {record.id}: {e}")
            raise IntegrityViolation(
                f"Release of case {record.id} failed and the case is stuck superseded",
                case_ids=[record.id],
            ) from e

    async def _insert_snapshot(self, record: CaseRecordRead, payload: NewCaseRecord) -> CaseRecordRead:
        try:
            return await self.store.insert(payload)
        except StoreFailure as e:
            # The insert may have landed even though the call failed
            try:
                landed = await self.resolver.find_release_of(record.id)
            except StoreFailure as lookup_error:
                raise IntegrityViolation(
                    f"Snapshot insert for case {record.id} failed ({e}) and its outcome is unknown",
                    case_ids=[record.id],
                ) from lookup_error
            if landed is not None:
                logger.warning(f"Snapshot insert for case {record.id} reported {e} but {landed.id} exists")
                return landed
            await self._give_back_claim(record)
            raise

    async def _run_side_effects(
        self, record: CaseRecordRead, released: CaseRecordRead, continuation: CaseRecordRead
    ) -> None:
        for effect in self.side_effects:
            try:
                await effect(record, released, continuation)
            except Exception as e:
                logger.warning(
                    f"Post-release step {getattr(effect, '__name__', effect)} failed for case {released.id}: {e}"
                )

    async def execute(self, case_id: UUID, reviewer_id: str) -> ReleaseResult:
        record = await self.store.get_by_id(case_id)

        # 1. Releasable?
        await self._reject_if_not_releasable(record)

        # 2. Stamp
        released_at = self.clock()
        version, snapshot_content = stamp_snapshot(record.content, released_at)

        # 3. Claim the source, then insert the snapshot
        await self._claim(record)
        released = await self._insert_snapshot(
            record,
            NewCaseRecord(
                status=CaseStatus.RELEASED,
                parent_id=record.id,
                released_at=released_at,
                released_by=reviewer_id,
                content=snapshot_content,
            ),
        )
        logger.info(f"Case {record.id} released as {released.id} (version {version})")

        # 4. Verify
        if released.status != CaseStatus.RELEASED:
            logger.error(f"Snapshot {released.id} persisted as {released.status.value}, expected released")
            raise IntegrityViolation(
                f"Release of case {record.id} persisted with status {released.status.value}",
                case_ids=[record.id, released.id],
            )

        # 5-6. Continuation from the pre-release record
        try:
            payload = build_continuation(
                record,
                parent_id=released.id,
                carry_content={
                    "release_version": version,
                    "last_released_at": snapshot_content["last_released_at"],
                },
            )
            continuation = await insert_continuation(self.store, payload)
        except StoreFailure as e:
            logger.error(f"Snapshot {released.id} has no continuation draft: {e}")
            raise StoreFailure(
                f"Case {record.id} was released as {released.id} but its continuation draft was not created: {e}",
                orphaned_release_id=released.id,
            ) from e
        logger.info(f"Continuation {continuation.id} created under snapshot {released.id}")

        # 7. Active case pointer
        await self.store.set_active_case(reviewer_id, continuation.id)

        # 8. Best effort
        await self._run_side_effects(record, released, continuation)

        return ReleaseResult(
            released=released,
            continuation=continuation,
            release_version=version,
            active_case_id=continuation.id,
        )
