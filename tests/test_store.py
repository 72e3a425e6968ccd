import uuid

import pytest

from rcms.cases.continuation import (
    COPIED_FIELDS,
    STRIPPED_FIELDS,
    build_continuation,
    insert_continuation,
    strip_source,
)
from rcms.cases.models import CaseStatus
from rcms.cases.schemas import CaseRecordRead, NewCaseRecord
from rcms.cases.state_machine import CORRECTABLE_STATUSES
from rcms.cases.store import SQLAlchemyCaseStore
from rcms.exceptions import CaseNotFound, IntegrityViolation, StatusConflict
from rcms.shared.models import utcnow


async def insert_released(store, parent=None, content=None):
    return await store.insert(
        NewCaseRecord(
            status=CaseStatus.RELEASED,
            parent_id=parent.id if parent else None,
            released_at=utcnow(),
            released_by="rn-1",
            content=content or {"case_type": "MVA"},
        )
    )


@pytest.mark.asyncio
async def test_insert_root_starts_its_own_lineage(store):
    root = await store.insert(NewCaseRecord(status=CaseStatus.DRAFT, content={"a": 1}))
    assert root.lineage_id == root.id
    assert root.parent_id is None
    assert root.is_superseded is False


@pytest.mark.asyncio
async def test_insert_child_inherits_lineage(store):
    root = await store.insert(NewCaseRecord(status=CaseStatus.READY))
    child = await store.insert(NewCaseRecord(status=CaseStatus.DRAFT, parent_id=root.id))
    grandchild = await store.insert(NewCaseRecord(status=CaseStatus.DRAFT, parent_id=child.id))
    assert child.lineage_id == root.id
    assert grandchild.lineage_id == root.id

    chain = await store.list_by_parent_chain(root.id)
    assert {r.id for r in chain} == {root.id, child.id, grandchild.id}
    assert [c.id for c in await store.find_children(root.id)] == [child.id]


@pytest.mark.asyncio
async def test_get_missing_case_raises_not_found(store):
    with pytest.raises(CaseNotFound):
        await store.get_by_id(uuid.uuid4())


@pytest.mark.asyncio
async def test_update_status_is_conditional(store):
    record = await store.insert(NewCaseRecord(status=CaseStatus.DRAFT))
    ready = await store.update_status(record.id, {CaseStatus.DRAFT}, CaseStatus.READY)
    assert ready.status == CaseStatus.READY

    with pytest.raises(StatusConflict):
        await store.update_status(record.id, {CaseStatus.DRAFT}, CaseStatus.WORKING)
    assert (await store.get_by_id(record.id)).status == CaseStatus.READY


@pytest.mark.asyncio
async def test_store_never_writes_released_or_closed_records(store):
    released = await insert_released(store)

    with pytest.raises(StatusConflict):
        await store.update_status(released.id, {CaseStatus.RELEASED}, CaseStatus.DRAFT)
    with pytest.raises(StatusConflict):
        await store.update_content(released.id, {"case_type": "changed"})

    closed = await store.close(released.id, utcnow())
    assert closed.status == CaseStatus.CLOSED
    with pytest.raises(StatusConflict):
        await store.close(released.id, utcnow())
    with pytest.raises(StatusConflict):
        await store.update_content(released.id, {"case_type": "changed"})

    unchanged = await store.get_by_id(released.id)
    assert unchanged.content == {"case_type": "MVA"}


@pytest.mark.asyncio
async def test_update_status_refuses_immutable_target(store):
    record = await store.insert(NewCaseRecord(status=CaseStatus.READY))
    with pytest.raises(StatusConflict):
        await store.update_status(record.id, {CaseStatus.READY}, CaseStatus.RELEASED)


@pytest.mark.asyncio
async def test_supersede_claims_once_and_restore_gives_back(store):
    record = await store.insert(NewCaseRecord(status=CaseStatus.READY))
    claimed = await store.supersede(record.id)
    assert claimed.is_superseded

    with pytest.raises(StatusConflict):
        await store.supersede(record.id)
    with pytest.raises(StatusConflict):
        await store.update_content(record.id, {"x": 1})

    restored = await store.restore(record.id)
    assert restored.is_superseded is False


@pytest.mark.asyncio
async def test_conditional_update_on_missing_case_raises_not_found(store):
    with pytest.raises(CaseNotFound):
        await store.supersede(uuid.uuid4())


@pytest.mark.asyncio
async def test_active_case_pointer(store):
    first = await store.insert(NewCaseRecord(status=CaseStatus.DRAFT))
    second = await store.insert(NewCaseRecord(status=CaseStatus.DRAFT))
    assert await store.get_active_case("rn-1") is None

    await store.set_active_case("rn-1", first.id)
    await store.set_active_case("rn-1", second.id)
    assert await store.get_active_case("rn-1") == second.id


# Continuation construction

def test_every_record_field_is_classified():
    assert set(CaseRecordRead.model_fields) == STRIPPED_FIELDS | COPIED_FIELDS


@pytest.mark.asyncio
async def test_build_continuation_copies_content_and_forces_draft(store):
    snapshot = await insert_released(store, content={"case_type": "MVA", "incident": {"type": "rear-end"}})
    payload = build_continuation(snapshot, parent_id=snapshot.id, carry_content={"release_version": 3})

    assert payload.status == CaseStatus.DRAFT
    assert payload.parent_id == snapshot.id
    assert payload.released_at is None
    assert payload.released_by is None
    assert payload.content == {"case_type": "MVA", "incident": {"type": "rear-end"}, "release_version": 3}

    # Deep copy: mutating the draft content leaves the snapshot alone
    payload.content["incident"]["type"] = "t-bone"
    assert snapshot.content["incident"]["type"] == "rear-end"


@pytest.mark.asyncio
async def test_strip_source_drops_identity_and_stamps(store):
    snapshot = await insert_released(store)
    assert set(strip_source(snapshot)) == {"content"}


class DefaultStatusStore(SQLAlchemyCaseStore):
    """Persists draft inserts with a different status, like a column default gone wrong."""

    def __init__(self, db, persisted_status):
        super().__init__(db)
        self.persisted_status = persisted_status

    async def insert(self, record):
        if record.status == CaseStatus.DRAFT:
            record = record.model_copy(update={"status": self.persisted_status})
        return await super().insert(record)


@pytest.mark.asyncio
@pytest.mark.parametrize("persisted", sorted(CORRECTABLE_STATUSES, key=lambda s: s.value))
async def test_insert_continuation_corrects_editable_status(db_session, persisted):
    store = DefaultStatusStore(db_session, persisted)
    snapshot = await insert_released(store)
    draft = await insert_continuation(store, build_continuation(snapshot, parent_id=snapshot.id))
    assert draft.status == CaseStatus.DRAFT
    assert (await store.get_by_id(draft.id)).status == CaseStatus.DRAFT


@pytest.mark.asyncio
async def test_insert_continuation_refuses_to_correct_immutable_status(db_session):
    store = DefaultStatusStore(db_session, CaseStatus.RELEASED)
    parent = await store.insert(NewCaseRecord(status=CaseStatus.READY))
    with pytest.raises(IntegrityViolation):
        await insert_continuation(store, build_continuation(parent, parent_id=parent.id))
