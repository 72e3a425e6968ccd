import pytest

from rcms.assignments.schemas import AcceptanceStatus, DeclineReasonCode
from rcms.assignments.service import AssignmentService
from rcms.cases.models import CaseStatus
from rcms.cases.schemas import CaseContentUpdate, CaseCreate, CaseContent
from rcms.exceptions import AcceptanceRequired, GuardrailViolation, IllegalTransition

from tests.utils import OTHER_RN_ID, RN_ID, SUPERVISOR_ID


@pytest.fixture
def assignments(db_session):
    return AssignmentService(db_session)


@pytest.mark.asyncio
async def test_save_content_merges_fields(case_service, draft_case):
    saved = await case_service.save_content(
        draft_case.id, CaseContentUpdate(jurisdiction="CA", notes="called client"), RN_ID
    )
    assert saved.content["jurisdiction"] == "CA"
    assert saved.content["notes"] == "called client"
    assert saved.content["case_type"] == "MVA"


@pytest.mark.asyncio
async def test_save_content_rejects_engine_owned_fields(case_service, draft_case):
    with pytest.raises(GuardrailViolation):
        await case_service.save_content(draft_case.id, CaseContentUpdate(release_version=7), RN_ID)


@pytest.mark.asyncio
async def test_mark_ready_twice_is_illegal(case_service, ready_case):
    assert ready_case.status == CaseStatus.READY
    with pytest.raises(IllegalTransition):
        await case_service.mark_ready(ready_case.id, RN_ID)


@pytest.mark.asyncio
async def test_no_assignment_blocks_mutation(case_service):
    record = await case_service.create_case(CaseCreate(content=CaseContent(case_type="WC")), SUPERVISOR_ID)
    with pytest.raises(AcceptanceRequired) as exc:
        await case_service.save_content(record.id, CaseContentUpdate(jurisdiction="CA"), RN_ID)
    assert exc.value.state == AcceptanceStatus.NO_EPOCH.value
    assert exc.value.to_detail()["acceptance_state"] == "no_epoch"


@pytest.mark.asyncio
async def test_pending_assignment_blocks_mutation(case_service, assignments):
    record = await case_service.create_case(CaseCreate(), SUPERVISOR_ID)
    state = await assignments.record_assignment(record.lineage_id, RN_ID, SUPERVISOR_ID)
    assert state.status == AcceptanceStatus.PENDING

    with pytest.raises(AcceptanceRequired) as exc:
        await case_service.mark_ready(record.id, RN_ID)
    assert exc.value.epoch_id == state.epoch_id
    assert (await case_service.get_case(record.id)).status == CaseStatus.DRAFT


@pytest.mark.asyncio
async def test_declined_assignment_blocks_mutation(case_service, assignments):
    record = await case_service.create_case(CaseCreate(), SUPERVISOR_ID)
    state = await assignments.record_assignment(record.lineage_id, RN_ID, SUPERVISOR_ID)
    declined = await assignments.record_decline(
        record.lineage_id, RN_ID, state.epoch_id, DeclineReasonCode.OTHER, " on leave "
    )
    assert declined.status == AcceptanceStatus.DECLINED
    assert declined.reason_code == "other"

    with pytest.raises(AcceptanceRequired):
        await case_service.save_content(record.id, CaseContentUpdate(jurisdiction="CA"), RN_ID)


@pytest.mark.asyncio
async def test_acceptance_is_per_reviewer(case_service, draft_case):
    with pytest.raises(AcceptanceRequired):
        await case_service.save_content(draft_case.id, CaseContentUpdate(jurisdiction="CA"), OTHER_RN_ID)


@pytest.mark.asyncio
async def test_reassignment_opens_a_new_epoch(case_service, assignments, draft_case):
    await assignments.record_assignment(draft_case.lineage_id, RN_ID, SUPERVISOR_ID)
    with pytest.raises(AcceptanceRequired) as exc:
        await case_service.save_content(draft_case.id, CaseContentUpdate(jurisdiction="CA"), RN_ID)
    assert exc.value.state == "pending"


@pytest.mark.asyncio
async def test_acceptance_covers_later_records_of_the_lineage(case_service, ready_case):
    result = await case_service.release(ready_case.id, RN_ID)
    saved = await case_service.save_content(
        result.continuation.id, CaseContentUpdate(jurisdiction="NM"), RN_ID
    )
    assert saved.content["jurisdiction"] == "NM"


@pytest.mark.asyncio
async def test_accepting_a_stale_epoch_is_illegal(assignments, draft_case):
    stale = await assignments.record_assignment(draft_case.lineage_id, RN_ID, SUPERVISOR_ID)
    await assignments.record_assignment(draft_case.lineage_id, RN_ID, SUPERVISOR_ID)
    with pytest.raises(IllegalTransition):
        await assignments.record_accept(draft_case.lineage_id, RN_ID, stale.epoch_id)


@pytest.mark.asyncio
async def test_accepting_twice_is_illegal(assignments, case_service):
    record = await case_service.create_case(CaseCreate(), SUPERVISOR_ID)
    state = await assignments.record_assignment(record.lineage_id, RN_ID, SUPERVISOR_ID)
    await assignments.record_accept(record.lineage_id, RN_ID, state.epoch_id)
    with pytest.raises(IllegalTransition):
        await assignments.record_accept(record.lineage_id, RN_ID, state.epoch_id)
