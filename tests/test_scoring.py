import pytest

from rcms.assessments import scoring
from rcms.assessments.schemas import (
    AdjustmentFlag,
    AssessmentDocument,
    AssessmentItem,
    AssessmentKind,
)
from rcms.exceptions import CeilingViolation, InvalidScoreEdit, RationaleRequired


def item(id="physical", subject=None, reviewer=None, rationale=None, domain=None):
    return AssessmentItem(
        id=id, domain=domain, subject_score=subject, reviewer_score=reviewer, rationale=rationale
    )


def fourps(*items):
    return AssessmentDocument(kind=AssessmentKind.FOURPS, items=list(items))


# Item rules

def test_ceiling_is_subject_score():
    assert scoring.max_allowed(item(subject=3)) == 3
    assert scoring.selectable_scores(item(subject=3)) == [1, 2, 3]


def test_missing_baseline_allows_whole_scale():
    assert scoring.max_allowed(item()) is None
    assert scoring.selectable_scores(item()) == [1, 2, 3, 4, 5]


def test_apply_score_above_ceiling_is_rejected_and_item_unchanged():
    before = item(subject=3, reviewer=3)
    with pytest.raises(CeilingViolation) as exc:
        scoring.apply_reviewer_score(before, 4)
    assert exc.value.item_ids == ["physical"]
    assert before.reviewer_score == 3


def test_apply_score_within_ceiling():
    updated = scoring.apply_reviewer_score(item(subject=4, reviewer=4), 2)
    assert updated.reviewer_score == 2
    assert scoring.needs_rationale(updated)


def test_apply_score_outside_scale_is_rejected():
    with pytest.raises(CeilingViolation):
        scoring.apply_reviewer_score(item(), 6)
    with pytest.raises(CeilingViolation):
        scoring.apply_reviewer_score(item(), 0)


def test_legacy_value_above_ceiling_may_be_kept_but_not_raised():
    legacy = item(subject=2, reviewer=4)
    assert scoring.adjustment_flag(legacy) == AdjustmentFlag.LEGACY_ABOVE_BASELINE
    assert scoring.apply_reviewer_score(legacy, 4) is legacy
    with pytest.raises(CeilingViolation):
        scoring.apply_reviewer_score(legacy, 5)
    assert scoring.apply_reviewer_score(legacy, 1).reviewer_score == 1


def test_reset_restores_baseline_and_drops_rationale():
    reset = scoring.reset_reviewer_score(item(subject=4, reviewer=2, rationale="pain improved"))
    assert reset.reviewer_score == 4
    assert reset.rationale is None
    with pytest.raises(InvalidScoreEdit):
        scoring.reset_reviewer_score(item(reviewer=2))


def test_clear_only_without_baseline():
    cleared = scoring.clear_reviewer_score(item(reviewer=2))
    assert cleared.reviewer_score is None
    with pytest.raises(InvalidScoreEdit):
        scoring.clear_reviewer_score(item(subject=3, reviewer=2))


def test_adjustment_flags():
    assert scoring.adjustment_flag(item(subject=3)) == AdjustmentFlag.UNCHANGED
    assert scoring.adjustment_flag(item(subject=3, reviewer=3)) == AdjustmentFlag.UNCHANGED
    assert scoring.adjustment_flag(item(subject=3, reviewer=2)) == AdjustmentFlag.ADJUSTED
    assert scoring.adjustment_flag(item(reviewer=2)) == AdjustmentFlag.BASELINE_MISSING


def test_yes_no_intake_mapping():
    assert scoring.yes_no_to_score("Yes") == 2
    assert scoring.yes_no_to_score(" no ") == 4
    assert scoring.yes_no_to_score("maybe") is None
    assert scoring.yes_no_to_score(None) is None


# Aggregation

def test_fourps_aggregates_to_worst_score():
    document = fourps(
        item("physical", subject=4, domain="physical"),
        item("psychological", subject=2, domain="psychological"),
        item("psychosocial", subject=5, domain="psychosocial"),
    )
    assert scoring.overall_score(document) == 2


def test_sdoh_aggregates_to_rounded_mean():
    document = AssessmentDocument(
        kind=AssessmentKind.SDOH,
        items=[
            item("housing", subject=2, domain="economic"),
            item("food", subject=3, domain="economic"),
            item("transport", subject=5, domain="access"),
        ],
    )
    # (2 + 3 + 5) / 3 = 3.33
    assert scoring.overall_score(document) == 3
    # (2 + 3) / 2 = 2.5 rounds half up
    assert scoring.domain_scores(document) == {"economic": 3, "access": 5}


def test_reviewer_score_takes_precedence_in_aggregation():
    document = fourps(item("physical", subject=4, reviewer=3, rationale="sleep poor"))
    assert scoring.overall_score(document) == 3


def test_aggregate_of_nothing_is_none():
    assert scoring.overall_score(fourps(item())) is None


# Document rules

def test_validate_for_save_rejects_ceiling_breach():
    with pytest.raises(CeilingViolation) as exc:
        scoring.validate_for_save(fourps(item("physical", subject=2, reviewer=4)))
    assert exc.value.item_ids == ["physical"]


def test_validate_for_save_keeps_unchanged_legacy_value():
    previous = fourps(item("physical", subject=2, reviewer=4))
    scoring.validate_for_save(fourps(item("physical", subject=2, reviewer=4)), previous)


def test_validate_for_save_pins_saved_baseline():
    previous = fourps(item("physical", subject=3, reviewer=3))
    for resaved in (item("physical", subject=5, reviewer=5), item("physical", reviewer=5)):
        with pytest.raises(CeilingViolation) as exc:
            scoring.validate_for_save(fourps(resaved), previous)
        assert exc.value.item_ids == ["physical"]
    scoring.validate_for_save(fourps(item("physical", subject=3, reviewer=3)), previous)


def test_validate_for_save_requires_score_without_baseline():
    with pytest.raises(RationaleRequired) as exc:
        scoring.validate_for_save(fourps(item("pain")))
    assert exc.value.item_ids == ["pain"]


def test_validate_for_save_requires_rationale_for_downward_adjustment():
    with pytest.raises(RationaleRequired):
        scoring.validate_for_save(fourps(item("physical", subject=4, reviewer=2, rationale="  ")))
    scoring.validate_for_save(fourps(item("physical", subject=4, reviewer=2, rationale="ER visit")))


def test_evaluate_document_reports_every_problem():
    evaluation = scoring.evaluate_document(
        fourps(
            item("physical", subject=2, reviewer=3),
            item("pain"),
            item("psychological", subject=4, reviewer=1),
        )
    )
    assert evaluation.ceiling_breaches == ["physical"]
    assert evaluation.missing_scores == ["pain"]
    assert evaluation.missing_rationales == ["psychological"]
    assert evaluation.can_save is False


def test_format_rationale_notes():
    document = fourps(
        item("physical", subject=4, reviewer=2, rationale=" fall last week "),
        item("pain", subject=3, reviewer=3),
    )
    notes = scoring.format_rationale_notes(document, "Follow-up call")
    assert notes == "Follow-up call\nphysical: fall last week"


def test_summarize_for_release():
    stored = {
        "kind": "fourps",
        "items": [
            {"id": "physical", "domain": "physical", "subject_score": 4, "reviewer_score": 2, "rationale": "x"},
            {"id": "psychological", "domain": "psychological", "subject_score": 3},
        ],
    }
    summary = scoring.summarize_for_release({"fourps": stored})
    assert summary["fourps"]["overall_score"] == 2
    assert summary["fourps"]["overall_label"] == "Severe"
    assert summary["fourps"]["adjusted_items"] == ["physical"]
