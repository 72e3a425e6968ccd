"""Score ceiling rules shared by every assessment.

The subject's self-reported score is the ceiling: a reviewer may score an item
the same or lower, never higher. Lowering an item needs a written rationale.
Where the subject gave no score the reviewer must pick one (any value on the
scale). The functions here are pure; persistence lives in the service.
"""
import math
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from rcms.assessments.schemas import (
    AdjustmentFlag,
    AggregationRule,
    AssessmentDocument,
    AssessmentEvaluation,
    AssessmentItem,
    AssessmentKind,
    ItemEvaluation,
    StoredAssessment,
)
from rcms.exceptions import CeilingViolation, InvalidScoreEdit, RationaleRequired

SEVERITY_MIN = 1
SEVERITY_MAX = 5
SEVERITY_SCALE = tuple(range(SEVERITY_MIN, SEVERITY_MAX + 1))

SEVERITY_LABELS: Dict[int, str] = {
    1: "Critical",
    2: "Severe",
    3: "Moderate",
    4: "Mild",
    5: "Stable",
}

AGGREGATION: Dict[AssessmentKind, AggregationRule] = {
    # A single critical P destabilizes the whole picture
    AssessmentKind.FOURPS: AggregationRule.WORST,
    AssessmentKind.SDOH: AggregationRule.MEAN,
}


class Severity(int, Enum):
    CRITICAL = 1
    SEVERE = 2
    MODERATE = 3
    MILD = 4
    STABLE = 5


def severity_label(score: Optional[int]) -> Optional[str]:
    if score is None:
        return None
    return SEVERITY_LABELS.get(score)


def yes_no_to_score(value: Optional[str]) -> Optional[int]:
    """Map an intake yes/no answer about a problem to a baseline score."""
    if not value:
        return None
    answer = value.strip().lower()
    if answer == "yes":
        return Severity.SEVERE.value
    if answer == "no":
        return Severity.MILD.value
    return None


def _in_scale(value: int) -> bool:
    return SEVERITY_MIN <= value <= SEVERITY_MAX


# Item rules

def max_allowed(item: AssessmentItem) -> Optional[int]:
    """Ceiling for the reviewer score; None means the whole scale."""
    return item.subject_score


def selectable_scores(item: AssessmentItem) -> List[int]:
    ceiling = max_allowed(item)
    return [s for s in SEVERITY_SCALE if ceiling is None or s <= ceiling]


def can_select(item: AssessmentItem, value: int) -> bool:
    return value in selectable_scores(item)


def is_legacy_above_baseline(item: AssessmentItem) -> bool:
    return (
        item.subject_score is not None
        and item.reviewer_score is not None
        and item.reviewer_score > item.subject_score
    )


def needs_rationale(item: AssessmentItem) -> bool:
    return (
        item.subject_score is not None
        and item.reviewer_score is not None
        and item.reviewer_score < item.subject_score
    )


def has_rationale(item: AssessmentItem) -> bool:
    return bool((item.rationale or "").strip())


def adjustment_flag(item: AssessmentItem) -> AdjustmentFlag:
    if item.subject_score is None:
        return AdjustmentFlag.BASELINE_MISSING
    if is_legacy_above_baseline(item):
        return AdjustmentFlag.LEGACY_ABOVE_BASELINE
    if item.reviewer_score is not None and item.reviewer_score != item.subject_score:
        return AdjustmentFlag.ADJUSTED
    return AdjustmentFlag.UNCHANGED


def apply_reviewer_score(item: AssessmentItem, value: int) -> AssessmentItem:
    """Set the reviewer score at the edit boundary.

    A value above the ceiling is rejected and the item is left as it was. A
    legacy value above the ceiling may be kept but never raised.
    """
    if not _in_scale(value):
        raise CeilingViolation(
            f"Score {value} for {item.id} is outside {SEVERITY_MIN}-{SEVERITY_MAX}",
            item_ids=[item.id],
        )
    ceiling = max_allowed(item)
    if ceiling is not None and value > ceiling:
        if is_legacy_above_baseline(item) and value == item.reviewer_score:
            return item
        raise CeilingViolation(
            f"Score {value} for {item.id} exceeds the subject baseline {ceiling}",
            item_ids=[item.id],
        )
    return item.model_copy(update={"reviewer_score": value})


def reset_reviewer_score(item: AssessmentItem) -> AssessmentItem:
    """Restore the reviewer score to the baseline and drop the rationale."""
    if item.subject_score is None:
        raise InvalidScoreEdit(f"{item.id} has no baseline to reset to; use clear", item_ids=[item.id])
    return item.model_copy(update={"reviewer_score": item.subject_score, "rationale": None})


def clear_reviewer_score(item: AssessmentItem) -> AssessmentItem:
    """Empty the reviewer score; only where no baseline exists."""
    if item.subject_score is not None:
        raise InvalidScoreEdit(f"{item.id} has a baseline; use reset", item_ids=[item.id])
    return item.model_copy(update={"reviewer_score": None, "rationale": None})


def effective_score(item: AssessmentItem) -> Optional[int]:
    return item.reviewer_score if item.reviewer_score is not None else item.subject_score


# Aggregation

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate(scores: Iterable[Optional[int]], rule: AggregationRule) -> Optional[int]:
    present = [s for s in scores if s is not None]
    if not present:
        return None
    if rule == AggregationRule.WORST:
        return min(present)
    return _round_half_up(sum(present) / len(present))


def domain_scores(document: AssessmentDocument) -> Dict[str, Optional[int]]:
    rule = AGGREGATION[document.kind]
    domains: Dict[str, List[Optional[int]]] = {}
    for item in document.items:
        if item.domain:
            domains.setdefault(item.domain, []).append(effective_score(item))
    return {domain: aggregate(scores, rule) for domain, scores in domains.items()}


def overall_score(document: AssessmentDocument) -> Optional[int]:
    return aggregate((effective_score(i) for i in document.items), AGGREGATION[document.kind])


# Document rules

def _previous_scores(previous: Optional[AssessmentDocument]) -> Mapping[str, Optional[int]]:
    if previous is None:
        return {}
    return {i.id: i.reviewer_score for i in previous.items}


def _previous_baselines(previous: Optional[AssessmentDocument]) -> Mapping[str, int]:
    if previous is None:
        return {}
    return {i.id: i.subject_score for i in previous.items if i.subject_score is not None}


def ceiling_breaches(
    document: AssessmentDocument, previous: Optional[AssessmentDocument] = None
) -> List[str]:
    """Items above the ceiling that are not unchanged legacy values.

    A baseline already saved for an item is the ceiling from then on, so an
    item that changes or drops it is a breach too.
    """
    persisted = _previous_scores(previous)
    baselines = _previous_baselines(previous)
    breaches = []
    for item in document.items:
        if item.id in baselines and item.subject_score != baselines[item.id]:
            breaches.append(item.id)
        elif item.reviewer_score is not None and not _in_scale(item.reviewer_score):
            breaches.append(item.id)
        elif is_legacy_above_baseline(item) and persisted.get(item.id) != item.reviewer_score:
            breaches.append(item.id)
    return breaches


def missing_scores(document: AssessmentDocument) -> List[str]:
    return [i.id for i in document.items if i.subject_score is None and i.reviewer_score is None]


def missing_rationales(document: AssessmentDocument) -> List[str]:
    return [i.id for i in document.items if needs_rationale(i) and not has_rationale(i)]


def evaluate_item(item: AssessmentItem) -> ItemEvaluation:
    return ItemEvaluation(
        id=item.id,
        max_allowed=max_allowed(item),
        selectable_scores=selectable_scores(item),
        flag=adjustment_flag(item),
        needs_rationale=needs_rationale(item),
        has_rationale=has_rationale(item),
        effective_score=effective_score(item),
        severity_label=severity_label(effective_score(item)),
    )


def evaluate_document(
    document: AssessmentDocument, previous: Optional[AssessmentDocument] = None
) -> AssessmentEvaluation:
    breaches = ceiling_breaches(document, previous)
    unscored = missing_scores(document)
    unjustified = missing_rationales(document)
    overall = overall_score(document)
    return AssessmentEvaluation(
        kind=document.kind,
        items=[evaluate_item(i) for i in document.items],
        domain_scores=domain_scores(document),
        overall_score=overall,
        overall_label=severity_label(overall),
        ceiling_breaches=breaches,
        missing_scores=unscored,
        missing_rationales=unjustified,
        can_save=not (breaches or unscored or unjustified),
    )


def validate_for_save(
    document: AssessmentDocument, previous: Optional[AssessmentDocument] = None
) -> None:
    """Raise if any item blocks saving the whole document."""
    breaches = ceiling_breaches(document, previous)
    if breaches:
        raise CeilingViolation(
            f"Reviewer scores exceed the subject baseline: {', '.join(breaches)}",
            item_ids=breaches,
        )
    unscored = missing_scores(document)
    if unscored:
        raise RationaleRequired(
            f"Reviewer assessment required where the subject gave no score: {', '.join(unscored)}",
            item_ids=unscored,
        )
    unjustified = missing_rationales(document)
    if unjustified:
        raise RationaleRequired(
            f"Rationale required for scores lowered below the subject baseline: {', '.join(unjustified)}",
            item_ids=unjustified,
        )


def format_rationale_notes(document: AssessmentDocument, narrative: Optional[str] = None) -> str:
    """Narrative followed by one ``<item>: <rationale>`` line per lowered item."""
    lines: Sequence[str] = [
        f"{i.id}: {(i.rationale or '').strip()}" for i in document.items if needs_rationale(i)
    ]
    head = (narrative or "").strip()
    return "\n".join(([head] if head else []) + list(lines))


def summarize_for_release(assessments: Mapping[str, dict]) -> Dict[str, dict]:
    """Per-kind scores frozen into a release snapshot."""
    summary = {}
    for kind, stored in (assessments or {}).items():
        document = StoredAssessment.model_validate(stored).to_document()
        overall = overall_score(document)
        summary[kind] = {
            "overall_score": overall,
            "overall_label": severity_label(overall),
            "domain_scores": domain_scores(document),
            "adjusted_items": [i.id for i in document.items if needs_rationale(i)],
        }
    return summary
