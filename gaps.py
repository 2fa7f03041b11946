"""Gap construction and gap-list helpers."""

from typing import Iterable

from criteria import Criterion
from models import (
    MAX_DESCRIPTION_LENGTH,
    Category,
    CriterionResult,
    Effort,
    Gap,
    Severity,
)

_SEVERITY_ORDER: dict[str, int] = {"critical": 0, "major": 1, "minor": 2}
_EFFORT_ORDER: dict[str, int] = {"trivial": 0, "small": 1, "medium": 2, "large": 3}
_EFFORT_POINTS: dict[str, int] = {"trivial": 1, "small": 2, "medium": 4, "large": 8}


def truncate(text: str, max_length: int) -> str:
    """Cut *text* to *max_length* characters, ending with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _fix_for(criterion: Criterion, suggested_fix: str | None = None) -> str:
    return truncate(suggested_fix or criterion.description or criterion.name, MAX_DESCRIPTION_LENGTH)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------
def gap_from_result(criterion: Criterion, result: CriterionResult) -> Gap:
    """Gap for a criterion that returned a failing verdict."""
    return Gap(
        severity=criterion.severity,
        category=criterion.category,
        description=truncate(f"{criterion.name}: {result.details}", MAX_DESCRIPTION_LENGTH),
        suggested_fix=_fix_for(criterion, result.suggested_fix),
        estimated_effort=result.estimated_effort or "medium",
        auto_fixable=True,
    )


def gap_from_error(criterion: Criterion, reason: str = "Validation error") -> Gap:
    """Gap for a criterion that raised or timed out. Never auto-fixable."""
    return Gap(
        severity=criterion.severity,
        category=criterion.category,
        description=truncate(f"{criterion.name}: {reason}", MAX_DESCRIPTION_LENGTH),
        suggested_fix=_fix_for(criterion),
        estimated_effort="medium",
        auto_fixable=False,
    )


def gap_from_uncovered(requirement: str) -> Gap:
    """Gap for a requirement the output does not address."""
    return Gap(
        severity="major",
        category="missing",
        description=truncate(f"Requirement not addressed: {requirement}", MAX_DESCRIPTION_LENGTH),
        affected_requirement=requirement,
        suggested_fix=truncate(f"Add implementation for: {requirement}", MAX_DESCRIPTION_LENGTH),
        estimated_effort="medium",
        auto_fixable=True,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_fixable_gaps(gaps: Iterable[Gap]) -> list[Gap]:
    return [g for g in gaps if g.auto_fixable]


def get_gaps_by_severity(gaps: Iterable[Gap], severity: Severity) -> list[Gap]:
    return [g for g in gaps if g.severity == severity]


def get_gaps_by_category(gaps: Iterable[Gap], category: Category) -> list[Gap]:
    return [g for g in gaps if g.category == category]


def count_by_severity(gaps: Iterable[Gap]) -> dict[str, int]:
    counts = {"critical": 0, "major": 0, "minor": 0}
    for gap in gaps:
        counts[gap.severity] += 1
    return counts


def prioritize_gaps(gaps: Iterable[Gap]) -> list[Gap]:
    """Critical first, then smaller effort first. Stable for ties."""
    return sorted(
        gaps,
        key=lambda g: (
            _SEVERITY_ORDER.get(g.severity, 2),
            _EFFORT_ORDER.get(g.estimated_effort, 2),
        ),
    )


def estimate_total_effort(gaps: Iterable[Gap]) -> Effort | str:
    """Bucket the summed effort of *gaps*; anything past ``large`` is ``epic``."""
    total = sum(_EFFORT_POINTS.get(g.estimated_effort, 4) for g in gaps)
    if total <= 2:
        return "trivial"
    if total <= 6:
        return "small"
    if total <= 12:
        return "medium"
    if total <= 24:
        return "large"
    return "epic"
