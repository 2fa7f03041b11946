"""Scoring model and decision policy for one review iteration."""

from typing import Iterable, Sequence

from gaps import count_by_severity
from models import Decision, Gap, RequirementCoverage, SelfReviewConfig, clamp_unit

CRITERIA_WEIGHT = 0.4
COMPLETENESS_WEIGHT = 0.4
CORRECTNESS_WEIGHT = 0.2

# Below this fraction of the quality threshold a late iteration escalates.
LOW_QUALITY_FACTOR = 0.7


def criteria_score(scores: Sequence[float]) -> float:
    """Mean criterion score; 1.0 when there are no criteria."""
    if not scores:
        return 1.0
    return clamp_unit(sum(clamp_unit(s) for s in scores) / len(scores))


def completeness_score(coverage: Sequence[RequirementCoverage]) -> float:
    """Covered share of the requirements that were actually evaluated."""
    if not coverage:
        return 1.0
    return sum(1 for c in coverage if c.covered) / len(coverage)


def correctness_score(gaps: Sequence[Gap]) -> float:
    """One minus the share of gaps that are ``incorrect``.

    Every gap counts in the denominator, so non-``incorrect`` gaps raise the
    score.
    """
    if not gaps:
        return 1.0
    incorrect = sum(1 for g in gaps if g.category == "incorrect")
    return 1.0 - incorrect / max(len(gaps), 1)


def quality_score(criteria: float, completeness: float, correctness: float) -> float:
    return clamp_unit(
        CRITERIA_WEIGHT * criteria
        + COMPLETENESS_WEIGHT * completeness
        + CORRECTNESS_WEIGHT * correctness
    )


def decide(
    quality: float,
    completeness: float,
    gaps: Iterable[Gap],
    iteration_index: int,
    config: SelfReviewConfig,
) -> Decision:
    """
    Map scores and gaps to a decision.

    Order matters: too many critical gaps escalate even when the scores pass,
    then persistently low quality escalates, then approval is checked.

    Args:
        quality: Weighted quality score
        completeness: Requirement completeness score
        gaps: Gaps found this iteration
        iteration_index: 0-based iteration number
        config: Loop policy

    Returns:
        "approved", "needs_work" or "escalate"
    """
    counts = count_by_severity(gaps)

    if counts["critical"] > config.max_critical_gaps_before_escalate:
        return "escalate"

    if (
        iteration_index >= config.escalate_after_iterations
        and quality < config.quality_threshold * LOW_QUALITY_FACTOR
    ):
        return "escalate"

    if (
        quality >= config.quality_threshold
        and completeness >= config.completeness_threshold
        and counts["critical"] == 0
        and counts["major"] == 0
    ):
        return "approved"

    return "needs_work"


_DECISION_SENTENCE: dict[str, str] = {
    "approved": "All quality thresholds met.",
    "needs_work": "Addressing identified gaps.",
    "escalate": "Escalating for human review.",
}


def generate_reasoning(
    quality: float,
    completeness: float,
    gaps: Iterable[Gap],
    decision: Decision,
) -> str:
    """Human-readable one-liner for a review, e.g. ``Quality: 80% | ...``."""
    parts = [
        f"Quality: {quality * 100:.0f}%",
        f"Completeness: {completeness * 100:.0f}%",
    ]
    counts = count_by_severity(gaps)
    summary = ", ".join(f"{n} {sev}" for sev, n in counts.items() if n)
    if summary:
        parts.append(f"Gaps: {summary}")
    parts.append(_DECISION_SENTENCE[decision])
    return " | ".join(parts)
