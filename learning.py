"""
Learning integration - turns a run's reviews into a lesson and aggregate metrics.

A lesson is only produced when something was actually learnt: at least two
iterations, and either a quality improvement or gaps left over, plus some
identifiable gap pattern or fix.
"""

import json
import re
from collections import Counter
from typing import Sequence

from gaps import truncate
from models import GapPattern, LessonInput, ReviewMetrics, SelfReviewResult

MAX_PATTERN_EXAMPLES = 3
MAX_EXAMPLE_LENGTH = 200
MAX_FIX_PART_LENGTH = 100
MIN_IMPROVEMENT = 0.1
HIGH_CONFIDENCE_IMPROVEMENT = 0.2

# Checked in order; first bucket with a matching keyword wins
_TASK_TYPES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("design", ("design", "mockup", "ui")),
    ("backend", ("api", "endpoint", "backend")),
    ("frontend", ("component", "frontend", "page")),
    ("testing", ("test", "qa")),
    ("database", ("database", "schema", "migration")),
    ("devops", ("deploy", "ci", "pipeline")),
    ("security", ("security", "auth")),
)


def _mentions(text: str, keyword: str) -> bool:
    # Short keywords ("ui", "ci", "api") only count as whole words
    if len(keyword) <= 3:
        return re.search(rf"\b{re.escape(keyword)}\b", text) is not None
    return keyword in text


def infer_task_type(description: str) -> str:
    lower = description.lower()
    for task_type, keywords in _TASK_TYPES:
        if any(_mentions(lower, kw) for kw in keywords):
            return task_type
    return "general"


# ---------------------------------------------------------------------------
# Gap analysis
# ---------------------------------------------------------------------------
def analyze_gap_patterns(reviews: Sequence[SelfReviewResult]) -> list[GapPattern]:
    """Group every gap by (category, severity), most frequent first."""
    patterns: dict[tuple[str, str], GapPattern] = {}
    for review in reviews:
        for gap in review.gaps:
            key = (gap.category, gap.severity)
            pattern = patterns.get(key)
            if pattern is None:
                pattern = patterns[key] = GapPattern(
                    category=gap.category, severity=gap.severity, frequency=0
                )
            pattern.frequency += 1
            if len(pattern.examples) < MAX_PATTERN_EXAMPLES:
                pattern.examples.append(truncate(gap.description, MAX_EXAMPLE_LENGTH))
    return sorted(patterns.values(), key=lambda p: p.frequency, reverse=True)


def _resolved(previous: SelfReviewResult, current: SelfReviewResult):
    # Gap ids are fresh every iteration, so match on what the gap says
    remaining = {(g.category, g.description) for g in current.gaps}
    return [g for g in previous.gaps if (g.category, g.description) not in remaining]


def analyze_successful_fixes(reviews: Sequence[SelfReviewResult]) -> list[str]:
    """Gaps present in one review and gone in the next."""
    fixes: list[str] = []
    for previous, current in zip(reviews, reviews[1:]):
        for gap in _resolved(previous, current):
            fixes.append(
                f"Fixed {gap.category}: {truncate(gap.description, MAX_FIX_PART_LENGTH)}"
                f" via {truncate(gap.suggested_fix, MAX_FIX_PART_LENGTH)}"
            )
    return fixes


def find_common_missed_requirements(reviews: Sequence[SelfReviewResult]) -> list[str]:
    """Requirements left uncovered in more than one review."""
    missed = Counter(
        coverage.requirement
        for review in reviews
        for coverage in review.requirements_covered
        if not coverage.covered
    )
    return [req for req, count in missed.most_common() if count > 1]


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------
def _summarize_gaps(patterns: list[GapPattern]) -> str:
    if not patterns:
        return "no gaps"
    return ", ".join(p.category for p in patterns[:2])


def _learning_summary(
    agent_id: str, reviews: Sequence[SelfReviewResult], patterns: list[GapPattern]
) -> str:
    first, last = reviews[0], reviews[-1]
    direction = "improved" if last.quality_score >= first.quality_score else "declined"
    summary = (
        f"Agent {agent_id} {direction} from {round(first.quality_score * 100)}%"
        f" to {round(last.quality_score * 100)}% quality over {len(reviews)} iterations."
    )
    if patterns:
        common = ", ".join(f"{p.category} ({p.frequency}x)" for p in patterns)
        summary += f" Common gaps: {common}."
    return summary


def create_lesson_from_review(
    agent_id: str,
    task_description: str,
    reviews: Sequence[SelfReviewResult],
) -> LessonInput | None:
    """
    Build a lesson from a multi-iteration run.

    Args:
        agent_id: Agent that was reviewed
        task_description: Task the agent worked on
        reviews: Every review of the run, in order

    Returns:
        A ``pattern`` lesson, or None when there is nothing worth keeping.
    """
    if len(reviews) < 2:
        return None

    first, last = reviews[0], reviews[-1]
    improvement = last.quality_score - first.quality_score
    if improvement < MIN_IMPROVEMENT and not last.gaps:
        return None

    patterns = analyze_gap_patterns(reviews)
    fixes = analyze_successful_fixes(reviews)
    if not patterns and not fixes:
        return None

    task_type = infer_task_type(task_description)
    details = {
        "agentId": agent_id,
        "taskType": task_type,
        "iterations": len(reviews),
        "initialScore": first.quality_score,
        "finalScore": last.quality_score,
        "improvement": improvement,
        "gapPatterns": [p.model_dump() for p in patterns],
        "successfulFixes": fixes,
        "commonRequirementsMissed": find_common_missed_requirements(reviews),
    }
    tags = [f"agent:{agent_id}", "self-review", f"task-type:{task_type}"]
    tags += [f"gap:{p.category}" for p in patterns]
    tags += [f"severity:{p.severity}" for p in patterns]

    return LessonInput(
        category="pattern",
        title=f"{agent_id} self-review pattern: {_summarize_gaps(patterns)}",
        summary=_learning_summary(agent_id, reviews, patterns),
        details=json.dumps(details),
        tags=tags,
        source_agent=agent_id,
        confidence=0.9 if improvement > HIGH_CONFIDENCE_IMPROVEMENT else 0.7,
    )


def calculate_review_metrics(reviews: Sequence[SelfReviewResult]) -> ReviewMetrics:
    """Aggregate numbers over a run's reviews."""
    if not reviews:
        return ReviewMetrics()

    first, last = reviews[0], reviews[-1]
    categories = Counter(g.category for r in reviews for g in r.gaps)

    return ReviewMetrics(
        total_iterations=len(reviews),
        average_quality=sum(r.quality_score for r in reviews) / len(reviews),
        quality_improvement=last.quality_score - first.quality_score,
        total_gaps=sum(len(r.gaps) for r in reviews),
        gaps_fixed=sum(len(_resolved(p, c)) for p, c in zip(reviews, reviews[1:])),
        final_decision=last.decision,
        most_common_gap_category=categories.most_common(1)[0][0] if categories else None,
    )
