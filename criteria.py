"""Review criteria and the capability-set base class.

A ``Criterion`` is one named validation rule. A ``CapabilitySet`` bundles the
criteria for one agent kind together with requirement extraction and the
coverage check for that kind's outputs.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable

from models import (
    AgentOutput,
    AgentRequest,
    Category,
    CriterionResult,
    Effort,
    RequirementCoverage,
    RequirementSource,
    ReviewContext,
    Severity,
)
from requirement_coverage import check_keyword_coverage, output_text
from requirement_extractor import (
    extract_explicit_requirements,
    get_acceptance_criteria,
    get_task_description,
    merge_requirement_sources,
)

PARTIAL_PASS_SCORE = 0.8

Validator = Callable[[AgentOutput, AgentRequest, ReviewContext], Awaitable[CriterionResult]]


@dataclass(frozen=True)
class Criterion:
    """A single pluggable validation rule."""

    id: str
    name: str
    description: str
    severity: Severity
    category: Category
    validate: Validator


# ---------------------------------------------------------------------------
# Verdict helpers
# ---------------------------------------------------------------------------
def criterion_passed(details: str, score: float = 1.0) -> CriterionResult:
    return CriterionResult(passed=True, score=score, details=details)


def criterion_failed(
    details: str,
    suggested_fix: str,
    score: float = 0.0,
    effort: Effort = "medium",
) -> CriterionResult:
    return CriterionResult(
        passed=False,
        score=score,
        details=details,
        suggested_fix=suggested_fix,
        estimated_effort=effort,
    )


def criterion_partial(
    details: str,
    score: float,
    suggested_fix: str | None = None,
    effort: Effort | None = None,
) -> CriterionResult:
    """Pass when *score* reaches 0.8; otherwise fail with the given fix."""
    passed = score >= PARTIAL_PASS_SCORE
    return CriterionResult(
        passed=passed,
        score=score,
        details=details,
        suggested_fix=None if passed else suggested_fix,
        estimated_effort=None if passed else effort,
    )


def nothing_to_validate(what: str) -> CriterionResult:
    """Neutral pass for outputs that carry none of the inspected content."""
    return criterion_passed(f"No {what} to validate")


# ---------------------------------------------------------------------------
# Capability set
# ---------------------------------------------------------------------------
class CapabilitySet:
    """
    Criteria, requirement extraction and coverage check for one agent kind.

    Subclasses set ``agent_id`` and ``criteria`` and usually override
    ``infer_implicit_requirements`` and ``check_requirement_covered``.
    Instances hold no per-run state and may be shared between loops.
    """

    agent_id: str = ""
    criteria: tuple[Criterion, ...] = ()

    async def extract_requirements(self, request: AgentRequest) -> list[str]:
        """Deduplicated requirements for *request*."""
        return list(await self.requirement_sources(request))

    async def requirement_sources(self, request: AgentRequest) -> dict[str, RequirementSource]:
        """Requirements for *request* mapped to where each one came from."""
        description = get_task_description(request)
        return merge_requirement_sources(
            extract_explicit_requirements(description),
            self.infer_implicit_requirements(request),
            get_acceptance_criteria(request),
        )

    def infer_implicit_requirements(self, request: AgentRequest) -> list[str]:
        """Keyword-triggered requirements for this agent kind. None by default."""
        return []

    async def check_requirement_covered(
        self,
        requirement: str,
        output: AgentOutput,
        context: ReviewContext,
    ) -> RequirementCoverage:
        return check_keyword_coverage(requirement, output_text(output))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(agent_id={self.agent_id!r}, criteria={len(self.criteria)})"
