"""Data models for the self-review quality gate."""

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Severity = Literal["critical", "major", "minor"]
Category = Literal["missing", "incomplete", "incorrect", "quality"]
Effort = Literal["trivial", "small", "medium", "large"]
Decision = Literal["approved", "needs_work", "escalate"]
RequirementSource = Literal["explicit", "implicit", "acceptance-criteria"]
FinalStatus = Literal["approved", "escalated", "exhausted", "bypassed"]

MAX_DESCRIPTION_LENGTH = 2000
MAX_REASONING_LENGTH = 5000
MAX_REQUIREMENT_LENGTH = 500


def clamp_unit(value: Any) -> float:
    """Coerce *value* into ``[0, 1]``; anything non-numeric or NaN becomes 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(1.0, max(0.0, number))


def _new_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Agent request / output envelope
# ---------------------------------------------------------------------------
class ContextItem(BaseModel):
    """One typed piece of context handed to an agent (e.g. ``current_task``)."""

    type: str
    content: Any = None


class AgentContext(BaseModel):
    items: list[ContextItem] = Field(default_factory=list)
    previous_outputs: list[Any] = Field(default_factory=list)

    def find(self, item_type: str) -> ContextItem | None:
        """Return the first context item of *item_type*, if any."""
        return next((item for item in self.items if item.type == item_type), None)


class AgentRequest(BaseModel):
    """The request an agent is working on."""

    execution_id: str = Field(default_factory=_new_id)
    task_id: str = ""
    prompt: str = Field(default="", description="Raw task text, used when no current_task item exists")
    context: AgentContext = Field(default_factory=AgentContext)


class Artifact(BaseModel):
    id: str = Field(default_factory=_new_id)
    type: str = Field(description="mockup, stylesheet, source_file, documentation, ...")
    path: str
    content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RoutingHints(BaseModel):
    """Routing metadata read by whatever consumes the agent output."""

    suggest_next: list[str] = Field(default_factory=list)
    skip_agents: list[str] = Field(default_factory=list)
    needs_approval: bool = False
    has_failures: bool = False
    is_complete: bool = False
    blocked_by: str | None = None
    notes: str | None = None


class ExecutionMetrics(BaseModel):
    tokens_used: int = Field(default=0, ge=0)
    llm_calls: int = Field(default=0, ge=0)
    duration_ms: int = Field(default=0, ge=0)


class AgentOutput(BaseModel):
    """Opaque agent output as far as the loop is concerned."""

    agent_id: str
    execution_id: str = Field(default_factory=_new_id)
    success: bool = True
    result: Any = None
    artifacts: list[Artifact] = Field(default_factory=list)
    routing_hints: RoutingHints = Field(default_factory=RoutingHints)
    metrics: ExecutionMetrics = Field(default_factory=ExecutionMetrics)

    def artifacts_of(self, artifact_type: str) -> list[Artifact]:
        return [a for a in self.artifacts if a.type == artifact_type]


# ---------------------------------------------------------------------------
# Review records
# ---------------------------------------------------------------------------
class CriterionResult(BaseModel):
    """Verdict of a single criterion."""

    passed: bool
    score: float = Field(description="0.0 - 1.0, clamped on construction")
    details: str = ""
    suggested_fix: str | None = None
    estimated_effort: Effort | None = None

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        return clamp_unit(value)


class RequirementCoverage(BaseModel):
    """Whether one requirement is addressed by the output."""

    requirement: str
    source: RequirementSource = "explicit"
    covered: bool
    coverage_details: str = ""
    evidence_location: str | None = None
    confidence: float = 0.0

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        return clamp_unit(value)


class Gap(BaseModel):
    """A deficiency detected in one review iteration."""

    id: str = Field(default_factory=_new_id)
    severity: Severity
    category: Category
    description: str = Field(min_length=1, max_length=MAX_DESCRIPTION_LENGTH)
    affected_requirement: str | None = None
    affected_artifact: str | None = None
    suggested_fix: str = Field(default="", max_length=MAX_DESCRIPTION_LENGTH)
    estimated_effort: Effort = "medium"
    auto_fixable: bool = True


class SelfReviewResult(BaseModel):
    """Outcome of one review iteration."""

    review_id: str = Field(default_factory=_new_id)
    task_id: str
    agent_id: str
    iteration: int = Field(ge=1)

    quality_score: float = Field(ge=0, le=1)
    completeness_score: float = Field(ge=0, le=1)
    correctness_score: float = Field(ge=0, le=1)
    overall_score: float = Field(ge=0, le=1)

    task_requirements: list[str] = Field(default_factory=list)
    requirements_covered: list[RequirementCoverage] = Field(default_factory=list)

    gaps: list[Gap] = Field(default_factory=list)
    critical_gap_count: int = Field(default=0, ge=0)
    major_gap_count: int = Field(default=0, ge=0)
    minor_gap_count: int = Field(default=0, ge=0)

    decision: Decision
    reasoning: str = Field(default="", max_length=MAX_REASONING_LENGTH)

    review_duration_ms: int = Field(default=0, ge=0)
    timestamp: str = Field(default_factory=_utc_now)


class ReviewContext(BaseModel):
    """Read-only context that criteria and coverage checks may consult."""

    model_config = ConfigDict(frozen=True)

    previous_outputs: list[Any] = Field(default_factory=list)
    previous_reviews: list[SelfReviewResult] = Field(default_factory=list)
    project_config: dict[str, Any] | None = None
    design_tokens: dict[str, Any] | None = None
    acceptance_criteria: list[str] | None = None


class SelfReviewConfig(BaseModel):
    """Loop policy. Immutable once a loop is built."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    max_iterations: int = Field(default=3, ge=1, le=10)
    quality_threshold: float = Field(default=0.8, ge=0, le=1)
    completeness_threshold: float = Field(default=0.9, ge=0, le=1)

    escalate_on_critical_gaps: bool = True
    escalate_after_iterations: int = Field(default=2, ge=1, le=10)
    max_critical_gaps_before_escalate: int = Field(default=1, ge=0)

    call_timeout_seconds: float | None = Field(default=60.0, gt=0)
    parallel_criteria: bool = False

    capture_for_learning: bool = True
    learning_threshold_gaps: int = Field(default=3, ge=0)


class GapPattern(BaseModel):
    category: str
    severity: str
    frequency: int
    examples: list[str] = Field(default_factory=list)


class LessonInput(BaseModel):
    """Lesson record distilled from a multi-iteration review run."""

    category: Literal["pattern", "bug_fix", "architecture", "security", "performance"] = "pattern"
    title: str
    summary: str
    details: str = Field(description="JSON document with the raw learning data")
    tags: list[str] = Field(default_factory=list)
    source_agent: str
    confidence: float = Field(ge=0, le=1)


class ReviewMetrics(BaseModel):
    total_iterations: int = 0
    average_quality: float = 0.0
    quality_improvement: float = 0.0
    total_gaps: int = 0
    gaps_fixed: int = 0
    final_decision: str = "none"
    most_common_gap_category: str | None = None


class ExecuteResult(BaseModel):
    """What ``SelfReviewLoop.execute`` hands back."""

    output: Any
    reviews: list[SelfReviewResult] = Field(default_factory=list)
    final_status: FinalStatus
    lesson: LessonInput | None = None
