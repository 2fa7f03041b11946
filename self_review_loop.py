"""
Self-Review Loop - LangGraph-based quality gate for agent output.

The loop is a small state machine:

    produce -> review -> fix -> review -> ... -> finalize

``review`` runs every criterion of the agent's capability set plus a coverage
check per extracted requirement, scores the result and decides whether the
output is approved, needs more work, or must be escalated to a human.
``fix`` hands the auto-fixable gaps to the caller's remediation function.
The number of reviews is bounded by ``max_iterations``; running out of
iterations is treated as an escalation.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from langgraph.graph import END, START, StateGraph

from config import load_review_config
from criteria import CapabilitySet, Criterion
from gaps import (
    count_by_severity,
    gap_from_error,
    gap_from_result,
    gap_from_uncovered,
    get_fixable_gaps,
    truncate,
)
from learning import create_lesson_from_review
from models import (
    MAX_REASONING_LENGTH,
    AgentOutput,
    AgentRequest,
    CriterionResult,
    ExecuteResult,
    Gap,
    RequirementCoverage,
    RequirementSource,
    ReviewContext,
    SelfReviewConfig,
    SelfReviewResult,
    clamp_unit,
)
from registry import CapabilityRegistry, default_registry
from requirement_extractor import CURRENT_TASK, get_task_description
from review_context import build_review_context
from scoring import (
    completeness_score,
    correctness_score,
    criteria_score,
    decide,
    generate_reasoning,
    quality_score,
)

Producer = Callable[[], Awaitable[AgentOutput]]
GapAddresser = Callable[[AgentOutput, list[Gap]], Awaitable[AgentOutput]]

ESCALATION_PREFIX = "Self-review escalation: "


# =============================================================================
# STATE DEFINITION
# =============================================================================
@dataclass
class LoopState:
    """
    State that flows through the loop graph.

    ``status`` is one of producing, reviewing, fixing, approved, escalated,
    exhausted. The last three are terminal.
    """

    output: Any = None
    reviews: list[SelfReviewResult] = field(default_factory=list)
    iteration: int = 0  # 0-based index of the review in progress
    status: str = "producing"


TERMINAL_STATUSES = ("approved", "escalated", "exhausted")


def route_after_review(state: LoopState) -> str:
    """Conditional edge: keep fixing, or stop."""
    # LangGraph may pass state as dict or dataclass
    status = state.get("status") if isinstance(state, dict) else state.status
    return "finalize" if status in TERMINAL_STATUSES else "fix"


def route_after_fix(state: LoopState) -> str:
    """Conditional edge: review the fixed output, or stop once iterations run out."""
    status = state.get("status") if isinstance(state, dict) else state.status
    return "finalize" if status in TERMINAL_STATUSES else "review"


def apply_review_to_output(
    output: AgentOutput, review: SelfReviewResult, escalate: bool = False
) -> AgentOutput:
    """Return a copy of *output* with its routing hints stamped from *review*."""
    needs_approval = escalate or review.decision == "escalate"
    hints = output.routing_hints.model_copy(
        update={
            "needs_approval": needs_approval,
            "notes": f"{ESCALATION_PREFIX}{review.reasoning}" if needs_approval else review.reasoning,
        }
    )
    return output.model_copy(update={"routing_hints": hints})


# =============================================================================
# LOOP
# =============================================================================
class SelfReviewLoop:
    """Drives the produce -> review -> fix cycle for one capability set."""

    def __init__(
        self,
        capability: CapabilitySet,
        config: SelfReviewConfig | dict[str, Any] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.capability = capability
        if isinstance(config, SelfReviewConfig):
            self.config = config
        else:
            self.config = load_review_config(config)
        self.logger = logger or logging.getLogger(__name__)

    @property
    def agent_id(self) -> str:
        return self.capability.agent_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def execute(
        self,
        request: AgentRequest,
        produce: Producer,
        address_gaps: GapAddresser,
    ) -> ExecuteResult:
        """
        Produce an output and review it until approved, escalated or out of iterations.

        Args:
            request: The request the agent is working on
            produce: Zero-argument coroutine function producing the output
            address_gaps: Coroutine function taking (output, gaps) and returning
                an improved output

        Returns:
            ExecuteResult with the final (stamped) output and every review.

        Raises:
            Whatever ``produce`` raises; nothing else escapes the loop.
        """
        if not self.config.enabled:
            output = await produce()
            return ExecuteResult(output=output, reviews=[], final_status="bypassed")

        app = self._build_graph(request, produce, address_gaps).compile()
        final_state = await app.ainvoke(
            LoopState(),
            config={"recursion_limit": 2 * self.config.max_iterations + 5},
        )

        reviews: list[SelfReviewResult] = list(final_state["reviews"])
        result = ExecuteResult(
            output=final_state["output"],
            reviews=reviews,
            final_status=final_state["status"],
        )
        if self.config.capture_for_learning:
            result.lesson = self._capture_lesson(request, reviews)
        return result

    async def perform_review(
        self,
        request: AgentRequest,
        output: AgentOutput,
        iteration_index: int = 0,
        previous_reviews: list[SelfReviewResult] | None = None,
    ) -> SelfReviewResult:
        """Run one review iteration over *output*."""
        started = time.monotonic()
        context = build_review_context(request, previous_reviews or [])
        sources = await self._requirement_sources(request)
        requirements = list(sources)

        outcomes = await self._run_criteria(output, request, context)
        scores = [score for score, _ in outcomes]
        gaps: list[Gap] = [gap for _, gap in outcomes if gap is not None]

        coverage: list[RequirementCoverage] = []
        for requirement in requirements:
            checked = await self._check_coverage(requirement, sources[requirement], output, context)
            if checked is None:
                continue
            coverage.append(checked)
            if not checked.covered:
                gaps.append(gap_from_uncovered(requirement))

        criteria = criteria_score(scores)
        completeness = completeness_score(coverage)
        correctness = correctness_score(gaps)
        quality = quality_score(criteria, completeness, correctness)

        decision = decide(quality, completeness, gaps, iteration_index, self.config)
        counts = count_by_severity(gaps)

        return SelfReviewResult(
            task_id=self._task_id(request),
            agent_id=self.agent_id,
            iteration=iteration_index + 1,
            quality_score=quality,
            completeness_score=completeness,
            correctness_score=correctness,
            overall_score=quality,
            task_requirements=requirements,
            requirements_covered=coverage,
            gaps=gaps,
            critical_gap_count=counts["critical"],
            major_gap_count=counts["major"],
            minor_gap_count=counts["minor"],
            decision=decision,
            reasoning=truncate(
                generate_reasoning(quality, completeness, gaps, decision),
                MAX_REASONING_LENGTH,
            ),
            review_duration_ms=int((time.monotonic() - started) * 1000),
        )

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------
    def _build_graph(
        self,
        request: AgentRequest,
        produce: Producer,
        address_gaps: GapAddresser,
    ) -> StateGraph:
        max_iterations = self.config.max_iterations

        async def produce_node(state: LoopState) -> dict:
            output = await self._call(produce())
            return {"output": output, "reviews": [], "iteration": 0, "status": "reviewing"}

        async def review_node(state: LoopState) -> dict:
            review = await self.perform_review(
                request, state.output, state.iteration, state.reviews
            )
            self.logger.info(
                "Self-review iteration %d: agent_id=%s quality_score=%.2f gap_count=%d decision=%s",
                review.iteration,
                self.agent_id,
                review.quality_score,
                len(review.gaps),
                review.decision,
            )

            if review.decision == "approved":
                status = "approved"
            elif self._should_escalate(review):
                status = "escalated"
            else:
                status = "fixing"
            return {"reviews": [*state.reviews, review], "status": status}

        async def fix_node(state: LoopState) -> dict:
            fixable = get_fixable_gaps(state.reviews[-1].gaps)
            output = state.output
            if fixable:
                output = await self._address_gaps(address_gaps, output, fixable)
            iteration = state.iteration + 1
            status = "exhausted" if iteration >= max_iterations else "reviewing"
            return {"output": output, "iteration": iteration, "status": status}

        def finalize_node(state: LoopState) -> dict:
            review = state.reviews[-1]
            if state.status == "exhausted":
                self.logger.warning(
                    "Max review iterations (%d) reached: agent_id=%s final_score=%.2f",
                    max_iterations,
                    self.agent_id,
                    review.overall_score,
                )
            escalate = state.status != "approved"
            return {"output": self._stamp(state.output, review, escalate)}

        graph = StateGraph(LoopState)

        graph.add_node("produce", produce_node)
        graph.add_node("review", review_node)
        graph.add_node("fix", fix_node)
        graph.add_node("finalize", finalize_node)

        graph.add_edge(START, "produce")
        graph.add_edge("produce", "review")
        graph.add_conditional_edges(
            "review",
            route_after_review,
            {
                "fix": "fix",
                "finalize": "finalize",
            },
        )
        graph.add_conditional_edges(
            "fix",
            route_after_fix,
            {
                "review": "review",
                "finalize": "finalize",
            },
        )
        graph.add_edge("finalize", END)

        return graph

    # ------------------------------------------------------------------
    # Collaborator calls (the single catch boundary)
    # ------------------------------------------------------------------
    async def _call(self, awaitable: Awaitable[Any]) -> Any:
        timeout = self.config.call_timeout_seconds
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)

    async def _run_criteria(
        self, output: AgentOutput, request: AgentRequest, context: ReviewContext
    ) -> list[tuple[float, Gap | None]]:
        criteria = self.capability.criteria
        if self.config.parallel_criteria:
            return list(
                await asyncio.gather(
                    *(self._run_criterion(c, output, request, context) for c in criteria)
                )
            )
        return [await self._run_criterion(c, output, request, context) for c in criteria]

    async def _run_criterion(
        self,
        criterion: Criterion,
        output: AgentOutput,
        request: AgentRequest,
        context: ReviewContext,
    ) -> tuple[float, Gap | None]:
        """Validate one criterion; failures of the criterion itself become gaps."""
        try:
            result = await self._call(criterion.validate(output, request, context))
        except asyncio.TimeoutError:
            self.logger.warning(
                "Criterion %s timed out after %ss", criterion.id, self.config.call_timeout_seconds
            )
            return 0.0, gap_from_error(
                criterion, f"Validation timed out after {self.config.call_timeout_seconds}s"
            )
        except Exception as e:
            self.logger.warning("Criterion %s validation failed: %s", criterion.id, e)
            return 0.0, gap_from_error(criterion)

        if not isinstance(result, CriterionResult):
            self.logger.warning(
                "Criterion %s returned %s instead of a CriterionResult",
                criterion.id,
                type(result).__name__,
            )
            return 0.0, gap_from_error(criterion, "Invalid validation result")

        score = clamp_unit(result.score)
        if result.passed:
            return score, None
        return score, gap_from_result(criterion, result)

    async def _requirement_sources(self, request: AgentRequest) -> dict[str, RequirementSource]:
        try:
            return await self._call(self.capability.requirement_sources(request))
        except Exception as e:
            self.logger.warning(
                "Requirement extraction failed for agent_id=%s: %s", self.agent_id, e
            )
            return {}

    async def _check_coverage(
        self,
        requirement: str,
        source: RequirementSource,
        output: AgentOutput,
        context: ReviewContext,
    ) -> RequirementCoverage | None:
        """Coverage for one requirement, or None when the check itself failed."""
        try:
            coverage = await self._call(
                self.capability.check_requirement_covered(requirement, output, context)
            )
        except Exception as e:
            self.logger.warning("Requirement check failed: %s (%s)", requirement, e or type(e).__name__)
            return None
        if not isinstance(coverage, RequirementCoverage):
            self.logger.warning("Requirement check returned no coverage: %s", requirement)
            return None
        return coverage.model_copy(update={"source": source})

    async def _address_gaps(
        self, address_gaps: GapAddresser, output: AgentOutput, gaps: list[Gap]
    ) -> AgentOutput:
        """Best-effort remediation; on failure the unmodified output carries on."""
        try:
            fixed = await self._call(address_gaps(output, gaps))
        except Exception as e:
            self.logger.warning("Failed to address gaps: %s", e or type(e).__name__)
            return output
        if fixed is None:
            self.logger.warning("Gap remediation returned nothing; keeping previous output")
            return output
        return fixed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _should_escalate(self, review: SelfReviewResult) -> bool:
        if review.decision == "escalate":
            return True
        return (
            self.config.escalate_on_critical_gaps
            and review.critical_gap_count > self.config.max_critical_gaps_before_escalate
        )

    def _stamp(self, output: Any, review: SelfReviewResult, escalate: bool) -> Any:
        if not isinstance(output, AgentOutput):
            self.logger.warning(
                "Cannot stamp routing hints on %s; returning output as-is", type(output).__name__
            )
            return output
        return apply_review_to_output(output, review, escalate)

    def _capture_lesson(self, request: AgentRequest, reviews: list[SelfReviewResult]):
        total_gaps = sum(len(r.gaps) for r in reviews)
        if total_gaps < self.config.learning_threshold_gaps:
            return None
        lesson = create_lesson_from_review(self.agent_id, get_task_description(request), reviews)
        if lesson is not None:
            self.logger.info("Captured self-review lesson: %s", lesson.title)
        return lesson

    @staticmethod
    def _task_id(request: AgentRequest) -> str:
        if request.task_id:
            return request.task_id
        item = request.context.find(CURRENT_TASK)
        if item is not None and isinstance(item.content, dict) and item.content.get("id"):
            return str(item.content["id"])
        return request.execution_id


# =============================================================================
# FACTORY
# =============================================================================
def create_self_review_loop(
    capability: CapabilitySet | str,
    config: SelfReviewConfig | dict[str, Any] | None = None,
    registry: CapabilityRegistry | None = None,
    logger: logging.Logger | None = None,
) -> SelfReviewLoop:
    """Build a loop for a capability set, or for an agent id looked up in *registry*."""
    if isinstance(capability, str):
        capability = (registry or default_registry()).get(capability)
    return SelfReviewLoop(capability, config=config, logger=logger)
