"""Gap remediation - prompt building, improvement parsing and merging, Gemini-backed fixer."""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from config import DEFAULT_MODEL, USE_MOCK, call_gemini, parse_llm_json
from gaps import truncate
from models import AgentOutput, Artifact, ExecutionMetrics, Gap
from prompts import GAP_ADDRESSING_PROMPT

logger = logging.getLogger(__name__)

# Prompt size limits
MAX_TASK_LENGTH = 2000
MAX_OUTPUT_SUMMARY_LENGTH = 5000
MAX_RESULT_JSON_LENGTH = 2000
MAX_LISTED_ARTIFACTS = 10


# ---------------------------------------------------------------------------
# Improvement payload returned by the model
# ---------------------------------------------------------------------------
class Improvement(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gap_id: str = Field(default="", alias="gapId")
    fixed: bool = False
    description: str = ""
    content: str | None = None


class UpdatedArtifact(BaseModel):
    path: str
    content: str
    type: str = "document"


class ImprovementData(BaseModel):
    """Parsed remediation response."""

    model_config = ConfigDict(populate_by_name=True)

    improvements: list[Improvement] = Field(default_factory=list)
    updated_artifacts: list[UpdatedArtifact] = Field(
        default_factory=list, alias="updatedArtifacts"
    )
    result: Any = None


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------
def summarize_output(output: AgentOutput) -> str:
    """Short textual summary of an output for prompt injection."""
    parts: list[str] = []

    if output.artifacts:
        listed = ", ".join(f"{a.type}:{a.path}" for a in output.artifacts[:MAX_LISTED_ARTIFACTS])
        parts.append(f"Artifacts: {listed}")
        if len(output.artifacts) > MAX_LISTED_ARTIFACTS:
            parts.append(f"... and {len(output.artifacts) - MAX_LISTED_ARTIFACTS} more")

    if output.result:
        try:
            rendered = json.dumps(output.result, indent=2, default=str)
        except (TypeError, ValueError):
            parts.append("Result: [Complex object]")
        else:
            if len(rendered) > MAX_RESULT_JSON_LENGTH:
                rendered = rendered[:MAX_RESULT_JSON_LENGTH] + "..."
            parts.append(f"Result: {rendered}")

    hints = output.routing_hints
    status = [
        label
        for label, flag in (
            ("complete", hints.is_complete),
            ("has failures", hints.has_failures),
            ("needs approval", hints.needs_approval),
        )
        if flag
    ]
    if status:
        parts.append(f"Status: {', '.join(status)}")

    return truncate("\n".join(parts), MAX_OUTPUT_SUMMARY_LENGTH)


def _describe_gap(index: int, gap: Gap) -> str:
    lines = [
        f"{index}. [{gap.severity.upper()}] {gap.description}",
        f"   Gap id: {gap.id}",
        f"   Suggested fix: {gap.suggested_fix}",
        f"   Effort: {gap.estimated_effort}",
    ]
    if gap.affected_requirement:
        lines.append(f"   Requirement: {gap.affected_requirement}")
    if gap.affected_artifact:
        lines.append(f"   Artifact: {gap.affected_artifact}")
    return "\n".join(lines)


def build_gap_addressing_prompt(
    original_task: str, current_output: AgentOutput, gaps: list[Gap]
) -> str:
    """
    Build the remediation prompt for *gaps* found in *current_output*.

    Args:
        original_task: Task description the output was produced for
        current_output: Output that was reviewed
        gaps: Gaps to address (normally only the auto-fixable ones)

    Returns:
        Prompt text ready for ``call_gemini``
    """
    return GAP_ADDRESSING_PROMPT.format(
        task=truncate(original_task, MAX_TASK_LENGTH),
        summary=summarize_output(current_output),
        gaps="\n\n".join(_describe_gap(i, g) for i, g in enumerate(gaps, 1)),
    )


# ---------------------------------------------------------------------------
# Merging
# ---------------------------------------------------------------------------
def _merge_results(current: Any, improvement: Any) -> Any:
    if not improvement:
        return current
    if not current:
        return improvement
    if isinstance(current, dict) and isinstance(improvement, dict):
        return {**current, **improvement}
    return improvement


def _merge_artifacts(current: list[Artifact], updates: list[Artifact]) -> list[Artifact]:
    """Replace artifacts that share a path, append the rest."""
    merged = list(current)
    index = {a.path: i for i, a in enumerate(merged)}
    for artifact in updates:
        if artifact.path in index:
            merged[index[artifact.path]] = artifact
        else:
            index[artifact.path] = len(merged)
            merged.append(artifact)
    return merged


def merge_improvements(current: AgentOutput, improvements: AgentOutput) -> AgentOutput:
    """Fold *improvements* into *current* and return a new output."""
    hints = current.routing_hints.model_copy(
        update=improvements.routing_hints.model_dump(exclude_unset=True)
    )
    metrics = current.metrics.model_copy(
        update={
            "tokens_used": current.metrics.tokens_used + improvements.metrics.tokens_used,
            "llm_calls": current.metrics.llm_calls + improvements.metrics.llm_calls,
        }
    )
    return current.model_copy(
        update={
            "result": _merge_results(current.result, improvements.result),
            "artifacts": _merge_artifacts(current.artifacts, improvements.artifacts),
            "routing_hints": hints,
            "metrics": metrics,
        }
    )


def apply_improvement_data(
    output: AgentOutput, data: ImprovementData, llm_calls: int = 0
) -> AgentOutput:
    """Turn a parsed remediation response into an output and merge it in."""
    patch = AgentOutput(
        agent_id=output.agent_id,
        execution_id=output.execution_id,
        success=output.success,
        result=data.result,
        artifacts=[
            Artifact(
                type=u.type,
                path=u.path,
                content=u.content,
                metadata={"updated_by": "self_review"},
            )
            for u in data.updated_artifacts
        ],
        metrics=ExecutionMetrics(llm_calls=llm_calls),
    )
    return merge_improvements(output, patch)


def parse_improvements(text: str) -> ImprovementData | None:
    return parse_llm_json(text, ImprovementData)


# ---------------------------------------------------------------------------
# Gemini-backed remediation
# ---------------------------------------------------------------------------
def make_gemini_gap_addresser(
    task_description: str, model: str = DEFAULT_MODEL
) -> Callable[[AgentOutput, list[Gap]], Awaitable[AgentOutput]]:
    """Return an ``address_gaps`` coroutine function that asks Gemini for fixes."""

    async def address_gaps(output: AgentOutput, gaps: list[Gap]) -> AgentOutput:
        if not gaps:
            return output

        if USE_MOCK:
            logger.info("Mock remediation: leaving %d gap(s) unchanged", len(gaps))
            return output

        prompt = build_gap_addressing_prompt(task_description, output, gaps)
        text = await asyncio.to_thread(call_gemini, prompt, model)

        data = parse_improvements(text)
        if data is None:
            logger.warning("Could not parse remediation response; keeping output")
            return output

        fixed = sum(1 for i in data.improvements if i.fixed)
        logger.info(
            "Remediation fixed %d/%d gap(s), updated %d artifact(s)",
            fixed,
            len(gaps),
            len(data.updated_artifacts),
        )
        return apply_improvement_data(output, data, llm_calls=1)

    return address_gaps
