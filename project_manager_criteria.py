"""
Project Manager review criteria.

Validates a work breakdown of the shape::

    {"epics": [{"id", "title", "features": [{"id", "title", "userStory",
        "tasks": [{"id", "title", "description", "complexity",
                   "dependencies", "acceptanceCriteria", "assignedAgents"}]}]}]}

Malformed sections (non-list values, non-dict entries) are ignored rather than
rejected; what is left is what gets validated.
"""

from typing import Any

from criteria import (
    CapabilitySet,
    Criterion,
    criterion_failed,
    criterion_partial,
    criterion_passed,
    nothing_to_validate,
)
from models import AgentOutput, AgentRequest, CriterionResult, RequirementCoverage, ReviewContext
from requirement_coverage import CoverageNode, check_node_coverage
from requirement_extractor import get_task_description

ACCEPTANCE_PASS_RATIO = 0.9
AGENTS_PASS_RATIO = 0.95
DESCRIPTION_PASS_RATIO = 0.9
MIN_DESCRIPTION_LENGTH = 20
MAX_LISTED = 5


# =============================================================================
# WORK BREAKDOWN ACCESSORS
# =============================================================================
def _dicts(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def get_epics(output: AgentOutput) -> list[dict]:
    result = output.result
    return _dicts(result.get("epics")) if isinstance(result, dict) else []


def flatten_features(epics: list[dict]) -> list[dict]:
    return [f for e in epics for f in _dicts(e.get("features"))]


def flatten_tasks(epics: list[dict]) -> list[dict]:
    return [t for f in flatten_features(epics) for t in _dicts(f.get("tasks"))]


def _task_id(task: dict) -> str:
    return str(task.get("id", ""))


def _dependencies(task: dict) -> list[str]:
    deps = task.get("dependencies")
    if not isinstance(deps, list):
        return []
    return [str(d) for d in deps if isinstance(d, (str, int))]


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and len(value) > 0


def detect_cycle(tasks: list[dict]) -> list[str] | None:
    """
    Find a dependency cycle among *tasks*.

    Depth-first search with an explicit stack, so arbitrarily long dependency
    chains are fine. Returns the cycle as a closed path (first node repeated at
    the end), or None when the graph is acyclic.
    """
    graph: dict[str, list[str]] = {}
    for task in tasks:
        graph[_task_id(task)] = _dependencies(task)

    visited: set[str] = set()
    on_path: set[str] = set()

    for root in graph:
        if root in visited:
            continue

        path = [root]
        visited.add(root)
        on_path.add(root)
        pending = [iter(graph[root])]

        while pending:
            dep = next(pending[-1], None)
            if dep is None:
                pending.pop()
                on_path.discard(path.pop())
                continue
            if dep in on_path:
                return path[path.index(dep):] + [dep]
            if dep not in visited:
                visited.add(dep)
                on_path.add(dep)
                path.append(dep)
                pending.append(iter(graph.get(dep, ())))

    return None


# =============================================================================
# CRITERIA
# =============================================================================
async def validate_acceptance_criteria(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    tasks = flatten_tasks(get_epics(output))
    if not tasks:
        return nothing_to_validate("tasks")

    with_criteria = sum(1 for t in tasks if _non_empty_list(t.get("acceptanceCriteria")))
    score = with_criteria / len(tasks)

    if score >= ACCEPTANCE_PASS_RATIO:
        return criterion_passed(f"{with_criteria}/{len(tasks)} tasks have acceptance criteria")

    missing = len(tasks) - with_criteria
    return criterion_failed(
        f"{missing} tasks missing acceptance criteria",
        "Add specific, testable acceptance criteria to each task",
        score,
        "large" if missing > 5 else "medium",
    )


async def validate_dependencies(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    tasks = flatten_tasks(get_epics(output))
    if not tasks:
        return nothing_to_validate("tasks")

    task_ids = {_task_id(t) for t in tasks}
    invalid = [
        f"{_task_id(task)} -> {dep}"
        for task in tasks
        for dep in _dependencies(task)
        if dep not in task_ids
    ]
    if invalid:
        listed = ", ".join(invalid[:MAX_LISTED])
        more = "..." if len(invalid) > MAX_LISTED else ""
        return criterion_failed(
            f"Invalid dependencies: {listed}{more}",
            "Fix dependency references to point to valid task IDs",
        )

    cycle = detect_cycle(tasks)
    if cycle:
        return criterion_failed(
            f"Circular dependency detected: {' -> '.join(cycle)}",
            "Remove circular dependencies to enable topological ordering",
        )

    return criterion_passed("All dependencies valid, no cycles detected")


async def validate_complexity(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    tasks = flatten_tasks(get_epics(output))
    if not tasks:
        return nothing_to_validate("tasks")

    too_big = [t for t in tasks if t.get("complexity") == "epic"]
    if not too_big:
        return criterion_passed("All tasks appropriately sized")

    titles = ", ".join(_text(t.get("title")) or _task_id(t) for t in too_big[:3])
    return criterion_failed(
        f'{len(too_big)} tasks have "epic" complexity and should be broken down',
        f"Break down these tasks into smaller units: {titles}",
        1 - len(too_big) / len(tasks),
        "large",
    )


async def validate_agents_assigned(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    tasks = flatten_tasks(get_epics(output))
    if not tasks:
        return nothing_to_validate("tasks")

    with_agents = sum(1 for t in tasks if _non_empty_list(t.get("assignedAgents")))
    score = with_agents / len(tasks)

    if score >= AGENTS_PASS_RATIO:
        return criterion_passed(f"{with_agents}/{len(tasks)} tasks have agents assigned")

    return criterion_partial(
        f"{len(tasks) - with_agents} tasks missing agent assignment",
        score,
        "Assign appropriate agents based on task type",
        "small",
    )


async def validate_task_descriptions(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    tasks = flatten_tasks(get_epics(output))
    if not tasks:
        return nothing_to_validate("tasks")

    described = sum(
        1 for t in tasks if len(_text(t.get("description"))) >= MIN_DESCRIPTION_LENGTH
    )
    score = described / len(tasks)

    if score >= DESCRIPTION_PASS_RATIO:
        return criterion_passed(f"{described}/{len(tasks)} tasks have descriptions")

    return criterion_partial(
        f"{len(tasks) - described} tasks missing or have short descriptions",
        score,
        "Add detailed descriptions explaining what each task accomplishes",
        "medium",
    )


async def validate_structure(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    epics = get_epics(output)
    if not epics:
        return nothing_to_validate("epics")

    features = flatten_features(epics)
    if not features:
        return criterion_partial(
            "Epics exist but no features defined",
            0.3,
            "Add features to epics to better organize work",
            "medium",
        )

    tasks = flatten_tasks(epics)
    if not tasks:
        return criterion_partial(
            "Epics and features exist but no tasks defined",
            0.5,
            "Add specific tasks to features",
            "medium",
        )

    return criterion_passed(
        f"Well-structured: {len(epics)} epics, {len(features)} features, {len(tasks)} tasks"
    )


PROJECT_MANAGER_CRITERIA: tuple[Criterion, ...] = (
    Criterion(
        id="tasks_have_acceptance_criteria",
        name="Acceptance Criteria Present",
        description="Every task has defined acceptance criteria",
        severity="critical",
        category="incomplete",
        validate=validate_acceptance_criteria,
    ),
    Criterion(
        id="dependencies_valid",
        name="Valid Dependencies",
        description="All task dependencies exist and form no cycles",
        severity="critical",
        category="incorrect",
        validate=validate_dependencies,
    ),
    Criterion(
        id="balanced_complexity",
        name="Balanced Complexity",
        description='No tasks with "epic" complexity (should be broken down)',
        severity="major",
        category="incomplete",
        validate=validate_complexity,
    ),
    Criterion(
        id="agents_assigned",
        name="Agents Assigned",
        description="All tasks have appropriate agents assigned",
        severity="major",
        category="incomplete",
        validate=validate_agents_assigned,
    ),
    Criterion(
        id="task_descriptions",
        name="Task Descriptions",
        description="All tasks have meaningful descriptions",
        severity="major",
        category="incomplete",
        validate=validate_task_descriptions,
    ),
    Criterion(
        id="structure_valid",
        name="Epic/Feature Structure",
        description="Work is organized into epics, features, and tasks",
        severity="minor",
        category="quality",
        validate=validate_structure,
    ),
)


# =============================================================================
# CAPABILITY SET
# =============================================================================
_IMPLICIT_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("develop", "implement"), ("Testing tasks for implemented features", "Documentation tasks")),
    (("api", "endpoint"), ("API documentation", "Error handling", "Input validation")),
    (("database", "storage"), ("Database migration tasks", "Data validation")),
    (("auth", "security"), ("Security review task", "Authentication testing")),
)


class ProjectManagerCapability(CapabilitySet):
    """Work-breakdown review for the project manager agent."""

    agent_id = "project_manager"
    criteria = PROJECT_MANAGER_CRITERIA

    def infer_implicit_requirements(self, request: AgentRequest) -> list[str]:
        description = get_task_description(request).lower()
        implicit: list[str] = []
        for triggers, requirements in _IMPLICIT_RULES:
            if any(t in description for t in triggers):
                implicit.extend(requirements)
        return implicit

    async def check_requirement_covered(
        self,
        requirement: str,
        output: AgentOutput,
        context: ReviewContext,
    ) -> RequirementCoverage:
        epics = get_epics(output)
        nodes = [
            CoverageNode(_task_id(t), _text(t.get("title")), _text(t.get("description")))
            for t in flatten_tasks(epics)
        ]
        nodes += [
            CoverageNode(str(f.get("id", "")), _text(f.get("title")), _text(f.get("userStory")))
            for f in flatten_features(epics)
        ]
        return check_node_coverage(requirement, nodes)


def create_project_manager_capability() -> ProjectManagerCapability:
    return ProjectManagerCapability()
