import asyncio
import time

from models import AgentContext, AgentOutput, AgentRequest, ContextItem, ReviewContext
from project_manager_criteria import (
    ProjectManagerCapability,
    detect_cycle,
    flatten_tasks,
    get_epics,
    validate_acceptance_criteria,
    validate_agents_assigned,
    validate_complexity,
    validate_dependencies,
    validate_structure,
    validate_task_descriptions,
)

CTX = ReviewContext()
REQUEST = AgentRequest(execution_id="exec-1")


def _task(task_id, deps=(), **overrides) -> dict:
    task = {
        "id": task_id,
        "title": f"Task {task_id}",
        "description": f"Implement the {task_id} piece of the checkout flow",
        "complexity": "medium",
        "dependencies": list(deps),
        "acceptanceCriteria": ["It works"],
        "assignedAgents": ["backend_developer"],
    }
    task.update(overrides)
    return task


def _breakdown(tasks, features=None) -> AgentOutput:
    feature = {"id": "F1", "title": "Checkout", "userStory": "As a buyer I want to pay", "tasks": tasks}
    epics = [{"id": "E1", "title": "Payments", "features": features if features is not None else [feature]}]
    return AgentOutput(agent_id="project_manager", result={"epics": epics})


def _run(validator, output):
    return asyncio.run(validator(output, REQUEST, CTX))


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------
def test_detect_cycle_reports_closed_path():
    tasks = [_task("A", ["B"]), _task("B", ["C"]), _task("C", ["A"])]
    assert detect_cycle(tasks) == ["A", "B", "C", "A"]


def test_detect_cycle_self_loop():
    assert detect_cycle([_task("A", ["A"])]) == ["A", "A"]


def test_detect_cycle_in_second_component():
    tasks = [_task("X"), _task("Y", ["X"]), _task("A", ["B"]), _task("B", ["A"])]
    assert detect_cycle(tasks) == ["A", "B", "A"]


def test_detect_cycle_diamond_is_acyclic():
    tasks = [_task("A", ["B", "C"]), _task("B", ["D"]), _task("C", ["D"]), _task("D")]
    assert detect_cycle(tasks) is None


def test_long_chain_is_acyclic_and_fast():
    n = 1000
    tasks = [_task(f"T{i}", [f"T{i + 1}"] if i + 1 < n else []) for i in range(n)]

    started = time.monotonic()
    assert detect_cycle(tasks) is None
    result = _run(validate_dependencies, _breakdown(tasks))
    elapsed = time.monotonic() - started

    assert result.passed is True
    assert elapsed < 2.0


def test_dependencies_fail_on_cycle():
    tasks = [_task("A", ["B"]), _task("B", ["C"]), _task("C", ["A"])]
    result = _run(validate_dependencies, _breakdown(tasks))
    assert result.passed is False
    assert result.score == 0.0
    assert "A -> B -> C -> A" in result.details


def test_unknown_dependency_reported_before_cycle():
    tasks = [_task("A", ["B"]), _task("B", ["A", "ghost"])]
    result = _run(validate_dependencies, _breakdown(tasks))
    assert result.passed is False
    assert result.details == "Invalid dependencies: B -> ghost"


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------
def test_all_criteria_pass_on_complete_breakdown():
    output = _breakdown([_task("A"), _task("B", ["A"])])
    for validator in (
        validate_acceptance_criteria,
        validate_dependencies,
        validate_complexity,
        validate_agents_assigned,
        validate_task_descriptions,
        validate_structure,
    ):
        result = _run(validator, output)
        assert result.passed is True, validator.__name__
        assert result.score == 1.0


def test_absent_work_breakdown_passes_everything():
    output = AgentOutput(agent_id="project_manager", result=None)
    for validator in (
        validate_acceptance_criteria,
        validate_dependencies,
        validate_complexity,
        validate_agents_assigned,
        validate_task_descriptions,
        validate_structure,
    ):
        result = _run(validator, output)
        assert result.passed is True
        assert result.details.startswith("No ")


def test_malformed_sections_are_ignored():
    output = AgentOutput(
        agent_id="project_manager",
        result={"epics": [{"features": "oops"}, "junk", {"features": [{"tasks": [None, _task("A")]}]}]},
    )
    assert [t["id"] for t in flatten_tasks(get_epics(output))] == ["A"]


def test_missing_acceptance_criteria_fails_with_ratio():
    tasks = [_task("A"), _task("B", acceptanceCriteria=[]), _task("C", acceptanceCriteria=None)]
    result = _run(validate_acceptance_criteria, _breakdown(tasks))
    assert result.passed is False
    assert result.score == 1 / 3
    assert result.details == "2 tasks missing acceptance criteria"
    assert result.estimated_effort == "medium"


def test_epic_complexity_fails():
    tasks = [_task("A", complexity="epic", title="Rewrite everything"), _task("B")]
    result = _run(validate_complexity, _breakdown(tasks))
    assert result.passed is False
    assert result.score == 0.5
    assert "Rewrite everything" in result.suggested_fix


def test_agents_assigned_is_partial():
    tasks = [_task(str(i)) for i in range(9)] + [_task("9", assignedAgents=[])]
    result = _run(validate_agents_assigned, _breakdown(tasks))
    # 0.9 is below the 0.95 bar but above the partial pass score
    assert result.passed is True
    assert result.score == 0.9

    tasks = [_task("A"), _task("B", assignedAgents=[])]
    result = _run(validate_agents_assigned, _breakdown(tasks))
    assert result.passed is False
    assert result.suggested_fix == "Assign appropriate agents based on task type"


def test_short_descriptions_fail():
    tasks = [_task("A", description="too short"), _task("B", description=None)]
    result = _run(validate_task_descriptions, _breakdown(tasks))
    assert result.passed is False
    assert result.score == 0.0


def test_structure_partial_scores():
    no_features = _run(validate_structure, _breakdown([], features=[]))
    assert no_features.passed is False
    assert no_features.score == 0.3

    no_tasks = _run(validate_structure, _breakdown([]))
    assert no_tasks.passed is False
    assert no_tasks.score == 0.5


# ---------------------------------------------------------------------------
# Capability set
# ---------------------------------------------------------------------------
def test_capability_shape():
    capability = ProjectManagerCapability()
    assert capability.agent_id == "project_manager"
    assert [c.id for c in capability.criteria] == [
        "tasks_have_acceptance_criteria",
        "dependencies_valid",
        "balanced_complexity",
        "agents_assigned",
        "task_descriptions",
        "structure_valid",
    ]
    severities = {c.id: (c.severity, c.category) for c in capability.criteria}
    assert severities["dependencies_valid"] == ("critical", "incorrect")
    assert severities["structure_valid"] == ("minor", "quality")


def test_implicit_requirements_from_keywords():
    request = AgentRequest(
        execution_id="e",
        context=AgentContext(
            items=[ContextItem(type="current_task", content={"description": "Implement the payments API"})]
        ),
    )
    implicit = ProjectManagerCapability().infer_implicit_requirements(request)
    assert implicit == [
        "Testing tasks for implemented features",
        "Documentation tasks",
        "API documentation",
        "Error handling",
        "Input validation",
    ]


def test_coverage_prefers_tasks_then_features():
    output = _breakdown([_task("A", title="Checkout page")])
    capability = ProjectManagerCapability()

    by_task = asyncio.run(capability.check_requirement_covered("checkout", output, CTX))
    assert by_task.covered is True
    assert by_task.evidence_location == "A"

    by_feature = asyncio.run(capability.check_requirement_covered("want to pay", output, CTX))
    assert by_feature.evidence_location == "F1"

    missing = asyncio.run(capability.check_requirement_covered("Refund handling", output, CTX))
    assert missing.covered is False
