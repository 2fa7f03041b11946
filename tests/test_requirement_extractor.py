import asyncio

from criteria import CapabilitySet
from models import AgentContext, AgentRequest, ContextItem
from requirement_coverage import check_keyword_coverage
from requirement_extractor import (
    extract_explicit_requirements,
    get_acceptance_criteria,
    get_task_description,
    merge_requirement_sources,
)
from review_context import build_review_context


def _request(task=None, prompt="", extra_items=()) -> AgentRequest:
    items = list(extra_items)
    if task is not None:
        items.insert(0, ContextItem(type="current_task", content=task))
    return AgentRequest(execution_id="exec-1", prompt=prompt, context=AgentContext(items=items))


def test_task_description_lookup_order():
    assert get_task_description(_request({"description": "d", "prompt": "p"})) == "d"
    assert get_task_description(_request({"prompt": "p"})) == "p"
    assert get_task_description(_request("plain text task")) == "plain text task"
    assert get_task_description(_request({"other": 1}, prompt="fallback")) == "fallback"
    assert get_task_description(_request(prompt="only prompt")) == "only prompt"
    assert get_task_description(_request()) == ""


def test_explicit_bullets_and_numbered_lines():
    text = "Build it:\n- first thing\n* second thing\n• third thing\n1. numbered one\n2) numbered two"
    reqs = extract_explicit_requirements(text)
    assert reqs[:5] == ["first thing", "second thing", "third thing", "numbered one", "numbered two"]


def test_modal_clause_keeps_text_after_the_verb():
    reqs = extract_explicit_requirements("The app must support offline mode. It is blue.")
    assert reqs == ["support offline mode"]

    reqs = extract_explicit_requirements("Users NEED TO reset passwords")
    assert reqs == ["reset passwords"]

    reqs = extract_explicit_requirements("Admins needs to approve. Exports required weekly.")
    assert reqs == ["approve", "weekly"]


def test_modal_requirement_covered_without_counting_the_verb():
    [requirement] = extract_explicit_requirements("The header should display logout.")
    assert requirement == "display logout"

    coverage = check_keyword_coverage(requirement, "<nav><button>Logout</button></nav>")
    assert coverage.covered is True
    assert coverage.confidence == 0.5


def test_overlong_requirements_rejected():
    assert extract_explicit_requirements("- " + "x" * 501) == []
    assert extract_explicit_requirements("") == []


def test_acceptance_criteria_from_either_key():
    camel = _request({"acceptanceCriteria": ["Shows errors", 3, "  ", "Saves drafts"]})
    snake = _request({"acceptance_criteria": ["Logs out"]})
    assert get_acceptance_criteria(camel) == ["Shows errors", "Saves drafts"]
    assert get_acceptance_criteria(snake) == ["Logs out"]


def test_merge_first_occurrence_wins():
    merged = merge_requirement_sources(["a", "b"], ["b", "c"], ["a", "d"])
    assert list(merged) == ["a", "b", "c", "d"]
    assert merged == {
        "a": "explicit",
        "b": "explicit",
        "c": "implicit",
        "d": "acceptance-criteria",
    }


def test_capability_extract_requirements_dedupes():
    class Implicit(CapabilitySet):
        agent_id = "implicit"

        def infer_implicit_requirements(self, request):
            return ["Error handling", "first thing"]

    request = _request(
        {"description": "- first thing\n- first thing", "acceptanceCriteria": ["Error handling"]}
    )
    sources = asyncio.run(Implicit().requirement_sources(request))

    assert sources == {"first thing": "explicit", "Error handling": "implicit"}
    assert asyncio.run(Implicit().extract_requirements(request)) == ["first thing", "Error handling"]


def test_build_review_context():
    request = _request(
        {"description": "x", "acceptanceCriteria": ["Works offline"]},
        extra_items=[
            ContextItem(type="project_config", content={"name": "shop"}),
            ContextItem(type="design_tokens", content={"primary": "#000"}),
        ],
    )
    ctx = build_review_context(request)

    assert ctx.project_config == {"name": "shop"}
    assert ctx.design_tokens == {"primary": "#000"}
    assert ctx.acceptance_criteria == ["Works offline"]
    assert ctx.previous_reviews == []


def test_build_review_context_without_optional_items():
    ctx = build_review_context(_request(prompt="hello"))
    assert ctx.project_config is None
    assert ctx.design_tokens is None
    assert ctx.acceptance_criteria is None
