import asyncio
import json

import gap_addresser
from gap_addresser import (
    build_gap_addressing_prompt,
    make_gemini_gap_addresser,
    merge_improvements,
    parse_improvements,
    summarize_output,
)
from models import AgentOutput, Artifact, ExecutionMetrics, Gap, RoutingHints


def _output(**overrides) -> AgentOutput:
    values = {
        "agent_id": "ui_designer",
        "result": {"screens": ["login"], "version": 1},
        "artifacts": [Artifact(type="mockup", path="mockups/login.html", content="<main></main>")],
        "metrics": ExecutionMetrics(tokens_used=100, llm_calls=1, duration_ms=50),
    }
    values.update(overrides)
    return AgentOutput(**values)


def _gap() -> Gap:
    return Gap(
        severity="critical",
        category="missing",
        description="All Screens Created: Missing screens: dashboard",
        suggested_fix="Create mockups for: dashboard",
        affected_requirement="Dashboard screen",
    )


def test_prompt_contains_task_gaps_and_summary():
    gap = _gap()
    prompt = build_gap_addressing_prompt("Design a {login} page", _output(), [gap])

    assert "Design a {login} page" in prompt
    assert "1. [CRITICAL] All Screens Created: Missing screens: dashboard" in prompt
    assert f"Gap id: {gap.id}" in prompt
    assert "Requirement: Dashboard screen" in prompt
    assert "Artifacts: mockup:mockups/login.html" in prompt
    assert '{"improvements":[' in prompt


def test_summary_is_bounded():
    many = [Artifact(type="mockup", path=f"m{i}.html") for i in range(12)]
    summary = summarize_output(_output(artifacts=many, result={"blob": "x" * 10_000}))
    assert "... and 2 more" in summary
    assert len(summary) <= 5000


def test_merge_improvements():
    current = _output(routing_hints=RoutingHints(needs_approval=True, notes="keep"))
    patch = AgentOutput(
        agent_id="ui_designer",
        result={"version": 2},
        artifacts=[
            Artifact(type="mockup", path="mockups/login.html", content="<main>v2</main>"),
            Artifact(type="mockup", path="mockups/dashboard.html", content="<main>dash</main>"),
        ],
        metrics=ExecutionMetrics(tokens_used=40, llm_calls=1),
    )

    merged = merge_improvements(current, patch)

    assert merged.result == {"screens": ["login"], "version": 2}
    assert [a.path for a in merged.artifacts] == ["mockups/login.html", "mockups/dashboard.html"]
    assert merged.artifacts[0].content == "<main>v2</main>"
    assert merged.metrics.tokens_used == 140
    assert merged.metrics.llm_calls == 2
    assert merged.metrics.duration_ms == 50
    assert merged.routing_hints.needs_approval is True
    assert merged.routing_hints.notes == "keep"
    # inputs untouched
    assert current.artifacts[0].content == "<main></main>"


def test_parse_improvements_accepts_camel_case():
    data = parse_improvements(
        '{"improvements":[{"gapId":"g1","fixed":true,"description":"done"}],'
        '"updatedArtifacts":[{"path":"a.css","content":"x","type":"stylesheet"}]}'
    )
    assert data is not None
    assert data.improvements[0].gap_id == "g1"
    assert data.updated_artifacts[0].type == "stylesheet"
    assert parse_improvements("nope") is None


def test_gemini_addresser_applies_response(monkeypatch):
    calls = {}

    def fake_call_gemini(prompt, model):
        calls["prompt"] = prompt
        calls["model"] = model
        return json.dumps(
            {
                "improvements": [{"gapId": "g", "fixed": True, "description": "added dashboard"}],
                "updatedArtifacts": [
                    {"path": "mockups/dashboard.html", "content": "<main>dash</main>", "type": "mockup"}
                ],
            }
        )

    monkeypatch.setattr(gap_addresser, "USE_MOCK", False)
    monkeypatch.setattr(gap_addresser, "call_gemini", fake_call_gemini)

    address = make_gemini_gap_addresser("Design login and dashboard pages", model="test-model")
    fixed = asyncio.run(address(_output(), [_gap()]))

    assert calls["model"] == "test-model"
    assert "Design login and dashboard pages" in calls["prompt"]
    assert [a.path for a in fixed.artifacts] == ["mockups/login.html", "mockups/dashboard.html"]
    assert fixed.metrics.llm_calls == 2
    assert fixed.result == {"screens": ["login"], "version": 1}


def test_gemini_addresser_keeps_output_on_bad_response(monkeypatch):
    monkeypatch.setattr(gap_addresser, "USE_MOCK", False)
    monkeypatch.setattr(gap_addresser, "call_gemini", lambda prompt, model: "I cannot help")

    output = _output()
    assert asyncio.run(make_gemini_gap_addresser("task")(output, [_gap()])) is output


def test_gemini_addresser_skips_call_without_gaps_or_in_mock_mode(monkeypatch):
    def boom(prompt, model):
        raise AssertionError("should not be called")

    monkeypatch.setattr(gap_addresser, "call_gemini", boom)
    output = _output()

    monkeypatch.setattr(gap_addresser, "USE_MOCK", False)
    assert asyncio.run(make_gemini_gap_addresser("task")(output, [])) is output

    monkeypatch.setattr(gap_addresser, "USE_MOCK", True)
    assert asyncio.run(make_gemini_gap_addresser("task")(output, [_gap()])) is output
