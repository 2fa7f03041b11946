import asyncio

import pytest

from models import AgentContext, AgentOutput, AgentRequest, Artifact, ContextItem, ReviewContext
from ui_designer_criteria import (
    UIDesignerCapability,
    extract_screens,
    validate_accessibility,
    validate_component_structure,
    validate_design_tokens,
    validate_responsive,
    validate_screens,
)

CTX = ReviewContext()

STYLESHEET = """
:root { --color-primary: #2255ff; --space: 8px; }
.layout { display: flex; gap: var(--space); }
@media (max-width: 768px) { .layout { flex-direction: column; } }
"""

MOCKUP = """
<header><nav>Menu</nav></header>
<main>
  <section>
    <label for="email">Email</label>
    <input id="email" aria-label="Email">
    <button aria-label="Log in">Log in</button>
  </section>
</main>
"""


def _request(description: str = "") -> AgentRequest:
    items = [ContextItem(type="current_task", content={"description": description})] if description else []
    return AgentRequest(execution_id="exec-1", context=AgentContext(items=items))


def _output(*artifacts: Artifact) -> AgentOutput:
    return AgentOutput(agent_id="ui_designer", artifacts=list(artifacts))


def _mockup(path="mockups/login.html", content=MOCKUP) -> Artifact:
    return Artifact(type="mockup", path=path, content=content)


def _stylesheet(content=STYLESHEET) -> Artifact:
    return Artifact(type="stylesheet", path="styles/main.css", content=content)


def _run(validator, output, request=None):
    return asyncio.run(validator(output, request or _request(), CTX))


def test_extract_screens():
    request = _request("Create a login page and a dashboard screen, plus a view for settings")
    assert extract_screens(request) == ["login", "dashboard", "settings"]
    assert extract_screens(_request()) == []


def test_screens_missing_and_present():
    request = _request("Design the login page and the dashboard page")
    result = _run(validate_screens, _output(_mockup()), request)
    assert result.passed is False
    assert result.score == 0.5
    assert result.details == "Missing screens: dashboard"

    both = _output(_mockup(), _mockup("mockups/Dashboard.html"))
    assert _run(validate_screens, both, request).passed is True


def test_polished_design_passes_everything():
    output = _output(_mockup(), _stylesheet())
    for validator in (
        validate_screens,
        validate_design_tokens,
        validate_accessibility,
        validate_responsive,
        validate_component_structure,
    ):
        result = _run(validator, output, _request("Create a login page"))
        assert result.passed is True, validator.__name__


def test_no_design_artifacts_passes_everything():
    output = _output()
    for validator in (
        validate_screens,
        validate_design_tokens,
        validate_accessibility,
        validate_responsive,
        validate_component_structure,
    ):
        result = _run(validator, output)
        assert result.passed is True
        assert result.score == 1.0


def test_design_tokens_partial_and_hardcoded():
    no_root = _run(validate_design_tokens, _output(_stylesheet(".a { color: var(--x); }")))
    assert no_root.passed is False
    assert no_root.score == 0.7

    colors = " ".join(f".c{i} {{ color: #12345{i}; }}" for i in range(6))
    hardcoded = _run(validate_design_tokens, _output(_stylesheet(colors)))
    assert hardcoded.passed is False
    assert hardcoded.details == "6 hardcoded color values found"


def test_accessibility_ratio():
    content = '<button aria-label="ok">ok</button><input name="q"><a href="/">home</a><article>x</article>'
    result = _run(validate_accessibility, _output(_mockup(content=content)))
    assert result.passed is False
    assert result.score == pytest.approx(1 / 3)


def test_responsive_indicators():
    one = _run(validate_responsive, _output(_stylesheet(".a { display: flex; }")))
    assert one.passed is False
    assert one.score == pytest.approx(1 / 3)

    none = _run(validate_responsive, _output(_stylesheet(".a { color: red; }")))
    assert none.passed is False
    assert none.details == "No responsive design patterns found"


def test_component_structure_div_soup():
    soup = "<div>" * 20 + "<section>x</section>"
    result = _run(validate_component_structure, _output(_mockup(content=soup)))
    assert result.passed is False
    assert result.score == 0.2


def test_implicit_requirements():
    implicit = UIDesignerCapability().infer_implicit_requirements(_request("A login form in a modal"))
    assert implicit == [
        "Form validation states (error, success)",
        "Form submission feedback",
        "Password visibility toggle",
        "Forgot password link",
        "Error message display",
        "Close button",
        "Overlay backdrop",
        "Focus trap",
    ]


def test_coverage_only_reads_design_artifacts():
    capability = UIDesignerCapability()
    output = _output(
        _mockup(content="<button>Forgot password</button>"),
        Artifact(type="documentation", path="README.md", content="Password visibility toggle"),
    )
    hit = asyncio.run(capability.check_requirement_covered("Forgot password link", output, CTX))
    assert hit.covered is True

    miss = asyncio.run(capability.check_requirement_covered("Password visibility toggle", output, CTX))
    assert miss.covered is False
