"""
UI Designer review criteria.

Inspects ``mockup`` (HTML) and ``stylesheet`` (CSS) artifacts for screen
coverage, design-token usage, accessibility, responsiveness and semantic
structure. Patterns are simple regexes over artifact content; no files are read.
"""

import re

from criteria import (
    CapabilitySet,
    Criterion,
    criterion_failed,
    criterion_partial,
    criterion_passed,
    nothing_to_validate,
)
from models import AgentOutput, AgentRequest, CriterionResult, RequirementCoverage, ReviewContext
from requirement_coverage import check_keyword_coverage, output_text
from requirement_extractor import get_task_description

MOCKUP = "mockup"
STYLESHEET = "stylesheet"

_SCREEN_PATTERNS = (
    re.compile(r"(\w+)\s+(?:page|screen|view)", re.IGNORECASE),
    re.compile(r"(?:page|screen|view)\s+for\s+(\w+)", re.IGNORECASE),
    re.compile(r"create\s+(?:a\s+)?(\w+)\s+(?:page|screen|view|mockup)", re.IGNORECASE),
)
_HEX_COLOR_RE = re.compile(r"#[0-9a-fA-F]{3,8}\b")
_INTERACTIVE_RE = re.compile(r"<(?:button|input|a|select|textarea)\b", re.IGNORECASE)
_ARIA_RE = re.compile(r"aria-|role=", re.IGNORECASE)
_LABEL_RE = re.compile(r"<label\b", re.IGNORECASE)
_FOR_RE = re.compile(r"for=[\"']", re.IGNORECASE)
_SEMANTIC_RE = re.compile(
    r"<(?:header|footer|nav|main|article|section|aside|figure)\b", re.IGNORECASE
)
_DIV_RE = re.compile(r"<div\b", re.IGNORECASE)

MAX_HARDCODED_COLORS = 5
ACCESSIBILITY_PASS_RATIO = 0.8


def extract_screens(request: AgentRequest) -> list[str]:
    """Screen names mentioned in the task ("login page", "view for settings")."""
    description = get_task_description(request)
    if not description:
        return []

    screens: list[str] = []
    for pattern in _SCREEN_PATTERNS:
        for match in pattern.finditer(description):
            name = match.group(1).lower()
            if len(name) > 2:
                screens.append(name)
    return list(dict.fromkeys(screens))


def _contents(output: AgentOutput, *types: str) -> list[str]:
    return [a.content or "" for a in output.artifacts if a.type in types]


# =============================================================================
# CRITERIA
# =============================================================================
async def validate_screens(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    requested = extract_screens(request)
    if not requested:
        return criterion_passed("No specific screens requested")

    paths = [a.path.lower() for a in output.artifacts_of(MOCKUP)]
    missing = [s for s in requested if not any(s in p for p in paths)]
    if not missing:
        return criterion_passed(f"All {len(requested)} screens created")

    listed = ", ".join(missing)
    return criterion_failed(
        f"Missing screens: {listed}",
        f"Create mockups for: {listed}",
        1 - len(missing) / len(requested),
        "large" if len(missing) > 2 else "medium",
    )


async def validate_design_tokens(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    contents = _contents(output, STYLESHEET, MOCKUP)
    if not contents:
        return nothing_to_validate("stylesheets or mockups")

    text = "\n".join(contents)
    uses_variables = "var(--" in text or "$" in text

    if uses_variables and ":root" in text:
        return criterion_passed("Design tokens properly defined and applied")
    if uses_variables:
        return criterion_partial(
            "CSS variables used but :root not found",
            0.7,
            "Define design tokens in :root selector",
            "small",
        )

    hardcoded = len(_HEX_COLOR_RE.findall(text))
    if hardcoded > MAX_HARDCODED_COLORS:
        return criterion_failed(
            f"{hardcoded} hardcoded color values found",
            "Replace hardcoded colors with design token CSS variables",
            0.3,
        )

    return criterion_partial(
        "Limited design token usage detected",
        0.5,
        "Use CSS variables (var(--color-*)) for colors, fonts, and spacing",
        "medium",
    )


async def validate_accessibility(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    mockups = _contents(output, MOCKUP)
    if not mockups:
        return nothing_to_validate("mockups")

    interactive = 0
    accessible = 0
    for content in mockups:
        elements = len(_INTERACTIVE_RE.findall(content))
        hints = (
            len(_ARIA_RE.findall(content))
            + len(_LABEL_RE.findall(content))
            + len(_FOR_RE.findall(content))
        )
        interactive += elements
        accessible += min(elements, hints)

    if interactive == 0:
        return criterion_passed("No interactive elements found")

    score = accessible / interactive
    if score >= ACCESSIBILITY_PASS_RATIO:
        return criterion_passed(
            f"{round(score * 100)}% of interactive elements have accessibility attributes"
        )

    return criterion_partial(
        f"{round((1 - score) * 100)}% of interactive elements missing accessibility attributes",
        score,
        "Add aria-label, role, and label elements to interactive components",
        "small",
    )


async def validate_responsive(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    contents = _contents(output, STYLESHEET, MOCKUP)
    if not contents:
        return nothing_to_validate("stylesheets or mockups")

    text = "\n".join(contents)
    indicators = sum(
        (
            any(s in text for s in ("@media", "min-width", "max-width")),
            any(s in text for s in ("flex", "grid")),
            any(s in text for s in ("viewport", "vw", "vh")),
        )
    )

    if indicators >= 2:
        return criterion_passed("Responsive design patterns detected")
    if indicators == 1:
        return criterion_partial(
            "Limited responsive design patterns",
            indicators / 3,
            "Add media queries for mobile (< 768px) and tablet (< 1024px) breakpoints",
            "medium",
        )
    return criterion_failed(
        "No responsive design patterns found",
        "Add media queries, flexbox/grid layouts, and viewport-relative units",
    )


async def validate_component_structure(
    output: AgentOutput, request: AgentRequest, context: ReviewContext
) -> CriterionResult:
    mockups = _contents(output, MOCKUP)
    if not mockups:
        return nothing_to_validate("mockups")

    semantic = sum(len(_SEMANTIC_RE.findall(c)) for c in mockups)
    divs = sum(len(_DIV_RE.findall(c)) for c in mockups)
    total = semantic + divs
    if total == 0:
        return criterion_passed("No structural elements found")

    ratio = semantic / total
    counts = f"({semantic} semantic, {divs} div)"
    if ratio >= 0.3:
        return criterion_passed(f"Good semantic structure {counts}")
    if ratio >= 0.1:
        return criterion_partial(
            f"Limited semantic structure {counts}",
            ratio * 2,
            "Replace generic divs with semantic elements like header, nav, main, section",
            "small",
        )
    return criterion_failed(
        f"Poor semantic structure {counts}",
        "Use semantic HTML elements: header, footer, nav, main, article, section, aside",
        0.2,
        "small",
    )


UI_DESIGNER_CRITERIA: tuple[Criterion, ...] = (
    Criterion(
        id="all_screens_created",
        name="All Screens Created",
        description="All requested screens have corresponding mockups",
        severity="critical",
        category="missing",
        validate=validate_screens,
    ),
    Criterion(
        id="design_tokens_applied",
        name="Design Tokens Applied",
        description="Design tokens are consistently applied to all components",
        severity="major",
        category="quality",
        validate=validate_design_tokens,
    ),
    Criterion(
        id="accessibility_attributes",
        name="Accessibility Attributes",
        description="ARIA labels and roles present on interactive elements",
        severity="major",
        category="quality",
        validate=validate_accessibility,
    ),
    Criterion(
        id="responsive_design",
        name="Responsive Design",
        description="Mobile and desktop layouts considered",
        severity="major",
        category="incomplete",
        validate=validate_responsive,
    ),
    Criterion(
        id="component_structure",
        name="Component Structure",
        description="HTML uses semantic elements and clear structure",
        severity="minor",
        category="quality",
        validate=validate_component_structure,
    ),
)


# =============================================================================
# CAPABILITY SET
# =============================================================================
_IMPLICIT_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (("form",), ("Form validation states (error, success)", "Form submission feedback")),
    (
        ("login", "sign in"),
        ("Password visibility toggle", "Forgot password link", "Error message display"),
    ),
    (("dashboard",), ("Navigation menu", "User profile area", "Loading states")),
    (("table", "list"), ("Empty state display", "Pagination or infinite scroll")),
    (("modal", "dialog"), ("Close button", "Overlay backdrop", "Focus trap")),
)


class UIDesignerCapability(CapabilitySet):
    """Mockup and stylesheet review for the UI designer agent."""

    agent_id = "ui_designer"
    criteria = UI_DESIGNER_CRITERIA

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
        text = output_text(output, (MOCKUP, STYLESHEET))
        return check_keyword_coverage(requirement, text, surface="design artifacts")


def create_ui_designer_capability() -> UIDesignerCapability:
    return UIDesignerCapability()
