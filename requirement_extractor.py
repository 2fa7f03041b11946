"""Requirement extraction from an agent request.

Requirements come from three places:

1. Explicit: bullet lines, numbered lines and modal clauses
   ("must ...", "should ...") in the task description.
2. Implicit: keyword heuristics supplied per capability set.
3. Acceptance criteria carried on the ``current_task`` context item.
"""

import re
from typing import Any, Iterable

from models import MAX_REQUIREMENT_LENGTH, AgentRequest, RequirementSource

CURRENT_TASK = "current_task"

_BULLET_RE = re.compile(r"^\s*[-*•]\s*(.+)$", re.MULTILINE)
_NUMBERED_RE = re.compile(r"^\s*\d+[.)]\s*(.+)$", re.MULTILINE)
_MODAL_RE = re.compile(
    r"\b(?:should|must|need to|needs to|require[sd]?)\s+(.+?)(?:\.|$)",
    re.IGNORECASE | re.MULTILINE,
)


def _within_bounds(text: str) -> bool:
    return 0 < len(text) <= MAX_REQUIREMENT_LENGTH


def _task_content(request: AgentRequest) -> Any:
    item = request.context.find(CURRENT_TASK)
    return item.content if item else None


def get_task_description(request: AgentRequest) -> str:
    """Return the free-text description of the task being worked on.

    Looks at the ``current_task`` context item (``description`` then
    ``prompt``); falls back to the request's own prompt text.
    """
    content = _task_content(request)
    if isinstance(content, dict):
        for key in ("description", "prompt"):
            value = content.get(key)
            if isinstance(value, str):
                return value
    elif isinstance(content, str):
        return content
    return request.prompt or ""


def extract_explicit_requirements(text: str) -> list[str]:
    """Pull bullet, numbered and modal-verb requirements out of *text*."""
    if not text:
        return []

    requirements: list[str] = []
    for pattern in (_BULLET_RE, _NUMBERED_RE):
        for match in pattern.finditer(text):
            cleaned = match.group(1).strip()
            if _within_bounds(cleaned):
                requirements.append(cleaned)

    for match in _MODAL_RE.finditer(text):
        clause = match.group(1).strip()
        if _within_bounds(clause):
            requirements.append(clause)

    return requirements


def get_acceptance_criteria(request: AgentRequest) -> list[str]:
    """Acceptance criteria listed on any ``current_task`` item."""
    criteria: list[str] = []
    for item in request.context.items:
        if item.type != CURRENT_TASK or not isinstance(item.content, dict):
            continue
        raw = item.content.get("acceptanceCriteria", item.content.get("acceptance_criteria"))
        if not isinstance(raw, list):
            continue
        for entry in raw:
            if isinstance(entry, str) and _within_bounds(entry.strip()):
                criteria.append(entry.strip())
    return criteria


def merge_requirement_sources(
    explicit: Iterable[str],
    implicit: Iterable[str],
    from_context: Iterable[str],
) -> dict[str, RequirementSource]:
    """Union the three requirement sets, first occurrence wins."""
    merged: dict[str, RequirementSource] = {}
    groups: tuple[tuple[Iterable[str], RequirementSource], ...] = (
        (explicit, "explicit"),
        (implicit, "implicit"),
        (from_context, "acceptance-criteria"),
    )
    for requirements, source in groups:
        for requirement in requirements:
            merged.setdefault(requirement, source)
    return merged
