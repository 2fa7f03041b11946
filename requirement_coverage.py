"""Requirement coverage checks.

Two strategies: keyword overlap against a text surface, and substring lookup
against structured nodes (tasks, features) of an output.
"""

import json
import re
from dataclasses import dataclass
from typing import Iterable

from models import AgentOutput, RequirementCoverage

COVERAGE_THRESHOLD = 0.5
VAGUE_CONFIDENCE = 0.5
MIN_KEYWORD_LENGTH = 4


@dataclass(frozen=True)
class CoverageNode:
    """A structured child of an output that a requirement can map to."""

    id: str
    title: str
    text: str = ""


def _normalise(text: str) -> str:
    """Lower-case, strip punctuation, collapse whitespace."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s]", " ", text)
    return re.sub(r"\s+", " ", text)


def requirement_keywords(requirement: str) -> list[str]:
    """Words of the requirement longer than three characters."""
    return [w for w in _normalise(requirement).split() if len(w) >= MIN_KEYWORD_LENGTH]


def _vague(requirement: str) -> RequirementCoverage:
    return RequirementCoverage(
        requirement=requirement,
        covered=True,
        coverage_details="Requirement too vague to validate",
        confidence=VAGUE_CONFIDENCE,
    )


def output_text(output: AgentOutput, artifact_types: Iterable[str] | None = None) -> str:
    """Textual surface of an output: artifact contents plus the rendered result."""
    wanted = set(artifact_types) if artifact_types is not None else None
    parts = [
        a.content or ""
        for a in output.artifacts
        if wanted is None or a.type in wanted
    ]
    if wanted is None and output.result is not None:
        if isinstance(output.result, str):
            parts.append(output.result)
        else:
            parts.append(json.dumps(output.result, default=str))
    return "\n".join(parts)


def check_keyword_coverage(
    requirement: str, text: str, surface: str = "output"
) -> RequirementCoverage:
    """Declare *requirement* covered when at least half its keywords occur in *text*."""
    keywords = requirement_keywords(requirement)
    if not keywords:
        return _vague(requirement)

    haystack = _normalise(text)
    matched = sum(1 for kw in keywords if kw in haystack)
    ratio = matched / len(keywords)
    covered = ratio >= COVERAGE_THRESHOLD

    if covered:
        details = f"Found in {surface} ({round(ratio * 100)}% keyword match)"
    else:
        details = f"Requirement keywords not found in {surface}"
    return RequirementCoverage(
        requirement=requirement,
        covered=covered,
        coverage_details=details,
        confidence=ratio,
    )


def check_node_coverage(
    requirement: str, nodes: Iterable[CoverageNode]
) -> RequirementCoverage:
    """Look the requirement up by substring in node titles and texts."""
    if not requirement_keywords(requirement):
        return _vague(requirement)

    needle = requirement.lower()
    match = next(
        (n for n in nodes if needle in n.title.lower() or needle in n.text.lower()),
        None,
    )
    if match is None:
        return RequirementCoverage(
            requirement=requirement,
            covered=False,
            coverage_details="No structured item addresses this requirement",
            confidence=0.2,
        )
    return RequirementCoverage(
        requirement=requirement,
        covered=True,
        coverage_details=f"Covered by: {match.title}",
        evidence_location=match.id,
        confidence=0.8,
    )
