"""Review context builder."""

from typing import Any, Iterable

from models import AgentRequest, ReviewContext, SelfReviewResult
from requirement_extractor import CURRENT_TASK, get_acceptance_criteria

PROJECT_CONFIG = "project_config"
DESIGN_TOKENS = "design_tokens"


def _dict_content(request: AgentRequest, item_type: str) -> dict[str, Any] | None:
    item = request.context.find(item_type)
    if item is not None and isinstance(item.content, dict):
        return dict(item.content)
    return None


def build_review_context(
    request: AgentRequest,
    previous_reviews: Iterable[SelfReviewResult] = (),
) -> ReviewContext:
    """Assemble the read-only context criteria may consult for *request*."""
    acceptance = get_acceptance_criteria(request) if request.context.find(CURRENT_TASK) else []
    return ReviewContext(
        previous_outputs=list(request.context.previous_outputs),
        previous_reviews=list(previous_reviews),
        project_config=_dict_content(request, PROJECT_CONFIG),
        design_tokens=_dict_content(request, DESIGN_TOKENS),
        acceptance_criteria=acceptance or None,
    )
