"""Shared configuration and utilities for the self-review gate."""

import functools
import json
import logging
import os
import time
from typing import Any, TypeVar

from dotenv import load_dotenv
from google import genai
from google.api_core.exceptions import (
    DeadlineExceeded,
    InternalServerError,
    ServiceUnavailable,
    TooManyRequests,
)
from pydantic import BaseModel, ValidationError

from models import SelfReviewConfig

# ---------------------------------------------------------------------------
# Environment & logging (initialised once on first import)
# ---------------------------------------------------------------------------
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
USE_MOCK: bool = os.getenv("USE_MOCK", "false").lower() == "true"
DEFAULT_MODEL: str = "gemini-2.5-flash-lite"

# Environment variable -> SelfReviewConfig field
_CONFIG_ENV_VARS: dict[str, str] = {
    "SELF_REVIEW_ENABLED": "enabled",
    "SELF_REVIEW_MAX_ITERATIONS": "max_iterations",
    "SELF_REVIEW_QUALITY_THRESHOLD": "quality_threshold",
    "SELF_REVIEW_COMPLETENESS_THRESHOLD": "completeness_threshold",
    "SELF_REVIEW_MAX_CRITICAL_GAPS": "max_critical_gaps_before_escalate",
    "SELF_REVIEW_ESCALATE_AFTER": "escalate_after_iterations",
    "SELF_REVIEW_ESCALATE_ON_CRITICAL": "escalate_on_critical_gaps",
    "SELF_REVIEW_CALL_TIMEOUT": "call_timeout_seconds",
}

_DISABLED_VALUES = {"", "none", "off", "0"}

# Gemini errors worth retrying (transient / rate-limit)
_RETRYABLE_GEMINI_ERRORS: tuple[type[Exception], ...] = (
    ServiceUnavailable,
    TooManyRequests,
    DeadlineExceeded,
    InternalServerError,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Review configuration
# ---------------------------------------------------------------------------
def config_from_env() -> dict[str, Any]:
    """Collect ``SELF_REVIEW_*`` overrides from the environment.

    Values are passed through as strings; pydantic does the coercion and
    rejects anything out of range.
    """
    values: dict[str, Any] = {}
    for env_name, field_name in _CONFIG_ENV_VARS.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        raw = raw.strip()
        if field_name == "call_timeout_seconds" and raw.lower() in _DISABLED_VALUES:
            values[field_name] = None
        else:
            values[field_name] = raw
    return values


def load_review_config(
    base: SelfReviewConfig | dict[str, Any] | None = None, **overrides: Any
) -> SelfReviewConfig:
    """Build a ``SelfReviewConfig``: defaults < environment < *base* < *overrides*.

    Raises ``pydantic.ValidationError`` when the merged values are invalid.
    """
    merged: dict[str, Any] = config_from_env()
    if isinstance(base, SelfReviewConfig):
        merged.update(base.model_dump(exclude_unset=True))
    elif base:
        merged.update(base)
    merged.update(overrides)
    try:
        return SelfReviewConfig.model_validate(merged)
    except ValidationError as e:
        logger.error("Invalid self-review configuration: %s", e)
        raise


# ---------------------------------------------------------------------------
# Retry decorator
# ---------------------------------------------------------------------------
def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    retryable: tuple[type[Exception], ...] = (Exception,),
):
    """Decorator: retry a function with exponential back-off."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            last_exc: Exception | None = None
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except retryable as exc:
                    last_exc = exc
                    if attempt < max_retries - 1:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Attempt %d/%d for %s failed: %s. Retrying in %.1fs...",
                            attempt + 1,
                            max_retries,
                            func.__name__,
                            exc,
                            delay,
                        )
                        time.sleep(delay)
            raise last_exc  # type: ignore[misc]

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Cached API clients
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=1)
def get_gemini_client() -> genai.Client:
    """Return a cached Gemini client (created once per process)."""
    api_key = os.getenv("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY not found. Set it in .env file.")
    return genai.Client(api_key=api_key)


# ---------------------------------------------------------------------------
# Gemini API call (with retry)
# ---------------------------------------------------------------------------
@with_retry(max_retries=3, base_delay=2.0, retryable=_RETRYABLE_GEMINI_ERRORS)
def call_gemini(prompt: str, model: str = DEFAULT_MODEL) -> str:
    """Call Gemini and return the raw response text.

    Retries automatically on transient API errors.
    """
    client = get_gemini_client()
    response = client.models.generate_content(
        model=model,
        contents=prompt,
        config={"response_mime_type": "application/json"},
    )
    return response.text


# ---------------------------------------------------------------------------
# LLM response parsing
# ---------------------------------------------------------------------------
def parse_llm_json(text: str, model_cls: type[ModelT]) -> ModelT | None:
    """Extract the first JSON object from *text* and validate it as *model_cls*."""
    start = text.find("{")
    if start == -1:
        logger.warning("No JSON object found in LLM response")
        return None

    try:
        decoder = json.JSONDecoder()
        obj, _ = decoder.raw_decode(text[start:])
        return model_cls.model_validate(obj)
    except json.JSONDecodeError as e:
        logger.warning("JSON decode error: %s", e)
        return None
    except ValidationError as e:
        logger.warning("Pydantic validation error: %s", e)
        return None
