"""
Model router for selecting models per feature and building the configured provider.
"""
import logging
from typing import Optional
from app.core.config import OPENAI_API_KEY, PLANNER_MODEL
from app.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

# Feature -> model mapping
MODEL_ROUTING = {
    "learning_plan": PLANNER_MODEL,
}

DEFAULT_MODEL = "gpt-4o-mini"


def get_model_for_feature(feature: str) -> str:
    """
    Get appropriate model for a feature.

    Args:
        feature: Feature name (e.g., "learning_plan")

    Returns:
        Model identifier string
    """
    return MODEL_ROUTING.get(feature, DEFAULT_MODEL)


def is_model_available() -> bool:
    """Check if a model provider is configured."""
    return bool(OPENAI_API_KEY)


def get_default_provider() -> Optional[LLMProvider]:
    """
    Build the configured LLM provider.

    Returns None when no credentials are configured so callers can use their fallback path.
    """
    if not is_model_available():
        logger.info("OPENAI_API_KEY not configured - AI plan generation disabled, using fallback plans")
        return None
    from app.llm.openai_provider import OpenAIProvider
    try:
        return OpenAIProvider()
    except ValueError:
        logger.warning("OpenAI provider not available - AI plan generation disabled")
        return None
