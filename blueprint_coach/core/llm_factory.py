"""Chat model factory.

Builds the LangChain chat model used for idea / what-if suggestions. The
conversation engine itself never needs a model, so a missing key or a failed
client construction only puts suggestions into degraded mode (template
cards), it never stops the app.
"""

import logging
from typing import Any, Optional, Tuple

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI

from blueprint_coach.config.settings import EngineSettings, get_settings

logger = logging.getLogger(__name__)


def create_llm(settings: Optional[EngineSettings] = None) -> Tuple[Optional[Any], bool]:
    """Create the chat model for the configured provider.

    Args:
        settings: Engine settings (provider, model names, keys)

    Returns:
        (llm, is_degraded). ``llm`` is None in degraded mode.
    """
    settings = settings or get_settings()
    provider = settings.llm_provider

    try:
        if provider == "openai":
            if not settings.openai_api_key:
                logger.info("OPENAI_API_KEY not set, suggestions will use templates")
                return None, True
            llm = ChatOpenAI(
                model=settings.openai_model,
                api_key=settings.openai_api_key,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
            )
            logger.debug(f"LLM initialized with OpenAI model={settings.openai_model}")
            return llm, False

        if provider != "anthropic":
            logger.warning(f"Unknown LLM_PROVIDER {provider!r}, falling back to anthropic")
        if not settings.anthropic_api_key:
            logger.info("ANTHROPIC_API_KEY not set, suggestions will use templates")
            return None, True
        llm = ChatAnthropic(
            anthropic_api_key=settings.anthropic_api_key,
            model_name=settings.anthropic_model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
        logger.debug(f"LLM initialized with Anthropic model={settings.anthropic_model}")
        return llm, False
    except Exception as e:
        logger.warning(f"LLM initialization failed, template suggestions will be used: {e}")
        return None, True
