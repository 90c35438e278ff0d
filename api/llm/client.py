"""
LLM backend for FAQ answer synthesis.

Talks to any OpenAI-compatible chat completions endpoint through
``langchain_openai.ChatOpenAI``. The default points at Gemini's
OpenAI-compatible API. Failures raise ``SynthesisError``; the resilience
wrapper in ``api.llm.synthesizer`` turns them into ``None``.
"""

from typing import Any, Dict, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_openai import ChatOpenAI

from api.composer.prompts import FAQ_SYNTHESIS_TEMPLATE
from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


class SynthesisError(Exception):
    """Raised when the LLM backend fails to produce text."""

    pass


class SynthesisBackend:
    """Formats the synthesis prompt and calls the chat model."""

    def __init__(self, llm: BaseChatModel, model_name: str = "unknown"):
        self.llm = llm
        self.model_name = model_name
        self.chain = FAQ_SYNTHESIS_TEMPLATE | llm

    async def complete(self, inputs: Dict[str, Any]) -> str:
        """Run the prompt chain and return the answer text."""
        try:
            response = await self.chain.ainvoke(inputs)
        except Exception as e:
            raise SynthesisError(f"{type(e).__name__}: {e}") from e

        content = getattr(response, "content", response)
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        if not isinstance(content, str) or not content.strip():
            raise SynthesisError("Empty response from LLM")

        return content.strip()


def create_synthesis_backend(settings: Optional[Settings] = None) -> Optional[SynthesisBackend]:
    """Build the configured backend, or None when no API key is set."""
    settings = settings or get_settings()

    if not settings.llm_api_key:
        logger.warning("No LLM API key configured, synthesis disabled")
        return None

    llm = ChatOpenAI(
        model=settings.llm_model,
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        max_retries=0,  # every failure must reach the circuit breaker
    )
    logger.info("LLM synthesis backend configured", model=settings.llm_model)
    return SynthesisBackend(llm, model_name=settings.llm_model)
