"""
Resilience wrapper around the LLM synthesis backend.

Every failure mode (missing key, prompt injection, usage cap, open circuit,
timeout, backend error, rejected output) collapses to ``None``. The routing
engine treats ``None`` uniformly as "answer with the stored FAQ".
"""

import asyncio
from typing import List, Optional, Sequence

import structlog

from api.composer.prompts import build_synthesis_inputs, format_faq_entry
from api.composer.quality_gates import InputGate, OutputGate
from api.llm.circuit_breaker import CircuitBreaker, DailyUsageCap
from api.llm.client import SynthesisBackend, create_synthesis_backend
from libs.common.settings import Settings, get_settings
from libs.models.chat import FaqContext

logger = structlog.get_logger(__name__)


class ResilientSynthesizer:
    """
    Guards a ``SynthesisBackend`` with input/output gates, a circuit breaker,
    a daily usage cap, a per-call timeout and context truncation.

    Usage:
        synthesizer = ResilientSynthesizer(backend)
        text = await synthesizer.synthesize(query, faqs, history)  # str or None
    """

    def __init__(
        self,
        backend: Optional[SynthesisBackend],
        breaker: Optional[CircuitBreaker] = None,
        usage_cap: Optional[DailyUsageCap] = None,
        input_gate: Optional[InputGate] = None,
        output_gate: Optional[OutputGate] = None,
        timeout_seconds: float = 30.0,
        max_query_chars: int = 500,
        max_context_chars: int = 4000,
    ):
        self.backend = backend
        self.breaker = breaker or CircuitBreaker()
        self.usage_cap = usage_cap or DailyUsageCap()
        self.input_gate = input_gate or InputGate()
        self.output_gate = output_gate or OutputGate()
        self.timeout_seconds = timeout_seconds
        self.max_query_chars = max_query_chars
        self.max_context_chars = max_context_chars

    @property
    def available(self) -> bool:
        return self.backend is not None

    def truncate_context(self, faqs: Sequence[FaqContext]) -> str:
        """
        Format FAQs for the prompt within ``max_context_chars``.

        ``faqs`` arrive ranked best first; the lowest-ranked entries are
        dropped first and a lone oversized entry is cut.
        """
        entries = [format_faq_entry(i, faq) for i, faq in enumerate(faqs, 1)]

        while len(entries) > 1 and len("\n\n".join(entries)) > self.max_context_chars:
            entries.pop()

        context = "\n\n".join(entries)
        if len(context) > self.max_context_chars:
            context = context[: self.max_context_chars]

        if len(entries) < len(faqs):
            logger.info("FAQ context truncated", kept=len(entries), dropped=len(faqs) - len(entries))
        return context

    async def synthesize(
        self,
        query: str,
        faq_context: Sequence[FaqContext],
        history: Optional[List[str]] = None,
    ) -> Optional[str]:
        """Return synthesized text, or None on any failure."""
        try:
            return await self._synthesize(query, faq_context, history)
        except Exception as e:
            logger.error("LLM synthesis wrapper failed", error=str(e), error_type=type(e).__name__)
            return None

    async def _synthesize(
        self,
        query: str,
        faq_context: Sequence[FaqContext],
        history: Optional[List[str]],
    ) -> Optional[str]:
        if self.backend is None:
            logger.debug("LLM synthesis skipped, no backend configured")
            return None

        if not self.input_gate.check(query).passed:
            return None

        if self.usage_cap.exhausted():
            logger.warning("Daily LLM limit reached", limit=self.usage_cap.limit)
            return None

        if not self.breaker.allow_request():
            logger.warning(
                "LLM circuit open, skipping synthesis",
                consecutive_failures=self.breaker.consecutive_failures,
            )
            return None

        try:
            inputs = build_synthesis_inputs(
                query.strip()[: self.max_query_chars],
                self.truncate_context(faq_context),
                history,
            )
            text = await asyncio.wait_for(self.backend.complete(inputs), timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            # a cancelled caller says nothing about backend health
            self.breaker.release_trial()
            raise
        except asyncio.TimeoutError:
            self.breaker.record_failure()
            logger.error("LLM synthesis timed out", timeout_seconds=self.timeout_seconds)
            return None
        except Exception as e:
            self.breaker.record_failure()
            logger.error("LLM synthesis failed", error=str(e), error_type=type(e).__name__)
            return None

        self.breaker.record_success()
        self.usage_cap.record()

        if not self.output_gate.check(text).passed:
            return None

        logger.info(
            "LLM synthesis completed",
            answer_length=len(text),
            daily_calls=self.usage_cap.used,
        )
        return text


def create_synthesizer(settings: Optional[Settings] = None) -> ResilientSynthesizer:
    """Build the synthesizer from settings."""
    settings = settings or get_settings()
    return ResilientSynthesizer(
        backend=create_synthesis_backend(settings),
        breaker=CircuitBreaker(
            failure_threshold=settings.llm_failure_threshold,
            cooldown_seconds=settings.llm_cooldown_seconds,
        ),
        usage_cap=DailyUsageCap(limit=settings.llm_daily_limit),
        output_gate=OutputGate(max_chars=settings.llm_max_output_chars),
        timeout_seconds=settings.llm_timeout_seconds,
        max_query_chars=settings.llm_max_query_chars,
        max_context_chars=settings.llm_max_context_chars,
    )
