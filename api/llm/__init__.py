"""LLM synthesis backend and its resilience wrapper."""

from .circuit_breaker import CircuitBreaker, CircuitState, DailyUsageCap
from .client import SynthesisBackend, SynthesisError, create_synthesis_backend
from .synthesizer import ResilientSynthesizer, create_synthesizer

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "DailyUsageCap",
    "SynthesisBackend",
    "SynthesisError",
    "create_synthesis_backend",
    "ResilientSynthesizer",
    "create_synthesizer",
]
