"""
Quality gates around LLM synthesis.

Two deterministic, pattern-based gates:
- Input gate: blocks prompt-injection attempts before any LLM call
- Output gate: rejects answers that are empty, too long, or contain
  AI meta-commentary / prompt leakage

Substring and regex matching can be bypassed by obfuscation; the gates
bound the obvious cases and every rejection degrades to the stored FAQ
answer, never to an error.
"""

import re
from dataclasses import dataclass, field
from typing import List, Pattern, Sequence

import structlog

logger = structlog.get_logger(__name__)


INJECTION_PATTERNS: Sequence[str] = (
    r"ignore\s+(all\s+|any\s+)?(previous|prior|above|earlier)\s+(instructions|prompts?|rules)",
    r"disregard\s+(all\s+|any\s+)?(previous|prior|above|earlier|your)\s+(instructions|prompts?|rules)",
    r"forget\s+(all\s+|everything\s+)?(your|previous|prior)\s+(instructions|rules|training)",
    r"(reveal|show|print|repeat|output)\s+(me\s+)?(your|the)\s+(system\s+)?(prompt|instructions)",
    r"what\s+(is|are)\s+your\s+(system\s+)?(prompt|instructions)",
    r"you\s+are\s+now\s+(a|an|in)\b",
    r"pretend\s+(to\s+be|you\s+are)",
    r"act\s+as\s+(a|an)\s+",
    r"\bjailbreak\b",
    r"\bdeveloper\s+mode\b",
    r"</?\s*(system|assistant|instructions?)\s*>",
)

UNSAFE_OUTPUT_PATTERNS: Sequence[str] = (
    r"\bas an ai\b",
    r"\b(i am|i'm) an? (ai|artificial intelligence|language model)\b",
    r"\blarge language model\b",
    r"\bmy (system )?(prompt|instructions) (is|are|say)\b",
    r"\bsystem prompt\b",
    r"\bi was (instructed|told) to\b",
    r"\bignore (all )?previous instructions\b",
)


@dataclass
class QualityGateResult:
    """Result from a quality gate check."""

    passed: bool
    issues: List[str] = field(default_factory=list)


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


class InputGate:
    """Rejects queries that try to steer the model away from the FAQs."""

    def __init__(self, patterns: Sequence[str] = INJECTION_PATTERNS):
        self._patterns = _compile(patterns)

    def check(self, query: str) -> QualityGateResult:
        issues = [p.pattern for p in self._patterns if p.search(query)]
        if issues:
            logger.warning("Prompt injection pattern detected", query=query[:100], matches=len(issues))
        return QualityGateResult(passed=not issues, issues=issues)


class OutputGate:
    """Rejects synthesized answers that should not reach the user."""

    def __init__(self, max_chars: int = 2000, patterns: Sequence[str] = UNSAFE_OUTPUT_PATTERNS):
        self.max_chars = max_chars
        self._patterns = _compile(patterns)

    def check(self, text: str) -> QualityGateResult:
        issues = []
        if not text or not text.strip():
            issues.append("empty output")
        elif len(text) > self.max_chars:
            issues.append(f"output exceeds {self.max_chars} chars")

        issues.extend(f"unsafe output: {p.pattern}" for p in self._patterns if p.search(text or ""))

        if issues:
            logger.warning("Synthesized answer rejected", issues=issues, length=len(text or ""))
        return QualityGateResult(passed=not issues, issues=issues)
