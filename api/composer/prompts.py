"""
Prompt templates for FAQ answer synthesis.

The model is asked to answer only from the FAQ entries supplied, so the
synthesized answer stays grounded in the stored corpus.
"""

from typing import List, Optional, Sequence

from langchain_core.prompts import ChatPromptTemplate

from libs.models.chat import FaqContext


FAQ_SYNTHESIS_SYSTEM_PROMPT = """You are a helpful customer support assistant. Answer the user's question using ONLY the FAQ information provided. Do not make up information.

Rules:
- Be concise and friendly
- If the FAQs don't fully answer the question, say what you CAN answer and suggest contacting support for the rest
- Combine information from multiple FAQs when relevant
- Use bullet points for multi-step instructions
- Keep responses under 150 words"""

FAQ_SYNTHESIS_USER_PROMPT = """{history_block}Relevant FAQs:
{faq_context}

User question: "{query}"

Answer:"""

FAQ_SYNTHESIS_TEMPLATE = ChatPromptTemplate.from_messages([
    ("system", FAQ_SYNTHESIS_SYSTEM_PROMPT),
    ("human", FAQ_SYNTHESIS_USER_PROMPT),
])


def format_faq_entry(index: int, faq: FaqContext) -> str:
    """Render one FAQ as a numbered block with its relevance."""
    return (
        f"FAQ {index} ({round(faq.similarity * 100)}% relevant):\n"
        f"Q: {faq.question}\nA: {faq.answer}"
    )


def format_faq_context(faqs: Sequence[FaqContext]) -> str:
    return "\n\n".join(format_faq_entry(i, faq) for i, faq in enumerate(faqs, 1))


def format_history(history: Optional[List[str]]) -> str:
    if not history:
        return ""
    return "Recent conversation:\n" + "\n".join(history) + "\n\n"


def build_synthesis_inputs(
    query: str,
    faq_context: str,
    history: Optional[List[str]] = None,
) -> dict:
    """Variables for ``FAQ_SYNTHESIS_TEMPLATE``."""
    return {
        "history_block": format_history(history),
        "faq_context": faq_context,
        "query": query,
    }
