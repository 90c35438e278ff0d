"""Query embedding client.

Embeds text locally with a sentence-transformers model. The default,
``all-MiniLM-L6-v2`` with mean pooling and L2 normalization, is the model
the FAQ corpus (``faq.embedding``, 384 dimensions) is embedded with, so
query and corpus vectors live in the same space. Re-embed the corpus with
``python -m scripts.generate_embeddings --all`` after changing the model.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional

import structlog

from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_EMBEDDING_DIMENSIONS = 384


class EmbeddingError(Exception):
    """Base exception for embedding failures."""

    pass


class ModelNotReadyError(EmbeddingError):
    """Raised when ``generate`` is called before the model is loaded."""

    pass


class EmptyInputError(EmbeddingError):
    """Raised when asked to embed blank text."""

    pass


def load_sentence_transformer(model_name: str, device: str = "cpu") -> Any:
    # torch is heavy; import only when a model is actually loaded
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name, device=device)


class EmbeddingClient:
    """Turns text into a vector for similarity search."""

    def __init__(
        self,
        model_name: str = DEFAULT_EMBEDDING_MODEL,
        dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS,
        device: str = "cpu",
        loader: Callable[..., Any] = load_sentence_transformer,
    ):
        self.model_name = model_name
        self.dimensions = dimensions
        self.device = device
        self._loader = loader
        self._model: Any = None

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    async def initialize(self) -> bool:
        """
        Load the model off the event loop.

        Returns:
            True when the model is loaded and produces ``dimensions``-sized vectors
        """
        logger.info("Loading embedding model", model=self.model_name, device=self.device)
        try:
            model = await asyncio.to_thread(self._loader, self.model_name, device=self.device)
        except Exception as e:
            logger.error("Failed to load embedding model", model=self.model_name, error=str(e))
            self._model = None
            return False

        actual = model.get_sentence_embedding_dimension()
        if actual != self.dimensions:
            logger.error(
                "Embedding model dimension mismatch, search unavailable",
                model=self.model_name,
                expected=self.dimensions,
                actual=actual,
            )
            self._model = None
            return False

        self._model = model
        logger.info("Embedding model ready", model=self.model_name, dimensions=self.dimensions)
        return True

    async def close(self) -> None:
        self._model = None

    async def generate(self, text: str) -> List[float]:
        """
        Embed ``text``.

        Raises:
            ModelNotReadyError: model not loaded
            EmptyInputError: blank text
        """
        if self._model is None:
            raise ModelNotReadyError("Embedding model not initialized")

        if not text or not text.strip():
            raise EmptyInputError("Cannot generate embedding for empty text")

        embedding = await asyncio.to_thread(self._encode, text)
        logger.debug("Embedding generated", input_length=len(text), embedding_dim=len(embedding))
        return embedding

    def _encode(self, text: str) -> List[float]:
        vector = self._model.encode(text, normalize_embeddings=True, convert_to_numpy=True)
        return [float(x) for x in vector]


def create_embedding_client(settings: Optional[Settings] = None) -> EmbeddingClient:
    settings = settings or get_settings()
    return EmbeddingClient(
        model_name=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        device=settings.embedding_device,
    )
