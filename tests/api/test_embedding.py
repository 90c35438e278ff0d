"""Tests for the embedding client.

The sentence-transformers model is replaced with a small fake; loading the
real model is not exercised here.
"""

import pytest

from api.tools.embedding import (
    DEFAULT_EMBEDDING_DIMENSIONS,
    DEFAULT_EMBEDDING_MODEL,
    EmbeddingClient,
    EmptyInputError,
    ModelNotReadyError,
    create_embedding_client,
)
from libs.common.settings import Settings


class FakeModel:
    def __init__(self, dimensions=4):
        self.dimensions = dimensions
        self.calls = []

    def get_sentence_embedding_dimension(self):
        return self.dimensions

    def encode(self, text, **kwargs):
        self.calls.append((text, kwargs))
        return [0.5] * self.dimensions


def make_client(model=None, dimensions=4):
    model = model or FakeModel(dimensions)
    loaded = {}

    def loader(name, device="cpu"):
        loaded["name"] = name
        loaded["device"] = device
        return model

    client = EmbeddingClient(model_name="test-model", dimensions=dimensions, loader=loader)
    return client, model, loaded


def test_defaults_match_faq_corpus():
    settings = Settings(_env_file=None)

    assert DEFAULT_EMBEDDING_MODEL == "sentence-transformers/all-MiniLM-L6-v2"
    assert DEFAULT_EMBEDDING_DIMENSIONS == 384
    assert settings.embedding_model == DEFAULT_EMBEDDING_MODEL
    assert settings.embedding_dimensions == 384

    client = create_embedding_client(settings)
    assert client.model_name == DEFAULT_EMBEDDING_MODEL
    assert client.dimensions == 384


@pytest.mark.asyncio
async def test_generate_returns_normalized_vector():
    client, model, loaded = make_client()
    assert await client.initialize()

    vector = await client.generate("Do you ship internationally?")

    assert vector == [0.5, 0.5, 0.5, 0.5]
    assert loaded == {"name": "test-model", "device": "cpu"}
    text, kwargs = model.calls[0]
    assert text == "Do you ship internationally?"
    assert kwargs["normalize_embeddings"] is True


@pytest.mark.asyncio
async def test_generate_before_initialize():
    client, _, _ = make_client()

    assert not client.is_ready
    with pytest.raises(ModelNotReadyError):
        await client.generate("hello")


@pytest.mark.asyncio
async def test_load_failure_leaves_client_not_ready():
    def loader(name, device="cpu"):
        raise OSError("model download failed")

    client = EmbeddingClient(loader=loader)

    assert not await client.initialize()
    assert not client.is_ready


@pytest.mark.asyncio
async def test_dimension_mismatch_rejected():
    client, _, _ = make_client(model=FakeModel(dimensions=768), dimensions=384)

    assert not await client.initialize()
    assert not client.is_ready


@pytest.mark.asyncio
async def test_empty_input_rejected():
    client, model, _ = make_client()
    await client.initialize()

    with pytest.raises(EmptyInputError):
        await client.generate("   ")
    assert model.calls == []


@pytest.mark.asyncio
async def test_close_unloads_model():
    client, _, _ = make_client()
    await client.initialize()

    await client.close()

    assert not client.is_ready
