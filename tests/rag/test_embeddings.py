"""Unit tests for the embedding providers."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from docqa.core.exceptions import ConfigurationError, EmbeddingError
from docqa.rag.embeddings import HashingEmbeddingProvider, SentenceTransformerEmbeddingProvider


def test_hashing_vectors_are_unit_length_and_deterministic():
    provider = HashingEmbeddingProvider(dimension=64)

    first = provider.embed_many(["Quarterly revenue grew", "!!!", ""])
    second = HashingEmbeddingProvider(dimension=64).embed_many(["Quarterly revenue grew", "!!!", ""])

    assert first.shape == (3, 64)
    assert first.dtype == np.float32
    np.testing.assert_allclose(np.linalg.norm(first, axis=1), 1.0, rtol=1e-5)
    np.testing.assert_array_equal(first, second)


def test_hashing_similarity_follows_lexical_overlap():
    provider = HashingEmbeddingProvider()

    query = provider.embed("invoice total amount")
    related = provider.embed("The invoice total amount is 500 dollars")
    unrelated = provider.embed("Bananas are a yellow fruit")

    assert float(query @ related) > float(query @ unrelated)
    assert float(query @ related) > 0.5


def test_hashing_is_case_insensitive():
    provider = HashingEmbeddingProvider()

    np.testing.assert_array_equal(provider.embed("Hello World"), provider.embed("hello world"))


def test_hashing_empty_batch_and_version():
    provider = HashingEmbeddingProvider(dimension=32)

    assert provider.embed_many([]).shape == (0, 32)
    assert provider.version == "hashing-blake2b:32"


def test_hashing_rejects_non_positive_dimension():
    with pytest.raises(ConfigurationError):
        HashingEmbeddingProvider(dimension=0)


@pytest.mark.asyncio
async def test_async_helpers_return_lists():
    provider = HashingEmbeddingProvider(dimension=16)

    single = await provider.get_embedding("text")
    batch = await provider.get_embeddings(["a", "b"])

    assert isinstance(single, list) and len(single) == 16
    assert len(batch) == 2
    assert await provider.get_embeddings([]) == []


def test_sentence_transformer_provider_normalizes_output():
    model = MagicMock()
    model.get_sentence_embedding_dimension.return_value = 3
    model.encode.return_value = np.array([[3.0, 4.0, 0.0]])

    with patch("sentence_transformers.SentenceTransformer", return_value=model):
        provider = SentenceTransformerEmbeddingProvider("test-model")

    vectors = provider.embed_many(["hello"])

    assert provider.dimension == 3
    assert provider.version == "test-model:3"
    np.testing.assert_allclose(vectors[0], [0.6, 0.8, 0.0], rtol=1e-6)


def test_sentence_transformer_load_failure_is_embedding_error():
    with patch("sentence_transformers.SentenceTransformer", side_effect=OSError("no such model")):
        with pytest.raises(EmbeddingError):
            SentenceTransformerEmbeddingProvider("missing-model")
