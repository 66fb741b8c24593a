"""Embedding Provider for RAG Engine

This module provides embedding generation functionality for the RAG engine,
converting text into unit-length vectors so that similarity is a dot product.
"""

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import List, Optional
import asyncio
import hashlib
import re

import numpy as np
import structlog

from docqa.config.settings import get_settings
from docqa.core.exceptions import ConfigurationError, EmbeddingError

logger = structlog.get_logger(__name__)

_TOKEN_PATTERN = re.compile(r"\b\w+\b")


class EmbeddingProvider(ABC):
    """Base class for embedding providers."""

    model_name: str = ""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this provider returns."""

    @property
    def version(self) -> str:
        """Identifier that changes whenever vectors would change."""
        return f"{self.model_name}:{self.dimension}"

    @abstractmethod
    def embed_many(self, texts: List[str]) -> np.ndarray:
        """Embed texts synchronously.

        Args:
            texts: Texts to embed

        Returns:
            Float32 matrix of shape (len(texts), dimension), rows unit-normalized
        """

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text synchronously."""
        return self.embed_many([text])[0]

    async def get_embedding(self, text: str) -> List[float]:
        """Generate an embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Vector embedding
        """
        loop = asyncio.get_running_loop()
        embedding = await loop.run_in_executor(None, self.embed, text)
        return embedding.tolist()

    async def get_embeddings(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of vector embeddings
        """
        if not texts:
            return []
        loop = asyncio.get_running_loop()
        embeddings = await loop.run_in_executor(None, self.embed_many, texts)
        return [embedding.tolist() for embedding in embeddings]


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words embedding using stable token hashing.

    Needs no model download, so it is the default strategy and the one used in
    tests. Lexical overlap drives similarity.
    """

    model_name = "hashing-blake2b"

    def __init__(self, dimension: int = 384):
        if dimension < 1:
            raise ConfigurationError("embeddings", "dimension must be greater than zero")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def _bucket(self, token: str) -> int:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % self._dimension

    def _vector(self, text: str) -> np.ndarray:
        vector = np.zeros(self._dimension, dtype=np.float32)
        tokens = _TOKEN_PATTERN.findall((text or "").lower())
        if not tokens:
            # Punctuation-only or empty text still needs a unit vector
            tokens = [(text or "").strip()]
        for token in tokens:
            vector[self._bucket(token)] += 1.0
        return vector

    def embed_many(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self._dimension), dtype=np.float32)
        matrix = np.vstack([self._vector(text) for text in texts])
        return _normalize_rows(matrix).astype(np.float32)


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Learned embeddings from a sentence-transformers model."""

    def __init__(self, model_name: Optional[str] = None):
        """Initialize the embedding provider.

        Args:
            model_name: Optional model name override
        """
        self.model_name = model_name or get_settings().rag.embedding_model
        self._model = None
        self._dimension = None
        self._initialize_model()

    def _initialize_model(self):
        """Load the sentence-transformers model."""
        from sentence_transformers import SentenceTransformer

        try:
            self._model = SentenceTransformer(self.model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
        except Exception as e:
            raise EmbeddingError(
                f"could not load model {self.model_name}: {e}",
                details={"model": self.model_name}
            ) from e

        logger.info(
            "Embedding model initialized",
            model=self.model_name,
            vector_size=self._dimension
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_many(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self._dimension), dtype=np.float32)
        try:
            matrix = self._model.encode(list(texts), normalize_embeddings=True)
        except Exception as e:
            raise EmbeddingError(str(e), details={"model": self.model_name}) from e
        return _normalize_rows(np.asarray(matrix, dtype=np.float32))


@lru_cache()
def get_embedding_provider() -> EmbeddingProvider:
    """Build the embedding provider selected in settings (cached)."""
    rag_settings = get_settings().rag

    if rag_settings.embedding_strategy == "sentence_transformer":
        provider = SentenceTransformerEmbeddingProvider(rag_settings.embedding_model)
    else:
        provider = HashingEmbeddingProvider(rag_settings.embedding_dimension)

    logger.info(
        "Embedding provider selected",
        strategy=rag_settings.embedding_strategy,
        version=provider.version
    )
    return provider
