# src/embedding/embedder.py
from openai import OpenAI, OpenAIError
from typing import List
from src.config.settings import Settings
from src.utils.exceptions import EmbeddingError
import logging

logger = logging.getLogger(__name__)


class Embedder:
    """OpenAI embedding client.

    Retries are left to the caller, so the SDK's own retry loop is disabled.
    """

    def __init__(self, config: Settings):
        self.config = config
        self.client = OpenAI(
            api_key=config.openai_api_key,
            timeout=config.request_timeout_seconds,
            max_retries=0,
        )
        self.model = config.openai_embedding_model
        self.dimension = config.embedding_dimension

    def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for a single text.

        Args:
            text: Text string to embed

        Returns:
            Embedding vector of ``embedding_dimension`` floats

        Raises:
            EmbeddingError: upstream failure or malformed response
        """
        return self._embed_batch([text])[0]

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for several texts in one upstream call.

        Args:
            texts: Text strings to embed

        Returns:
            One vector per input text, in input order

        Raises:
            EmbeddingError: upstream failure or malformed response
        """
        if not texts:
            return []
        return self._embed_batch(list(texts))


    def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a batch of texts in one API call.

        Args:
            batch: List of text strings to embed

        Returns:
            List of embedding vectors in input order
        """
        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=batch
            )
        except OpenAIError as e:
            logger.error(f"Embedding request failed for {len(batch)} text(s): {e}")
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        data = getattr(response, "data", None) or []
        if len(data) != len(batch):
            raise EmbeddingError(
                f"Expected {len(batch)} embeddings, got {len(data)}"
            )

        vectors = []
        for item in data:
            vector = getattr(item, "embedding", None)
            if not isinstance(vector, list) or len(vector) != self.dimension:
                size = len(vector) if isinstance(vector, list) else None
                raise EmbeddingError(
                    f"Malformed embedding: expected {self.dimension} floats, got {size}"
                )
            vectors.append([float(x) for x in vector])
        return vectors
