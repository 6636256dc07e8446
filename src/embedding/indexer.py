# src/embedding/indexer.py
from datetime import datetime, timezone
from typing import Optional
import logging

from src.config.settings import Settings
from src.data_access.vector_index import VectorIndex
from src.embedding.embedder import Embedder
from src.models.schemas import EmbeddingRecord, FeedbackRecord

logger = logging.getLogger(__name__)


class FeedbackIndexer:
    """Embeds a feedback record's message and upserts it into the vector index."""

    def __init__(
        self,
        config: Settings,
        embedder: Optional[Embedder] = None,
        vector_index: Optional[VectorIndex] = None,
    ):
        self.config = config
        self.embedder = embedder or Embedder(config)
        self.vector_index = vector_index or VectorIndex(config)

    def index(self, record: FeedbackRecord) -> EmbeddingRecord:
        """
        Embed and store one record. Re-indexing the same id overwrites its vector.

        Args:
            record: Persisted feedback record

        Returns:
            The EmbeddingRecord written to the index

        Raises:
            EmbeddingError, VectorIndexError: on upstream failure
        """
        vector = self.embedder.embed(record.message)
        embedding_record = EmbeddingRecord(
            feedback_id=str(record.id),
            vector=vector,
            source=record.source,
            sentiment=record.sentiment,
            model=self.config.openai_embedding_model,
            created_at=datetime.now(timezone.utc)
        )
        self.vector_index.upsert(embedding_record)
        logger.debug(f"Indexed feedback {record.id}")
        return embedding_record
