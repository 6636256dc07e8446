# src/search/similarity.py
"""
Find feedback that is semantically similar to an existing record.

The original message is always re-embedded, so results reflect its current
text even if its stored vector is stale or was never written. Stored vectors
only serve as candidates for other records' queries.
"""

from typing import List, Optional
import logging

from src.config.settings import Settings
from src.data_access.feedback_store import FeedbackStore
from src.data_access.vector_index import VectorIndex
from src.embedding.embedder import Embedder
from src.models.schemas import SimilarityResult, SimilarityScore, VectorMatch
from src.utils.exceptions import FeedbackNotFoundError

logger = logging.getLogger(__name__)


class SimilaritySearch:
    """Similarity lookup over the vector index, hydrated from the feedback store."""

    def __init__(
        self,
        config: Settings,
        feedback_store: Optional[FeedbackStore] = None,
        vector_index: Optional[VectorIndex] = None,
        embedder: Optional[Embedder] = None,
        top_k: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ):
        """
        Args:
            config: Application settings
            feedback_store: Relational store (built from config if None)
            vector_index: Vector index (built from config if None)
            embedder: Embedding client (built from config if None)
            top_k: Maximum number of similar records returned
            score_threshold: Minimum similarity score a match must reach
        """
        self.config = config
        self.feedback_store = feedback_store or FeedbackStore(config)
        self.vector_index = vector_index or VectorIndex(config)
        self.embedder = embedder or Embedder(config)
        self.top_k = top_k if top_k is not None else config.similarity_top_k
        self.score_threshold = (
            score_threshold if score_threshold is not None else config.similarity_score_threshold
        )

    def find_similar(self, feedback_id: int) -> SimilarityResult:
        """
        Find up to ``top_k`` records similar to the given one.

        Args:
            feedback_id: Id of the record to compare against

        Returns:
            SimilarityResult with the original, the similar records in rank
            order, and a parallel list of {id, score}

        Raises:
            FeedbackNotFoundError: unknown id
            EmbeddingError, VectorIndexError: upstream failure
        """
        original = self.feedback_store.get_by_id(feedback_id)
        if original is None:
            raise FeedbackNotFoundError(feedback_id)

        vector = self.embedder.embed(original.message)

        # One extra to make room for the record's own vector
        matches = self.vector_index.query(vector, top_k=self.top_k + 1, return_metadata=True)
        selected = self.select_matches(matches, str(original.id))

        if not selected:
            logger.info(f"No similar feedback for {feedback_id} above {self.score_threshold}")
            return SimilarityResult(original=original, similar=[], scores=[])

        return self._hydrate(original, selected)

    def select_matches(self, matches: List[VectorMatch], exclude_id: str) -> List[VectorMatch]:
        """Drop the self-match and sub-threshold scores, then keep the top ``top_k``."""
        kept = [
            match for match in matches
            if match.id != exclude_id and match.score >= self.score_threshold
        ]
        kept.sort(key=lambda match: match.score, reverse=True)
        return kept[:self.top_k]

    def _hydrate(self, original, matches: List[VectorMatch]) -> SimilarityResult:
        ranked_ids = []
        for match in matches:
            try:
                ranked_ids.append((int(match.id), match))
            except ValueError:
                logger.warning(f"Skipping vector with non-numeric id {match.id!r}")

        records = self.feedback_store.get_by_ids([record_id for record_id, _ in ranked_ids])
        by_id = {record.id: record for record in records}

        similar = []
        scores = []
        for record_id, match in ranked_ids:
            record = by_id.get(record_id)
            if record is None:
                logger.warning(f"Vector {match.id} has no feedback row, skipping")
                continue
            similar.append(record)
            scores.append(SimilarityScore(id=match.id, score=match.score))

        return SimilarityResult(original=original, similar=similar, scores=scores)
