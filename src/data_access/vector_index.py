# src/data_access/vector_index.py
"""
PostgreSQL (pgvector) index of feedback embeddings.

The row id is the string form of the feedback id, so re-indexing a record
overwrites its vector instead of adding a second one.
"""

import threading
import psycopg2
from psycopg2.extras import execute_values
from typing import List, Sequence
from src.config.settings import Settings
from src.models.schemas import EmbeddingRecord, VectorMatch, VectorMetadata
from src.utils.exceptions import VectorIndexError


def to_vector_literal(values: Sequence[float]) -> str:
    """Render a vector in pgvector's text input format."""
    return "[" + ",".join(repr(float(v)) for v in values) + "]"


class VectorIndex:
    """PostgreSQL vector database client for feedback embeddings."""

    def __init__(self, config: Settings):
        self.config = config
        self.dimension = config.embedding_dimension
        self.conn = None
        # psycopg2 connections are shared between backfill workers; cursors are not
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Establish database connection."""
        self.conn = psycopg2.connect(
            host=self.config.postgres_host,
            port=self.config.postgres_port,
            database=self.config.postgres_database,
            user=self.config.postgres_username,
            password=self.config.postgres_password,
            sslmode=self.config.postgres_sslmode
        )

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def _ensure_connection(self) -> None:
        if not self.conn:
            self.connect()

    def initialize_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        schema_sql = f"""
        CREATE EXTENSION IF NOT EXISTS vector;

        CREATE TABLE IF NOT EXISTS feedback_embeddings (
            id VARCHAR(64) PRIMARY KEY,
            vector vector({self.dimension}) NOT NULL,
            model VARCHAR(100),
            source VARCHAR(100),
            sentiment VARCHAR(16),
            embedded_at TIMESTAMPTZ
        );

        CREATE INDEX IF NOT EXISTS feedback_embeddings_vector_idx
        ON feedback_embeddings USING hnsw (vector vector_cosine_ops);
        """

        with self._lock:
            self._ensure_connection()
            with self.conn.cursor() as cursor:
                cursor.execute(schema_sql)
                self.conn.commit()

    def upsert(self, record: EmbeddingRecord) -> None:
        """Insert or overwrite a single embedding."""
        self.upsert_many([record])

    def upsert_many(self, records: List[EmbeddingRecord]) -> None:
        """
        Insert embedding records, overwriting any existing vector for the same id.

        Args:
            records: List of EmbeddingRecord objects

        Raises:
            VectorIndexError: wrong vector length or database failure
        """
        if not records:
            return

        for r in records:
            if len(r.vector) != self.dimension:
                raise VectorIndexError(
                    f"Vector for {r.feedback_id} has {len(r.vector)} dimensions, expected {self.dimension}"
                )

        values = [
            (r.feedback_id, to_vector_literal(r.vector), r.model, r.source, r.sentiment, r.created_at)
            for r in records
        ]

        query = """
            INSERT INTO feedback_embeddings (id, vector, model, source, sentiment, embedded_at)
            VALUES %s
            ON CONFLICT (id) DO UPDATE
            SET vector = EXCLUDED.vector,
                model = EXCLUDED.model,
                source = EXCLUDED.source,
                sentiment = EXCLUDED.sentiment,
                embedded_at = EXCLUDED.embedded_at
        """

        with self._lock:
            self._ensure_connection()
            try:
                with self.conn.cursor() as cursor:
                    execute_values(cursor, query, values, template="(%s, %s::vector, %s, %s, %s, %s)")
                    self.conn.commit()
            except psycopg2.Error as e:
                self.conn.rollback()
                raise VectorIndexError(f"Failed to upsert {len(records)} embedding(s): {e}") from e

    def query(
        self,
        vector: List[float],
        top_k: int,
        return_metadata: bool = False
    ) -> List[VectorMatch]:
        """
        Find the nearest vectors by cosine similarity.

        Args:
            vector: Query embedding vector
            top_k: Maximum number of matches
            return_metadata: Include the source/sentiment/timestamp snapshot

        Returns:
            Matches ordered by descending similarity score
        """
        literal = to_vector_literal(vector)
        query = """
            SELECT id,
                   1 - (vector <=> %s::vector) AS score,
                   source, sentiment, embedded_at
            FROM feedback_embeddings
            ORDER BY vector <=> %s::vector
            LIMIT %s
        """

        with self._lock:
            self._ensure_connection()
            try:
                with self.conn.cursor() as cursor:
                    cursor.execute(query, (literal, literal, top_k))
                    rows = cursor.fetchall()
                self.conn.commit()
            except psycopg2.Error as e:
                self.conn.rollback()
                raise VectorIndexError(f"Vector query failed: {e}") from e

        matches = []
        for feedback_id, score, source, sentiment, embedded_at in rows:
            metadata = None
            if return_metadata:
                metadata = VectorMetadata(source=source, sentiment=sentiment, timestamp=embedded_at)
            matches.append(VectorMatch(id=feedback_id, score=float(score), metadata=metadata))
        return matches
