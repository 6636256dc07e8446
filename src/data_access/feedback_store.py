import threading
from contextlib import contextmanager
import pymssql
from typing import Iterable, List, Optional
from src.config.settings import Settings
from src.models.schemas import (
    FeedbackCreate,
    FeedbackRecord,
    FeedbackStats,
    SentimentCount,
    SourceCount,
)

# SQL Server allows at most 2100 parameters per statement
ID_CHUNK_SIZE = 1000

FEEDBACK_COLUMNS = "id, source, message, [timestamp], sentiment, category, author"


class FeedbackStore:
    """SQL Server client for the feedback table."""

    def __init__(self, config: Settings):
        self.config = config
        self.conn = None
        # One connection is shared by request threads and background tasks
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Establish database connection."""
        self.conn = pymssql.connect(
            server=self.config.sql_server_host,
            port=self.config.sql_server_port,
            user=self.config.sql_server_username,
            password=self.config.sql_server_password,
            database=self.config.sql_server_database
        )

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    @contextmanager
    def _cursor(self, as_dict: bool = True):
        with self._lock:
            if not self.conn:
                self.connect()
            with self.conn.cursor(as_dict=as_dict) as cursor:
                yield cursor

    def initialize_schema(self) -> None:
        """Create the feedback table and its indexes if they don't exist."""
        schema_sql = """
            IF OBJECT_ID('dbo.feedback', 'U') IS NULL
            BEGIN
                CREATE TABLE dbo.feedback (
                    id INT IDENTITY(1,1) PRIMARY KEY,
                    source NVARCHAR(100) NOT NULL,
                    message NVARCHAR(MAX) NOT NULL,
                    [timestamp] DATETIME2 NOT NULL DEFAULT SYSUTCDATETIME(),
                    sentiment VARCHAR(16) NOT NULL
                        CONSTRAINT ck_feedback_sentiment CHECK (sentiment IN ('positive', 'negative', 'neutral')),
                    category NVARCHAR(255) NULL,
                    author NVARCHAR(255) NULL
                );
                CREATE INDEX idx_feedback_source ON dbo.feedback(source);
                CREATE INDEX idx_feedback_timestamp ON dbo.feedback([timestamp] DESC);
                CREATE INDEX idx_feedback_sentiment ON dbo.feedback(sentiment);
            END
        """

        with self._cursor(as_dict=False) as cursor:
            cursor.execute(schema_sql)
            self.conn.commit()

    def insert(self, feedback: FeedbackCreate, sentiment: str) -> FeedbackRecord:
        """
        Insert a feedback row. The server assigns id and timestamp.

        Args:
            feedback: Validated submission
            sentiment: Sentiment assigned by the classifier

        Returns:
            The persisted FeedbackRecord
        """
        query = """
            INSERT INTO dbo.feedback (source, message, sentiment, category, author)
            OUTPUT INSERTED.id, INSERTED.source, INSERTED.message, INSERTED.[timestamp],
                   INSERTED.sentiment, INSERTED.category, INSERTED.author
            VALUES (%s, %s, %s, %s, %s)
        """

        with self._cursor() as cursor:
            cursor.execute(
                query,
                (feedback.source, feedback.message, sentiment, feedback.category, feedback.author)
            )
            row = cursor.fetchone()
            self.conn.commit()

        return self._to_record(row)

    def get_by_id(self, feedback_id: int) -> Optional[FeedbackRecord]:
        """Fetch a single feedback record, or None if the id is unknown."""
        query = f"SELECT {FEEDBACK_COLUMNS} FROM dbo.feedback WHERE id = %s"

        with self._cursor() as cursor:
            cursor.execute(query, (feedback_id,))
            row = cursor.fetchone()

        return self._to_record(row) if row else None

    def get_by_ids(self, feedback_ids: Iterable[int]) -> List[FeedbackRecord]:
        """
        Retrieve specific feedback records by IDs.

        Unknown ids are silently absent from the result; order is not guaranteed.
        """
        ids = list(dict.fromkeys(feedback_ids))
        if not ids:
            return []

        records = []
        with self._cursor() as cursor:
            for i in range(0, len(ids), ID_CHUNK_SIZE):
                chunk = ids[i:i + ID_CHUNK_SIZE]
                placeholders = ','.join(['%s'] * len(chunk))
                query = f"SELECT {FEEDBACK_COLUMNS} FROM dbo.feedback WHERE id IN ({placeholders})"
                cursor.execute(query, tuple(chunk))
                records.extend(self._to_record(row) for row in cursor.fetchall())

        return records

    def list_all(self) -> List[FeedbackRecord]:
        """All feedback, newest first."""
        return self._fetch_all(
            f"SELECT {FEEDBACK_COLUMNS} FROM dbo.feedback ORDER BY [timestamp] DESC, id DESC"
        )

    def list_for_backfill(self) -> List[FeedbackRecord]:
        """All feedback in insertion (id) order."""
        return self._fetch_all(f"SELECT {FEEDBACK_COLUMNS} FROM dbo.feedback ORDER BY id")

    def stats(self) -> FeedbackStats:
        """
        Aggregate counts by source and by sentiment, plus the grand total.
        """
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT source, COUNT(*) AS count FROM dbo.feedback GROUP BY source"
            )
            by_source = [SourceCount(source=row["source"], count=row["count"]) for row in cursor.fetchall()]

            cursor.execute(
                "SELECT sentiment, COUNT(*) AS count FROM dbo.feedback GROUP BY sentiment"
            )
            by_sentiment = [
                SentimentCount(sentiment=row["sentiment"], count=row["count"])
                for row in cursor.fetchall()
            ]

            cursor.execute("SELECT COUNT(*) AS total FROM dbo.feedback")
            row = cursor.fetchone()

        return FeedbackStats(
            by_source=by_source,
            by_sentiment=by_sentiment,
            total=row["total"] if row else 0,
        )

    def _fetch_all(self, query: str) -> List[FeedbackRecord]:
        with self._cursor() as cursor:
            cursor.execute(query)
            rows = cursor.fetchall()

        return [self._to_record(row) for row in rows]

    @staticmethod
    def _to_record(row: dict) -> FeedbackRecord:
        return FeedbackRecord(
            id=row['id'],
            source=row['source'],
            message=row['message'],
            timestamp=row['timestamp'],
            sentiment=row['sentiment'],
            category=row.get('category'),
            author=row.get('author'),
        )
