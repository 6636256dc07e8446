"""Shared fixtures for the test suite."""
import pytest
from unittest.mock import Mock, MagicMock
from datetime import datetime, timezone
from src.config.settings import Settings
from src.models.schemas import FeedbackRecord


DIMENSION = 8


@pytest.fixture
def mock_config():
    """Create a mock configuration."""
    config = Mock(spec=Settings)
    config.openai_api_key = "test-api-key"
    config.openai_embedding_model = "text-embedding-3-small"
    config.openai_llm_model = "gpt-5-nano"
    config.embedding_dimension = DIMENSION
    config.request_timeout_seconds = 30.0
    config.llm_max_retries = 3
    config.sql_server_host = "test-server"
    config.sql_server_port = 1433
    config.sql_server_username = "test-user"
    config.sql_server_password = "test-pass"
    config.sql_server_database = "test-db"
    config.postgres_host = "test-pg"
    config.postgres_port = 5432
    config.postgres_database = "vectors"
    config.postgres_username = "pg-user"
    config.postgres_password = "pg-pass"
    config.postgres_sslmode = "disable"
    config.similarity_top_k = 5
    config.similarity_score_threshold = 0.6
    config.backfill_batch_size = 5
    config.backfill_batch_delay_seconds = 0.0
    config.slack_webhook_url = "https://hooks.slack.test/services/T000/B000/XXX"
    config.webhook_timeout_seconds = 5.0
    config.public_base_url = "https://feedback.example.com"
    config.workflow_step_max_attempts = 3
    config.workflow_retry_base_delay = 1.0
    config.log_level = "INFO"
    return config


def make_record(record_id, message="Some feedback", source="Discord", sentiment="neutral", author=None):
    return FeedbackRecord(
        id=record_id,
        source=source,
        message=message,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        sentiment=sentiment,
        author=author,
    )


@pytest.fixture
def sample_feedback_records():
    """Create sample feedback records for testing."""
    return [
        make_record(1, "The app keeps crashing", "Discord", "negative", "Bob"),
        make_record(2, "Great update, performance is much better!", "Discord", "positive"),
        make_record(3, "App freezes when I open settings", "Support", "negative"),
        make_record(4, "Documentation needs an update", "GitHub", "neutral"),
    ]


def create_mock_connection():
    """Connection mock whose cursor() works as a context manager."""
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__ = Mock(return_value=cursor)
    conn.cursor.return_value.__exit__ = Mock(return_value=False)
    return conn, cursor
