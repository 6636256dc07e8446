# src/config/settings.py
from pydantic_settings import BaseSettings
from pathlib import Path
from typing import Optional

# Get project root (2 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

class Settings(BaseSettings):
    # OpenAI
    openai_api_key: str
    openai_embedding_model: str = "text-embedding-3-small"
    openai_llm_model: str = "gpt-5-nano"
    embedding_dimension: int = 1536
    request_timeout_seconds: float = 30.0
    llm_max_retries: int = 5

    # SQL Server (feedback table + workflow checkpoints)
    sql_server_host: str
    sql_server_port: int = 1433
    sql_server_database: str
    sql_server_username: str
    sql_server_password: str

    # PostgreSQL (pgvector index)
    postgres_host: str
    postgres_port: int = 5432
    postgres_database: str
    postgres_username: str
    postgres_password: str
    postgres_sslmode: str = "require"

    # Similarity search
    similarity_top_k: int = 5
    similarity_score_threshold: float = 0.6

    # Backfill
    backfill_batch_size: int = 5
    backfill_batch_delay_seconds: float = 0.1

    # Notifications
    slack_webhook_url: Optional[str] = None
    webhook_timeout_seconds: float = 10.0
    public_base_url: str = "http://localhost:8000"
    workflow_step_max_attempts: int = 3
    workflow_retry_base_delay: float = 1.0

    log_level: str = "INFO"

    class Config:
        env_file = str(PROJECT_ROOT / ".env")
        case_sensitive = False
