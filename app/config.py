"""
Application Configuration
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    database_url: Optional[str] = None

    # Redis & Job Queue
    redis_url: Optional[str] = None
    job_events_channel_prefix: str = "faq_jobs"

    # Environment
    environment: str = "development"

    # LLM (text completion)
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    llm_timeout_seconds: float = 30.0

    # Embeddings
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-ada-002"
    embedding_dimensions: int = 1536

    # Question Extraction
    question_max_body_chars: int = 8000  # Body is truncated before the LLM call
    question_max_text_chars: int = 500
    quality_threshold: float = 0.5

    # Clustering
    cluster_join_threshold: float = 0.85
    cluster_max_retries: int = 3
    cluster_retry_backoff_seconds: float = 0.05

    # Answer Synthesis
    synthesis_max_questions: int = 10
    synthesis_context_chars: int = 1000

    # FAQ Search
    faq_search_min_similarity: float = 0.7

    # Worker Configuration
    worker_processes: int = 2
    worker_threads: int = 1

    # Scheduler
    eligibility_rescan_minutes: int = 30
    recluster_interval_minutes: int = 15
    recluster_batch_size: int = 100

    # Circuit Breaker Configuration
    circuit_breaker_fail_max: int = 5  # Consecutive failures before opening circuit
    circuit_breaker_reset_timeout: int = 60  # Seconds before auto-recovery attempt

    # Sentry Error Tracking
    sentry_dsn: Optional[str] = None
    sentry_environment: Optional[str] = None  # Defaults to environment setting

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
