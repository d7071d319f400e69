"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g. REDIS_URL=redis://cache:6379/0
#      (highest priority - always wins)
#   2. **.env file** - key=value lines in the project root .env file
#      (lower priority - used for local development)
#
# Field ``redis_url`` maps to env var ``REDIS_URL`` automatically.
# Defaults below are used when neither source sets a value.
#
# The API process and the indexing worker read the SAME settings so both
# sides agree on queue topology and store locations.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Document search settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Stores ===
    metadata_db_path: str = "data/metadata.db"
    search_index_db_path: str = "data/search_index.db"
    storage_dir: str = "./document-storage"

    # === Work queue ===
    # "redis" in every deployed environment; "memory" keeps the queue inside
    # the API process (only useful together with run_embedded_worker).
    queue_backend: str = "redis"
    redis_url: str = "redis://localhost:6379/0"
    queue_exchange: str = "document.exchange"
    queue_routing_key: str = "document.index"
    queue_name: str = "document.index.queue"
    queue_dead_letter_suffix: str = "dlq"
    queue_visibility_timeout_ms: int = 300_000  # unacked deliveries older than this are redelivered
    queue_block_ms: int = 5_000
    queue_batch_size: int = 10
    queue_max_length: int = 100_000

    # === Indexing worker ===
    worker_consumer_name: str = "indexer-1"
    worker_concurrency: int = 4
    run_embedded_worker: bool = False
    extraction_timeout_seconds: float = 120.0

    # === Search ===
    snippet_length: int = 200
    search_max_query_length: int = 500
    search_default_max_results: int = 100

    # === Intake ===
    max_upload_bytes: int = 50 * 1024 * 1024  # 50 MB

    # === Consistency sweep ===
    sweep_interval_seconds: int = 0  # 0 = run once and exit
    sweep_batch_size: int = 500

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    @property
    def queue_stream_key(self) -> str:
        """Redis stream key for the index topic: ``<exchange>:<routing_key>``."""
        return f"{self.queue_exchange}:{self.queue_routing_key}"

    @property
    def queue_dead_letter_key(self) -> str:
        """Stream that receives deliveries the worker gave up on."""
        return f"{self.queue_stream_key}:{self.queue_dead_letter_suffix}"
