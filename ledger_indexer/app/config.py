"""Config file."""
from urllib.parse import quote_plus

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_HORIZON_URL = "https://horizon-testnet.stellar.org"
_DEFAULT_POLL_INTERVAL_MS = 15_000


class Settings(BaseSettings):
    """Application settings."""

    # PROJECT
    project_name: str = Field("ledger-indexer", alias="PROJECT_NAME")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # DATABASE
    postgres_user: str = Field("postgres", alias="POSTGRES_USER")
    postgres_password: SecretStr = Field(SecretStr("postgres"), alias="POSTGRES_PASSWORD")
    postgres_server: str = Field("localhost", alias="POSTGRES_SERVER")
    postgres_port: int = Field(5432, alias="POSTGRES_PORT")
    postgres_db: str = Field("ledger_indexer", alias="POSTGRES_DB")
    database_url: str | None = Field(None, alias="DATABASE_URL")
    sync_database_url: str | None = Field(None, alias="SYNC_DATABASE_URL")

    # CHECKPOINT / DEDUP / LOCK STORE
    redis_url: str = Field("redis://localhost:6379/0", alias="REDIS_URL")

    # LEDGER
    stellar_horizon_url: str | None = Field(None, alias="STELLAR_HORIZON_URL")
    stellar_rpc_url: str | None = Field(None, alias="STELLAR_RPC_URL")
    contract_address: str = Field("", alias="CONTRACT_ADDRESS")
    horizon_timeout_seconds: float = Field(10.0, alias="HORIZON_TIMEOUT_SECONDS")
    ledger_fetch_limit: int = Field(200, alias="LEDGER_FETCH_LIMIT")

    # POLLER
    event_poll_interval_ms: int = Field(_DEFAULT_POLL_INTERVAL_MS, alias="EVENT_POLL_INTERVAL_MS")
    # 0 keeps processed-transaction markers forever
    processed_tx_ttl_seconds: int = Field(30 * 24 * 3600, alias="PROCESSED_TX_TTL_SECONDS")

    # MAINTENANCE
    maintenance_max_retries: int = Field(3, alias="MAINTENANCE_MAX_RETRIES")
    maintenance_base_delay_seconds: float = Field(1.0, alias="MAINTENANCE_BASE_DELAY_SECONDS")
    audit_log_retention_days: int = Field(90, alias="AUDIT_LOG_RETENTION_DAYS")
    inactive_group_days: int = Field(30, alias="INACTIVE_GROUP_DAYS")

    # EVENT SYNC QUEUE
    event_sync_queue_name: str = Field("event-sync-queue", alias="EVENT_SYNC_QUEUE_NAME")
    dead_letter_queue_name: str = Field("dead-letter-queue", alias="DEAD_LETTER_QUEUE_NAME")
    event_sync_max_attempts: int = Field(3, alias="EVENT_SYNC_MAX_ATTEMPTS")
    event_sync_backoff_seconds: list[float] = Field([1.0, 5.0, 30.0], alias="EVENT_SYNC_BACKOFF_SECONDS")
    event_sync_stalled_after_seconds: float = Field(300.0, alias="EVENT_SYNC_STALLED_AFTER_SECONDS")

    @field_validator("event_poll_interval_ms", mode="before")
    @classmethod
    def _positive_poll_interval(cls, value: object) -> object:
        try:
            interval = int(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return _DEFAULT_POLL_INTERVAL_MS
        return interval if interval > 0 else _DEFAULT_POLL_INTERVAL_MS

    @model_validator(mode="after")
    def assemble_db_urls(self) -> "Settings":
        user = quote_plus(self.postgres_user)
        password = quote_plus(self.postgres_password.get_secret_value())
        host = self.postgres_server
        port = self.postgres_port
        db = self.postgres_db

        if not self.database_url:
            self.database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"

        if not self.sync_database_url:
            self.sync_database_url = f"postgresql://{user}:{password}@{host}:{port}/{db}"

        return self

    @property
    def horizon_url(self) -> str:
        url = self.stellar_horizon_url or self.stellar_rpc_url or _DEFAULT_HORIZON_URL
        return url.rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True)


settings: Settings = Settings()
