
import os
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


def _postgres_url() -> str:
    user = os.getenv("POSTGRES_USER", "reelrank")
    password = os.getenv("POSTGRES_PASSWORD", "reelrank")
    host = os.getenv("POSTGRES_HOST", "db")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "reelrank")
    if os.getenv("POSTGRES_HOST_AUTH_METHOD") == "trust":
        # Allow empty password in libpq when server trusts host
        return f"postgresql+psycopg2://{user}@{host}:{port}/{db}"
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"


class Settings(BaseSettings):
    # DATABASE_URL wins over the POSTGRES_* pieces (tests use sqlite://)
    database_url: str = Field(default_factory=_postgres_url, alias="DATABASE_URL")
    redis_url: str = Field("redis://redis:6379/0", alias="REDIS_URL")

    # Content metadata lookup
    tmdb_api_key: Optional[str] = Field(None, alias="TMDB_API_KEY")
    tmdb_timeout_seconds: int = Field(10, alias="TMDB_TIMEOUT_SECONDS")
    tmdb_max_retries: int = Field(4, alias="TMDB_MAX_RETRIES")

    # Observability
    metrics_enabled: bool = Field(True, alias="METRICS_ENABLED")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Nightly consistency audit (local hour, UTC)
    ranking_audit_hour: int = Field(4, alias="RANKING_AUDIT_HOUR")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }


settings = Settings()
