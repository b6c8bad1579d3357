# kafka_bridge/core/config.py
import json
from functools import lru_cache
from typing import Annotated, Dict, List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central application settings loaded from environment variables (and .env).

    Notes
    -----
    - `default_topics` supports either JSON (recommended) or a compact string form:
        DEFAULT_TOPICS='{"messages": 3, "notifications": 1}'
      or:
        DEFAULT_TOPICS='messages:3,notifications:1'
    - `cors_allow_origins` accepts JSON array or comma-separated string.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---------- HTTP ----------
    host: str = "0.0.0.0"
    port: int = 3000

    # ---------- Kafka client ----------
    kafka_bootstrap: str = Field(
        "localhost:9092",
        validation_alias=AliasChoices("KAFKA_BROKER", "KAFKA_BOOTSTRAP", "kafka_bootstrap"),
    )
    kafka_client_id: str = "kafka-bridge"
    kafka_api_version: str | None = None

    # Client timeouts (ms)
    request_timeout_ms: int = 20_000
    api_version_auto_timeout_ms: int = 10_000

    # Connect retry: bounded count, fixed backoff
    connect_max_tries: int = Field(default=10, ge=1)
    connect_backoff_sec: float = Field(default=0.3, ge=0)

    # Producer
    producer_retries: int = 10
    publish_timeout_sec: float = 10.0

    # Consumer
    consumer_poll_timeout_ms: int = 1000
    broadcast_group_id: str = "websocket-broadcast-group"

    # Topics created on startup: name -> partitions
    default_topics: Annotated[Dict[str, int], NoDecode] = Field(
        default_factory=lambda: {"messages": 3, "notifications": 1}
    )
    topic_replication_factor: int = Field(default=1, ge=1)

    # ---------- CORS ----------
    cors_allow_origins: Annotated[List[str] | None, NoDecode] = None

    # ---------- Observability ----------
    log_level: str = "INFO"
    metrics_enabled: bool = True

    @field_validator("cors_allow_origins", mode="before")
    def _parse_cors_origins(cls, v):
        """Accept JSON array or comma-separated string."""
        if v is None:
            return None
        if isinstance(v, str):
            try:
                parsed = json.loads(v)  # JSON array
                if isinstance(parsed, list):
                    return [str(s).strip() for s in parsed if str(s).strip()]
            except ValueError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("default_topics", mode="before")
    def _parse_default_topics(cls, v):
        """
        Accept JSON mapping or a compact string format:
          'messages:3,notifications:1'
        A bare name means one partition.
        """
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(name).strip(): int(parts) for name, parts in v.items() if str(name).strip()}
        if isinstance(v, str):
            try:
                obj = json.loads(v)
                if isinstance(obj, dict):
                    return {str(name).strip(): int(parts) for name, parts in obj.items()}
            except ValueError:
                pass
            result: Dict[str, int] = {}
            for part in v.split(","):
                part = part.strip()
                if not part:
                    continue
                name, _, parts = part.partition(":")
                result[name.strip()] = int(parts) if parts.strip() else 1
            return result
        return v

    def bootstrap_servers(self) -> list[str]:
        return [s.strip() for s in self.kafka_bootstrap.split(",") if s.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
