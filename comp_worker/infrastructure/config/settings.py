"""Application settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Dual-path comparison, absolute currency units
    concordance_tolerance: float = 0.01

    # Density model: new = (1 - decay) * prior + decay * match_ratio
    density_decay: float = Field(0.2, gt=0.0, le=1.0)
    cold_start_confidence: float = Field(0.5, ge=0.0, le=1.0)
    anomaly_threshold: float = Field(0.2, ge=0.0, le=1.0)
    full_trace_max: float = 0.70
    silent_min: float = 0.95

    # Batch execution
    page_size: int = Field(1000, ge=1)
    entity_chunk_size: int = Field(500, ge=1)
    max_workers: int = Field(4, ge=1)

    # Metric aggregation
    identity_fields: list[str] = ["storeId", "entityId", "role", "certification"]
    location_key_field: str = "storeId"
    location_metric_prefix: str = "location_"

    # Best-effort learning persistence
    learning_retry_attempts: int = Field(3, ge=1)
    learning_retry_wait_seconds: float = Field(1.0, ge=0.0)

    # Observability
    prometheus_port: int = 9300
    metrics_server_enabled: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="COMP_",
        extra="ignore",
    )
