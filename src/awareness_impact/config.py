"""Runtime configuration for awareness impact service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    service_name: str = "awareness-impact-service"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    metrics_enabled: bool = True

    database_url: str = "sqlite:///./awareness_impact.db"
    sql_echo: bool = False

    event_produced_by: str = "services/awareness-impact-service"
    data_source: str = "impact_formula_v1"
    weight_sum_tolerance: float = Field(default=0.01, ge=0, le=0.5)

    validation_lookback_months: int = Field(default=3, ge=1, le=24)
    validated_max_gap: float = Field(default=10.0, ge=0, le=100)
    anomaly_max_gap: float = Field(default=25.0, ge=0, le=100)
    confidence_gap_threshold: float = Field(default=15.0, ge=0, le=100)

    calibration_min_samples: int = Field(default=3, ge=1)
    calibration_outlier_gap: float = Field(default=25.0, ge=0, le=100)
    suggestion_bias_threshold: float = Field(default=0.2, ge=0, le=1)
    suggested_weight_min: float = Field(default=0.1, ge=0, le=1)
    suggested_weight_max: float = Field(default=0.5, ge=0, le=1)

    model_config = SettingsConfigDict(env_prefix="AWARENESS_IMPACT_", extra="ignore")


def get_settings() -> Settings:
    """Return settings object."""

    return Settings()
