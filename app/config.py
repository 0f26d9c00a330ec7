# app/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "Freight Audit API"
    app_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"

    # Supabase (client is created lazily, see app/database.py)
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Exchange rate service
    rate_service_url: str = "http://localhost:8001"
    rate_service_timeout_seconds: float = 5.0
    base_currency: str = "CAD"

    # Shipment matching
    auto_accept_threshold: int = 80
    min_match_score: int = 15
    candidate_pool_limit: int = 2500
    pool_fetch_timeout_seconds: float = 15.0

    # Approval tiers (variance percent)
    freight_approve_variance_pct: float = 15.0
    freight_review_variance_pct: float = 25.0
    standard_approve_variance_pct: float = 2.0
    standard_review_variance_pct: float = 10.0

    # Ledger
    ledger_conflict_retries: int = 1

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
