"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # App
    app_name: str = "connection-guardian"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")
    debug: bool = False

    # Redis (notification dedup window only; guardian state is never persisted)
    redis_url: str = Field(default="redis://localhost:16379/0")

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    # Anthropic (alert phrasing)
    anthropic_api_key: str = ""
    phrasing_model: str = "claude-haiku-4-5-20251001"
    phrasing_timeout_s: float = Field(default=4.0, gt=0.0)

    # OpenRouteService (rescue routing)
    # Without a key every route is the straight-line approximation.
    ors_api_key: str = ""
    routing_timeout_s: float = Field(default=5.0, gt=0.0)

    # Nominatim (connection point geocoding)
    nominatim_user_agent: str = "ConnectionGuardian/0.1"
    geocode_timeout_s: float = Field(default=5.0, gt=0.0)

    # FCM push
    fcm_project_id: str = ""
    fcm_service_account_key: str = ""
    push_device_token: str = ""
    push_platform: str = Field(default="android", pattern=r"^(ios|android|web)$")
    notification_dedup_window_s: int = Field(default=180, ge=0)

    # Guardian policy
    # Deadlines ("HH:MM") are wall-clock times in this timezone.
    guardian_timezone: str = "Asia/Kolkata"
    alert_threshold_pct: int = Field(default=60, ge=0, le=100)
    safe_threshold_pct: int = Field(default=25, ge=0, le=100)
    alert_cooldown_s: int = Field(default=180, ge=0)
    position_interval_s: float = Field(default=15.0, gt=0.0)
    position_distance_m: float = Field(default=50.0, gt=0.0)

    # Rescue mode distance bands (km to the connection)
    bike_taxi_max_km: float = Field(default=2.0, gt=0.0)
    cab_min_km: float = Field(default=8.0, gt=0.0)

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()
