"""Application configuration."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from smartsos.core.sos_policies import ESCALATION_DELAY_SECONDS, PEER_RADIUS_KM


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_name: str = "smartsos"
    debug: bool = False
    api_prefix: str = "/api"

    # Storage
    store_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./smartsos.db"

    # SOS behaviour
    peer_radius_km: float = Field(default=PEER_RADIUS_KM, gt=0)
    nearby_default_radius_km: float = Field(default=PEER_RADIUS_KM, gt=0)
    escalation_delay_seconds: float = Field(default=ESCALATION_DELAY_SECONDS, ge=0)

    # Notifications
    notify_workers: int = Field(default=8, ge=1)
    authority_webhook_url: str = ""
    peer_webhook_url: str = ""
    webhook_timeout_seconds: float = 5.0


settings = Settings()
