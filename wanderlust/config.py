"""
Configuration management for the Wanderlust web client.
Points the client at the remote planning backend and controls local view state.
"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend Configuration
    api_url: str = "http://localhost:8000"
    request_timeout: float = 30.0
    stream_timeout: float = 300.0  # Itinerary generation can take minutes

    # Panel State
    state_dir: str = ".wanderlust"
    max_building_age_hours: int = 24
    stale_building_warning_seconds: int = 300

    # Map Configuration
    mapbox_token: Optional[str] = None

    # Server Configuration
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = True
    log_level: str = "INFO"

    class Config:
        env_prefix = "WANDERLUST_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()


def get_client_config() -> dict:
    """Get backend connection configuration."""
    return {
        "base_url": settings.api_url.rstrip("/"),
        "timeout": settings.request_timeout,
        "stream_timeout": settings.stream_timeout,
    }
