"""
Runtime settings, read from ``MOOD_INSIGHT_*`` environment variables.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MOOD_INSIGHT_", env_file=".env")

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    reload: bool = False

    # Replacement crisis phrase table; the bundled one is used when unset
    keywords_path: Path | None = None

    # How much history the dashboard looks at
    dashboard_window_days: int = 30

    base_url: str = "http://localhost:8000"
