"""
Application Settings
Load from environment variables
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ======================
    # Portfolio definition
    # ======================
    CONFIG_DIR: Path = _DEFAULT_CONFIG_DIR

    # ======================
    # Refresh
    # ======================
    REFRESH_INTERVAL_SECONDS: float = 15.0
    QUOTE_TIMEOUT_SECONDS: float = 10.0
    PERFORMANCE_SERIES_MAX: int = 30

    # ======================
    # Market Data
    # ======================
    YF_SYMBOL_OVERRIDES: Optional[str] = None
    GOOGLE_FINANCE_BASE_URL: str = "https://www.google.com/finance/quote"

    # ======================
    # Timezone
    # ======================
    TIMEZONE: str = "Asia/Kolkata"

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
