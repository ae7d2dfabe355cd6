# backend/barback/core/settings.py
"""
Barback - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate path to .env in project root (4 levels up from this file)
# backend/barback/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Engine settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "Barback"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DATABASE_URL: str = Field(
        default="sqlite:///./barback.db",
        description="SQLAlchemy URL of the transactional store",
    )
    DB_ECHO: bool = Field(default=False, description="Log emitted SQL")

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper().strip()

    # ===================
    # Inventory Engine
    # ===================
    DEFAULT_BASE_UNIT: str = Field(
        default="each", description="Base unit assumed for ingredients without one"
    )
    DISPLAY_DECIMAL_PLACES: int = Field(
        default=2, ge=0, le=6, description="Rounding applied to display strings only"
    )
    QUANTITY_SCALE: int = Field(
        default=4, ge=0, le=8, description="Decimal places kept in persisted quantities"
    )
    COUNT_OFF_MENU_SALES: bool = Field(
        default=False,
        description="Deplete stock for sales of recipes that are no longer on the menu",
    )
    COUNT_HISTORY_LIMIT: int = Field(default=100, ge=1, description="Rows returned by count history")


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()


settings = get_settings()
