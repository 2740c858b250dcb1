"""Application configuration."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loads and validates application settings from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    DEFAULT_ELECTRICITY_RATE: Decimal = Decimal("292")
    NOISE_THRESHOLD_KWH: Decimal = Decimal("100")
    RECALCULATION_HOUR: int = 2
    RECALCULATION_MINUTE: int = 0
    LOG_LEVEL: str = "INFO"


settings = Settings()
