"""Application configuration using pydantic-settings.

Resolution order: explicit init kwargs, then the OS keychain (secrets
only), then environment variables, then ``.env``, then field defaults.
"""

from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import SECRET_KEYS, read_secret

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Settings source that fills keychain-managed secrets.

    Fields outside :data:`~services.credential_manager.SECRET_KEYS` are never
    looked up, so a missing keychain backend costs nothing for them.
    """

    def get_field_value(self, field, field_name: str) -> tuple[Any, str, bool]:
        if field_name not in SECRET_KEYS:
            return None, field_name, False
        return read_secret(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        found = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                found[key] = value
        return found


class Settings(BaseSettings):
    """Runtime settings for the API process and queue workers."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./ledger.db"

    # Empty REDIS_URL runs jobs in-process with in-memory locks
    REDIS_URL: str = ""
    QUEUE_NAME: str = "default"
    SYNC_LOCK_TTL_SECONDS: int = 3600
    # Poll interval for held jobs when running without Redis
    INLINE_SCHEDULER_INTERVAL_SECONDS: float = 1.0
    DEFAULT_SYNC_LOOKBACK_DAYS: int = 90

    # Fresh brokerage connections can return no activity until indexed
    ACTIVITY_FETCH_RETRY_DELAY_SECONDS: int = 10
    ACTIVITY_FETCH_MAX_RETRIES: int = 6

    # First wait is one throttle window, doubling per attempt
    RATE_LIMIT_BASE_DELAY_SECONDS: int = 60
    RATE_LIMIT_MAX_RETRIES: int = 5

    WEBHOOK_TOLERANCE_SECONDS: int = 300
    MERCURY_WEBHOOK_SECRET: str = ""
    MERCURY_API_BASE_URL: str = "https://api.mercury.com"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator(
        "ACTIVITY_FETCH_MAX_RETRIES",
        "RATE_LIMIT_MAX_RETRIES",
        "ACTIVITY_FETCH_RETRY_DELAY_SECONDS",
        "RATE_LIMIT_BASE_DELAY_SECONDS",
        "SYNC_LOCK_TTL_SECONDS",
    )
    @classmethod
    def non_negative(cls, v: int, info: ValidationInfo) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0, got {v}")
        return v


settings = Settings()
