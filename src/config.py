"""Configuration management

Settings are read, highest priority first, from constructor arguments, environment
variables prefixed with ``SWINGBUDDY_`` (nested sections joined with ``__``, e.g.
``SWINGBUDDY_BOT__TOKEN``), a ``.env`` file and a TOML file (``config.toml`` or the path
in ``SWINGBUDDY_CONFIG``).
"""
import os
import logging
from typing import Optional, Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from src.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "SWINGBUDDY_CONFIG"
DEFAULT_CONFIG_PATH = "config.toml"

LOG_LEVELS = {"trace", "debug", "info", "warn", "error"}


class BotConfig(BaseModel):
    token: str = ""
    webhook_url: Optional[str] = None
    admin_ids: list[int] = Field(default_factory=list)
    # Seconds in-flight updates get to finish on shutdown
    shutdown_grace_seconds: float = 10.0


class DatabaseConfig(BaseModel):
    url: str = "postgresql://localhost/swingbuddy"
    max_connections: int = 10
    min_connections: int = 1


class RedisConfig(BaseModel):
    url: str = "redis://localhost:6379"
    prefix: str = "swingbuddy:"
    ttl_seconds: int = 3600


class GoogleConfig(BaseModel):
    """Accepted for compatibility with existing config files; not used by the bot."""

    model_config = {"extra": "allow"}

    service_account_path: Optional[str] = None
    calendar_id: Optional[str] = None


class CasConfig(BaseModel):
    api_url: str = "https://api.cas.chat"
    timeout_seconds: float = 5.0
    auto_ban: bool = True
    log_retention_days: int = 30


class I18nConfig(BaseModel):
    default_language: str = "en"
    supported_languages: list[str] = Field(default_factory=lambda: ["en", "ru"])


class LoggingConfig(BaseModel):
    level: str = "info"
    file_path: Optional[str] = "/var/log/swingbuddy.log"
    max_file_size: int = 10 * 1024 * 1024
    max_files: int = 5

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @property
    def python_level(self) -> int:
        """Map the configured level onto the stdlib logging levels"""
        return {
            "trace": logging.DEBUG,
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warn": logging.WARNING,
            "error": logging.ERROR,
        }.get(self.level, logging.INFO)


class FeaturesConfig(BaseModel):
    cas_protection: bool = True
    google_calendar: bool = False
    admin_panel: bool = True


class StateConfig(BaseModel):
    # None means "use redis.ttl_seconds"
    cleanup_interval_seconds: Optional[int] = None


class RateLimitConfig(BaseModel):
    max_requests: int = 10
    window_seconds: int = 60


class Settings(BaseSettings):
    """Complete bot configuration"""

    model_config = SettingsConfigDict(
        env_prefix="SWINGBUDDY_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    bot: BotConfig = Field(default_factory=BotConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    google: Optional[GoogleConfig] = None
    cas: CasConfig = Field(default_factory=CasConfig)
    i18n: I18nConfig = Field(default_factory=I18nConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_file = os.getenv(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
        )

    @model_validator(mode="after")
    def validate_rules(self) -> "Settings":
        """Reject configurations the bot cannot run with"""
        if not self.bot.token:
            raise ValueError("bot.token cannot be empty")
        if not self.bot.admin_ids:
            raise ValueError("bot.admin_ids must contain at least one admin")
        if not self.database.url:
            raise ValueError("database.url cannot be empty")
        if self.database.min_connections <= 0:
            raise ValueError("database.min_connections must be greater than 0")
        if self.database.max_connections < self.database.min_connections:
            raise ValueError("database.max_connections must be >= database.min_connections")
        if not self.redis.url:
            raise ValueError("redis.url cannot be empty")
        if self.cas.timeout_seconds <= 0:
            raise ValueError("cas.timeout_seconds must be greater than 0")
        if self.i18n.default_language not in self.i18n.supported_languages:
            raise ValueError("i18n.default_language must be one of i18n.supported_languages")
        if self.logging.level not in LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of: {', '.join(sorted(LOG_LEVELS))}"
            )
        return self

    @property
    def cleanup_interval(self) -> int:
        """Seconds between sweeper ticks"""
        return self.state.cleanup_interval_seconds or self.redis.ttl_seconds

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.bot.admin_ids

    def is_super_admin(self, user_id: int) -> bool:
        return bool(self.bot.admin_ids) and self.bot.admin_ids[0] == user_id


def load_settings(**overrides: Any) -> Settings:
    """
    Load and validate settings.

    Raises:
        ConfigurationError: when any source holds an invalid value or a rule fails
    """
    try:
        settings = Settings(**overrides)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        config_key = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ConfigurationError(
            message=f"Invalid configuration: {first.get('msg', str(e))}",
            config_key=config_key,
            cause=e,
        )

    logger.info(
        f"Configuration loaded: {len(settings.bot.admin_ids)} admins, "
        f"languages={settings.i18n.supported_languages}"
    )
    return settings
