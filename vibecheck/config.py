import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Optional

from pydantic import BeforeValidator, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)


# --- helpers (top-level) ---


def _parse_env_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off", ""}:
            return False
    raise ValueError(f"Invalid boolean value: {value!r}")


EnvBool = Annotated[bool, BeforeValidator(_parse_env_bool)]


def _default_credential_path() -> str:
    return str(Path("~/.vibecheck/credentials.json").expanduser())


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        alias_generator=str.upper,
        populate_by_name=True,
    )

    app_name: str = "VibeCheck"
    api_version: str = "1.0.0"

    debug: EnvBool = Field(default=False)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")

    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Initial cloud credential used when none has been persisted.",
    )
    cloud_model: str = Field(default="gemini-2.0-flash")
    cloud_api_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta"
    )
    cloud_request_timeout: float = Field(default=60.0, gt=0)

    on_device_enabled: EnvBool = Field(default=True)
    on_device_host: str = Field(default="http://127.0.0.1:11434")
    on_device_model: str = Field(default="gemma3:4b")
    on_device_supports_images: EnvBool = Field(default=True)

    capability_probe_timeout: float = Field(
        default=2.0,
        gt=0,
        description="Seconds allowed for checking whether the local runtime can serve the model.",
    )
    session_create_timeout: float = Field(
        default=3.0,
        gt=0,
        description="Seconds allowed for loading the on-device model into a session.",
    )
    reprobe_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Interval between on-device probes while the cloud provider is active.",
    )

    credential_store_path: str = Field(default_factory=_default_credential_path)
    credential_key: str = Field(default="geminiApiKey")

    eventbus_memory_queue_maxsize: int = Field(default=1000, ge=1)

    @field_validator("gemini_api_key", mode="before")
    @classmethod
    def _blank_key_is_missing(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cloud_api_base_url", "on_device_host")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value!r}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Load configuration from the environment and ``.env``."""

    settings = Settings()
    if settings.debug:
        log.info(
            "settings.debug_enabled",
            extra={
                "on_device_model": settings.on_device_model,
                "cloud_model": settings.cloud_model,
            },
        )
    return settings
