"""Process configuration read from environment variables (and an optional .env file)."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,      # FOO= in the environment means "use the default"
        populate_by_name=True,      # Settings(timeout_ms=...) as well as TIMEOUT_MS
        extra="ignore",
    )

    # fetch / render bound
    timeout_ms: int = Field(default=45000, ge=1, validation_alias="TIMEOUT_MS")
    # per readiness condition after navigation
    ready_timeout_ms: int = Field(default=8000, ge=1, validation_alias="READY_TIMEOUT_MS")
    # max open render sessions
    concurrency: int = Field(default=1, validation_alias="CONCURRENCY")
    # skip the static fetch, go straight to the browser
    force_render: bool = Field(default=False, validation_alias="FORCE_PLAYWRIGHT")
    # short-circuit extraction (smoke tests)
    dry_run: bool = Field(default=False, validation_alias="DRY_RUN")
    headless: bool = Field(default=True, validation_alias="HEADLESS")
    # start Chromium at process start instead of on first use
    warm_browser: bool = Field(default=False, validation_alias="WARM_BROWSER")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("concurrency")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)

    @field_validator("log_level")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper() or "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()
