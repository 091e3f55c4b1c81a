"""
Configuration management.

Centralized environment variable management and validation.
"""

from typing import Literal, Optional
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # Allow case-insensitive env var matching
        extra="ignore"
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    # LOG_DIR: when set, logs are also written to <log_dir>/app.log (rotating)
    log_dir: Optional[str] = None

    # API keys (optional so the orchestrator can run against any port implementation)
    openai_api_key: Optional[str] = None
    replicate_api_token: Optional[str] = None

    # Script + narration models (OpenAI)
    script_model: str = "gpt-4o"
    tts_model: str = "tts-1"
    tts_voice: str = "alloy"

    # Image + video models (Replicate, owner/model or owner/model:version)
    image_model: str = "black-forest-labs/flux-1.1-pro"
    thumbnail_model: str = "black-forest-labs/flux-kontext-pro"
    video_model: str = "google/veo-2"
    images_per_paragraph: int = 1

    # Video job polling
    video_poll_interval_seconds: float = 5.0
    video_poll_max_attempts: int = 120  # 10 minutes at the default interval
    video_poll_timeout_seconds: float = 900.0

    # Image fan-out
    # IMAGE_CONCURRENCY_LIMIT: max outstanding paragraph image calls (unset = one per paragraph)
    image_concurrency_limit: Optional[int] = None
    # IMAGE_FAILURE_POLICY: "fail_fast" discards partial successes, "continue" keeps them
    image_failure_policy: Literal["fail_fast", "continue"] = "fail_fast"

    # Per-stage timeout for script/images/audio/video submission (unset = no limit)
    stage_timeout_seconds: Optional[float] = None

    # Output downloads
    download_timeout_seconds: float = 120.0

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate OpenAI API key format."""
        if v is None or v == "":
            return None
        if not v.startswith("sk-"):
            raise ConfigError("OPENAI_API_KEY must start with 'sk-'")
        if len(v) < 20:
            raise ConfigError("OPENAI_API_KEY appears to be invalid")
        return v

    @field_validator("replicate_api_token")
    @classmethod
    def validate_replicate_api_token(cls, v: Optional[str]) -> Optional[str]:
        """Validate Replicate API token format."""
        if v is None or v == "":
            return None
        if not v.startswith("r8_"):
            raise ConfigError("REPLICATE_API_TOKEN must start with 'r8_'")
        if len(v) < 20:
            raise ConfigError("REPLICATE_API_TOKEN appears to be invalid")
        return v

    @field_validator("video_poll_interval_seconds", "video_poll_timeout_seconds", "download_timeout_seconds")
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ConfigError("Interval and timeout settings must be positive")
        return v

    @field_validator("video_poll_max_attempts", "images_per_paragraph")
    @classmethod
    def validate_positive_count(cls, v: int) -> int:
        if v < 1:
            raise ConfigError("Count settings must be at least 1")
        return v

    @field_validator("image_concurrency_limit")
    @classmethod
    def validate_concurrency_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ConfigError("IMAGE_CONCURRENCY_LIMIT must be at least 1")
        return v

    @field_validator("stage_timeout_seconds")
    @classmethod
    def validate_stage_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ConfigError("STAGE_TIMEOUT_SECONDS must be positive")
        return v


# Singleton instance
try:
    settings = Settings()
except Exception as e:
    # Re-raise as ConfigError for consistency
    if isinstance(e, ConfigError):
        raise
    raise ConfigError(f"Failed to load configuration: {str(e)}") from e
