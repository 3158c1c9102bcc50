"""
Configuration management for the Workflow Auto-Tagger.
"""

from typing import Optional, Any
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CHUNK_SIZE = 5


def normalize_chunk_size(value: Any) -> int:
    """Coerce a raw chunk size to a positive integer, falling back to the default."""
    try:
        size = int(str(value).strip())
    except (TypeError, ValueError):
        return DEFAULT_CHUNK_SIZE
    return size if size > 0 else DEFAULT_CHUNK_SIZE


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Batch Configuration
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, description="Items processed concurrently per chunk")
    chunk_delay: float = Field(default=0.05, ge=0.0, description="Pause between chunks in seconds")

    # Tag Derivation Toggles
    include_checkpoint: bool = Field(default=True)
    include_lora: bool = Field(default=True)
    include_positive_prompt: bool = Field(default=True)
    include_negative_prompt: bool = Field(default=True)

    # Library Configuration
    library_path: Optional[str] = Field(default=None, description="Eagle library used by the CLI")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_buffer_size: int = Field(default=100, gt=0, description="Run log ring buffer capacity")

    @field_validator("chunk_size", mode="before")
    @classmethod
    def validate_chunk_size(cls, v):
        """Unparseable or non-positive chunk sizes fall back to the default."""
        return normalize_chunk_size(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()


# Global settings instance
settings = Settings()
