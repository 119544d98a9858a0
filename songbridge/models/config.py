"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_PROVIDER = "gequbao"


class RelayConfig(BaseModel):
    """A validated configuration model for the service and the CLI."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # HTTP service
    host: str = "127.0.0.1"
    port: int = 8000

    # Providers
    default_provider: str = DEFAULT_PROVIDER
    request_timeout: float = 15.0

    # Stream relay
    download_timeout: float = 30.0
    retry_limit: int = 2
    retry_delay_ms: int = 600
    max_redirects: int = 5
    chunk_size: int = 65536
    max_workers: int = 8

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535.")
        return v

    @field_validator("default_provider")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        """Provider names are matched case-insensitively."""
        v = v.lower()
        if not v:
            raise ValueError("Default provider cannot be empty.")
        return v

    @field_validator("request_timeout", "download_timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive.")
        return v

    @field_validator("retry_limit")
    @classmethod
    def validate_retry_limit(cls, v: int) -> int:
        if v < 0 or v > 10:
            raise ValueError("Retry limit must be between 0 and 10.")
        return v

    @field_validator("retry_delay_ms", "max_redirects")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value cannot be negative.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("Chunk size must be at least 1024 bytes.")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable connection pool size."""
        if v < 1 or v > 64:
            raise ValueError("Max workers must be between 1 and 64.")
        return v

    @classmethod
    def get_ini_keys(cls) -> list[str]:
        """Returns all keys that are expected in the INI file, in field order."""
        return list(cls.model_fields)
