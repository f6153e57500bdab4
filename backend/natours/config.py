"""
Natours Backend — Application Configuration
=============================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by main.py when assembling the pipeline; tests build their
       own Settings instances and pass them to create_app().
When:  Loaded once at module import time.

Recognized options (environment variable names are case-insensitive):
    MAX_REQUESTS_PER_WINDOW   admitted requests per client per window
    WINDOW_DURATION_MS        rate-limit window length in milliseconds
    BODY_SIZE_LIMIT_BYTES     largest accepted request body
    PARAMETER_ALLOW_LIST      comma-separated query keys allowed to repeat
    MODE                      development | production
"""

from typing import FrozenSet

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_ALLOW_LIST = (
    "duration,ratingsQuantity,ratingsAverage,maxGroupSize,difficulty,price"
)

VALID_MODES = {"development", "production"}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have defaults matching the public deployment: 100 API
    requests per hour per IP, 10 KB bodies, production error shaping.
    """

    # ── Runtime Mode ──────────────────────────────────────────────────────
    # development: verbose error responses (cause chain + stack)
    # production:  operational messages only, generic 500 for defects
    mode: str = Field(default="production")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        """Accepts any casing; stores the lowercase mode name."""
        lower = v.strip().lower()
        if lower not in VALID_MODES:
            raise ValueError(f"Invalid mode '{v}'. Must be one of: {sorted(VALID_MODES)}")
        return lower

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Fixed window per client IP, applied only under api_prefix
    max_requests_per_window: int = Field(default=100, ge=1, le=100_000)
    window_duration_ms: int = Field(default=60 * 60 * 1000, ge=1, le=86_400_000)
    api_prefix: str = Field(default="/api")

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v: str) -> str:
        """Normalizes to a leading slash and no trailing slash."""
        stripped = v.strip().strip("/")
        return "/" + stripped if stripped else "/"

    # ── Payload ───────────────────────────────────────────────────────────
    # 10 KB; larger bodies are rejected with 413 before sanitization
    body_size_limit_bytes: int = Field(default=10 * 1024, ge=1, le=10_485_760)

    # Query keys that may legitimately repeat (range/filter fields).
    # Format: comma-separated names (parsed by the property below)
    parameter_allow_list: str = Field(default=DEFAULT_ALLOW_LIST)

    @property
    def allowed_parameters(self) -> FrozenSet[str]:
        """Splits the comma-separated allow-list into a set of names."""
        return frozenset(
            name.strip() for name in self.parameter_allow_list.split(",") if name.strip()
        )

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @property
    def is_development(self) -> bool:
        return self.mode == "development"

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


# Singleton instance used by natours.main when no explicit Settings is given
settings = Settings()
