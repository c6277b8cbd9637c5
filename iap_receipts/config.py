"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Invalid config is rejected at import time.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Receipt verification settings loaded from environment variables."""

    # Apple verifyReceipt
    apple_shared_secret: str = ""  # Only needed for auto-renewing subscriptions
    apple_verify_url_production: str = "https://buy.itunes.apple.com/verifyReceipt"
    apple_verify_url_sandbox: str = "https://sandbox.itunes.apple.com/verifyReceipt"
    apple_verify_url_override: str = ""  # Points every request at a test double when set
    apple_request_timeout: float = 30.0  # seconds

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    service_name: str = "iap-receipts"
    service_version: str = "0.1.0"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate configuration at startup.

        A zero or negative timeout would make every verification fail, and an
        unknown log format would silently fall back to console output.
        """
        errors: list[str] = []

        if self.apple_request_timeout <= 0:
            errors.append(
                f"APPLE_REQUEST_TIMEOUT must be positive, got: {self.apple_request_timeout}"
            )

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
