"""
Library configuration and environment variables.

This module unifies configuration using pydantic-settings.
Variables can come from:
1. .env file
2. System environment variables (have priority)
3. Default values

Naming convention:
- In Python code: snake_case (key_store_dir)
- In .env or ENV vars: prefixed UPPER_CASE (LOCALCERT_KEY_STORE_DIR)
- Pydantic automatically converts between both
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Unified localcert configuration.

    All variables can be defined in:
    - .env file: LOCALCERT_VARIABLE_NAME=value
    - Environment variables: export LOCALCERT_VARIABLE_NAME=value

    Example:
        # In .env or as environment variable:
        LOCALCERT_KEY_STORE_PROVIDER=local
        LOCALCERT_KEY_STORE_DIR=~/.localcert
        LOCALCERT_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LOCALCERT_",
        case_sensitive=False,  # Allows using uppercase or lowercase
        extra="ignore",  # Ignores extra variables in .env
    )

    # ============================================================================
    # PROJECT SETTINGS
    # ============================================================================
    project_name: str = Field(
        default="localcert", description="Project name"
    )
    project_version: str = Field(default="1.0.0", description="Project version")

    # ============================================================================
    # LOGGING SETTINGS
    # ============================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | operation_id={extra[operation_id]} | {name}:{function}:{line} - {message}",  # noqa: E501
        description="Log format",
    )
    logger_enqueue: bool = Field(
        default=False, description="Enqueue logs using multiprocessing"
    )

    # ============================================================================
    # KEY STORE SETTINGS
    # ============================================================================
    key_store_provider: str = Field(
        default="local",
        description="Key store provider (local, memory)",
    )
    key_store_dir: str = Field(
        default="./.localcert",
        description="Base directory for the local key store (keys, certificates)",
    )
    key_store_password: str = Field(
        default="",
        description=(
            "Password answered to the login prompt when the key store is "
            "protected (empty means no non-interactive login)"
        ),
    )

    # ============================================================================
    # CERTIFICATE POLICY SETTINGS
    # ============================================================================
    certificate_validity_days: int = Field(
        default=365, ge=1, description="Validity of generated certificates in days"
    )
    certificate_backdate_days: int = Field(
        default=1,
        ge=0,
        description="Days not-before is moved into the past to tolerate clock skew",
    )
    expiry_grace_days: int = Field(
        default=1,
        ge=0,
        description="Certificates expiring within this many days are regenerated",
    )
    serial_number_bytes: int = Field(
        default=8,
        ge=1,
        le=19,
        description="Random bytes used for certificate serial numbers",
    )

    # ============================================================================
    # WORKER SETTINGS
    # ============================================================================
    worker_threads: int = Field(
        default=2, ge=1, description="Worker threads running certificate operations"
    )


# ============================================================================
# SINGLETON PATTERN - Global settings instance
# ============================================================================


@lru_cache
def get_settings() -> Settings:
    """
    Get library settings (LRU cached).

    This function is cached, so the .env file is only read once.
    To refresh the configuration, clear the cache:
        get_settings.cache_clear()

    Usage:
        from localcert.config import get_settings
        settings = get_settings()
        print(settings.key_store_dir)

    Returns:
        Settings: Library configuration
    """
    return Settings()
