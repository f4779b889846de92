"""Configuration module for idempotent newsletter publishing.

This module provides the PublishConfig class for configuring the database
connection, idempotency key limits, claim wait bounds and ledger retention.

Example:
    Basic usage with defaults:

        >>> config = PublishConfig()
        >>> config.claim_timeout_seconds
        30

    Custom configuration:

        >>> config = PublishConfig(
        ...     database_url="postgresql+asyncpg://app:secret@db/newsletter",
        ...     claim_timeout_seconds=10,
        ...     retention_seconds=3600,
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['PUBLISH_DATABASE_URL'] = 'postgresql+asyncpg://db/newsletter'
        >>> os.environ['PUBLISH_CLAIM_TIMEOUT_SECONDS'] = '10'
        >>> config = PublishConfig.from_env()
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from idempotent_publish.models import DEFAULT_MAX_KEY_BYTES


class PublishConfig(BaseModel):
    """Configuration for the idempotent publishing core.

    Attributes:
        database_url: SQLAlchemy async database URL. PostgreSQL (asyncpg) in
            production; SQLite (aiosqlite) works for development and tests.
        max_key_bytes: Maximum UTF-8 length of an idempotency key (1-1024).
            Default is 255.
        claim_timeout_seconds: Upper bound on how long a request waits for a
            competing transaction holding the same key (1-300). Default is 30.
        claim_retry_initial_ms: First backoff delay when the store reports a
            lock conflict instead of blocking. Default is 50.
        claim_retry_max_ms: Largest backoff delay between claim attempts.
            Must be >= claim_retry_initial_ms. Default is 1000.
        pool_size: Connection pool size (1-100). Default is 10.
        retention_seconds: Age after which completed ledger rows are purged
            (60 to 2592000, i.e. 30 days). Default is 86400.
        cleanup_interval_seconds: Time between retention purge runs. Default is 300.
        published_redirect: Location the publish endpoint redirects to.

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    database_url: str = Field(
        default="sqlite+aiosqlite:///./newsletter.db",
        description="SQLAlchemy async database URL",
        min_length=1,
    )
    max_key_bytes: int = Field(
        default=DEFAULT_MAX_KEY_BYTES,
        description="Maximum idempotency key length in bytes (1-1024)",
    )
    claim_timeout_seconds: int = Field(
        default=30,
        description="Maximum time in seconds to wait for a contended claim (1-300)",
    )
    claim_retry_initial_ms: int = Field(
        default=50,
        description="Initial backoff between claim attempts in milliseconds",
        ge=1,
    )
    claim_retry_max_ms: int = Field(
        default=1000,
        description="Maximum backoff between claim attempts in milliseconds",
        ge=1,
    )
    pool_size: int = Field(
        default=10,
        description="Database connection pool size (1-100)",
        ge=1,
        le=100,
    )
    retention_seconds: int = Field(
        default=86400,
        description="Age in seconds after which completed ledger rows are purged",
    )
    cleanup_interval_seconds: int = Field(
        default=300,
        description="Seconds between retention purge runs",
        ge=1,
    )
    published_redirect: str = Field(
        default="/admin/newsletter",
        description="Redirect target after a newsletter is published",
    )

    model_config = {"frozen": True}

    @field_validator("max_key_bytes")
    @classmethod
    def validate_max_key_bytes(cls, v: int) -> int:
        """Validate the key length bound.

        Args:
            v: Maximum key length in bytes.

        Returns:
            Validated value.

        Raises:
            ValueError: If not between 1 and 1024.
        """
        if not (1 <= v <= 1024):
            raise ValueError(f"max_key_bytes must be between 1 and 1024, got {v}")
        return v

    @field_validator("claim_timeout_seconds")
    @classmethod
    def validate_claim_timeout_seconds(cls, v: int) -> int:
        """Validate claim timeout is within acceptable range.

        Args:
            v: Timeout value in seconds.

        Returns:
            Validated timeout value.

        Raises:
            ValueError: If timeout is not between 1 and 300 (5 minutes).
        """
        if not (1 <= v <= 300):
            raise ValueError(
                f"claim_timeout_seconds must be between 1 and 300 (5 minutes), got {v}"
            )
        return v

    @field_validator("retention_seconds")
    @classmethod
    def validate_retention_seconds(cls, v: int) -> int:
        if not (60 <= v <= 2592000):
            raise ValueError(
                f"retention_seconds must be between 60 and 2592000 (30 days), got {v}"
            )
        return v

    @field_validator("published_redirect")
    @classmethod
    def validate_published_redirect(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"published_redirect must be an absolute path, got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_backoff(self) -> "PublishConfig":
        """Ensure the backoff ceiling is not below the first delay.

        Returns:
            The validated config instance.

        Raises:
            ValueError: If claim_retry_max_ms < claim_retry_initial_ms.
        """
        if self.claim_retry_max_ms < self.claim_retry_initial_ms:
            raise ValueError(
                "claim_retry_max_ms must be >= claim_retry_initial_ms, got "
                f"{self.claim_retry_max_ms} < {self.claim_retry_initial_ms}"
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = "PUBLISH_") -> "PublishConfig":
        """Create configuration from environment variables.

        Variable names are uppercase field names with the prefix, e.g.
        ``PUBLISH_DATABASE_URL``.

        Args:
            prefix: Prefix for environment variable names. Default is "PUBLISH_".

        Returns:
            PublishConfig instance populated from environment variables.

        Note:
            Missing variables fall back to the model defaults.
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "database_url": str,
            "max_key_bytes": int,
            "claim_timeout_seconds": int,
            "claim_retry_initial_ms": int,
            "claim_retry_max_ms": int,
            "pool_size": int,
            "retention_seconds": int,
            "cleanup_interval_seconds": int,
            "published_redirect": str,
        }

        for field_name, field_type in field_types.items():
            env_value = os.environ.get(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue
            config_dict[field_name] = int(env_value) if field_type is int else env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "PublishConfig":
        """Create configuration from a dictionary.

        Args:
            config_dict: Dictionary with configuration values.

        Returns:
            PublishConfig instance populated from the dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
