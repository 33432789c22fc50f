"""Outreach pipeline configuration.

Settings come from the process environment, after a ``.env`` file in the
working directory (if any) has been loaded into it. Provider credentials
are never hardcoded; each command checks only the ones it needs.

Usage:
    >>> from outreach.config import Config
    >>> config = Config()
    >>> config.validate_for_generation()
"""

import os
from typing import Any

from dotenv import load_dotenv

from .constants import (
    DEFAULT_CHUNK_DELAY_SECONDS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_GENERATION_MAX_RETRIES,
    DEFAULT_GENERATION_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_OPENAI_MODEL,
)

load_dotenv()


class ConfigError(Exception):
    """A setting the requested operation depends on is missing."""

    pass


class Config:
    """Snapshot of the environment taken at construction time.

    Attributes:
        DATABASE_URL: ``postgresql://`` or ``sqlite:///`` URL; the async
            driver is chosen by :func:`outreach.models.normalize_database_url`.
        APOLLO_API_KEY: Key for company search, people search and enrichment.
        OPENAI_API_KEY: Key for drafting.
        OPENAI_MODEL: Chat model that writes the drafts.
        SENDGRID_API_KEY: Key for delivery.
        SENDGRID_FROM_EMAIL: Sender used when no sender is stored in settings.
        BATCH_CHUNK_SIZE: Leads processed concurrently per chunk.
        BATCH_CHUNK_DELAY_SECONDS: Pause between chunks.
        GENERATION_MAX_RETRIES: Extra drafting attempts after a failure.
        GENERATION_RETRY_BASE_DELAY_SECONDS: First backoff delay, doubled per retry.

    Example:
        >>> Config().BATCH_CHUNK_SIZE
        3
    """

    def __init__(self) -> None:
        self.APP_ENV = self._get_optional("APP_ENV", "dev")
        self.DEBUG = self._get_bool("DEBUG")
        self.LOG_LEVEL = self._get_optional("LOG_LEVEL", "INFO").upper()

        # Storage
        self.DATABASE_URL = self._get_optional("DATABASE_URL", "sqlite:///./outreach.db")
        self.DATABASE_POOL_SIZE = int(self._get_optional("DATABASE_POOL_SIZE", "5"))
        self.DATABASE_MAX_OVERFLOW = int(self._get_optional("DATABASE_MAX_OVERFLOW", "10"))
        self.DATABASE_ECHO = self._get_bool("DATABASE_ECHO")

        # Lead search
        self.APOLLO_API_KEY = self._get_optional("APOLLO_API_KEY")
        self.APOLLO_TIMEOUT_SECONDS = int(self._get_optional("APOLLO_TIMEOUT_SECONDS", "30"))

        # Drafting
        self.OPENAI_API_KEY = self._get_optional("OPENAI_API_KEY")
        self.OPENAI_MODEL = self._get_optional("OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
        self.OPENAI_TIMEOUT_SECONDS = int(self._get_optional("OPENAI_TIMEOUT_SECONDS", "120"))
        self.GENERATION_MAX_RETRIES = int(
            self._get_optional("GENERATION_MAX_RETRIES", str(DEFAULT_GENERATION_MAX_RETRIES))
        )
        self.GENERATION_RETRY_BASE_DELAY_SECONDS = float(
            self._get_optional(
                "GENERATION_RETRY_BASE_DELAY_SECONDS",
                str(DEFAULT_GENERATION_RETRY_BASE_DELAY_SECONDS),
            )
        )

        # Delivery
        self.SENDGRID_API_KEY = self._get_optional("SENDGRID_API_KEY")
        self.SENDGRID_FROM_EMAIL = self._get_optional("SENDGRID_FROM_EMAIL")
        self.SENDGRID_FROM_NAME = self._get_optional("SENDGRID_FROM_NAME")

        # Batch pacing
        self.BATCH_CHUNK_SIZE = int(
            self._get_optional("BATCH_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))
        )
        self.BATCH_CHUNK_DELAY_SECONDS = float(
            self._get_optional("BATCH_CHUNK_DELAY_SECONDS", str(DEFAULT_CHUNK_DELAY_SECONDS))
        )

    def _get_optional(self, name: str, default: str = "") -> str:
        """Value of ``name`` in the environment, else ``default``."""
        if name in os.environ:
            return os.environ[name]
        return default

    def _get_bool(self, name: str) -> bool:
        """True when ``name`` is set to ``true`` or ``1`` (any case)."""
        return os.environ.get(name, "").lower() in ("true", "1")

    def validate_for_contacts(self) -> None:
        """
        Raises:
            ConfigError: If the Apollo key is missing.
        """
        if not self.APOLLO_API_KEY:
            raise ConfigError("APOLLO_API_KEY is required for contact lookup")

    def validate_for_generation(self) -> None:
        """
        Raises:
            ConfigError: If the OpenAI key is missing.
        """
        if not self.OPENAI_API_KEY:
            raise ConfigError("OPENAI_API_KEY is required for email generation")

    def validate_for_email(self) -> None:
        """
        Raises:
            ConfigError: If the SendGrid key is missing.
        """
        if not self.SENDGRID_API_KEY:
            raise ConfigError("SENDGRID_API_KEY is required for email delivery")

    def validate_for_database(self) -> None:
        """
        Raises:
            ConfigError: If no database URL is configured.
        """
        if not self.DATABASE_URL:
            raise ConfigError("DATABASE_URL is required for database operations")

    def get_database_connection_args(self) -> dict[str, Any]:
        """Keyword arguments for ``create_async_engine``.

        SQLite engines get no queue-pool sizing.
        """
        if self.DATABASE_URL.startswith("sqlite"):
            return {"echo": self.DATABASE_ECHO}
        return {
            "pool_size": self.DATABASE_POOL_SIZE,
            "max_overflow": self.DATABASE_MAX_OVERFLOW,
            "pool_pre_ping": True,
            "echo": self.DATABASE_ECHO,
        }

    def is_production(self) -> bool:
        return self.APP_ENV.lower() in ("prod", "production")
