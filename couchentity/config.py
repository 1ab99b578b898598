"""
Configuration for couchentity.

Settings are read from environment variables prefixed with ``COUCHENTITY_``:

    COUCHENTITY_COUCHDB_URL=http://localhost
    COUCHENTITY_COUCHDB_PORT=5984
    COUCHENTITY_USERNAME=admin
    COUCHENTITY_PASSWORD=secret
    COUCHENTITY_SECRET_KEY=change-me
    COUCHENTITY_LOG_FORMAT=json

Invariants:
    - Settings are immutable once loaded
    - Nothing in the entity layer reads settings implicitly; the objects
      built from them (Security, Server) are passed explicitly
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings
from pythonjsonlogger.json import JsonFormatter


class Settings(BaseSettings):
    """couchentity configuration."""

    # CouchDB server
    couchdb_url: str = Field(default="http://localhost", description="CouchDB base URL")
    couchdb_port: int = Field(default=5984)
    username: str | None = Field(default=None, description="Basic auth user")
    password: str | None = Field(default=None)
    token: str | None = Field(default=None, description="Bearer token, used when no username is set")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    # Encryption key for encrypted properties
    secret_key: str | None = Field(default=None)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="'text' or 'json'")

    model_config = {"env_prefix": "COUCHENTITY_", "frozen": True}

    @property
    def endpoint(self) -> str:
        """Server endpoint including port."""
        return f"{self.couchdb_url.rstrip('/')}:{self.couchdb_port}"


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings.

    Args:
        settings: couchentity settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
