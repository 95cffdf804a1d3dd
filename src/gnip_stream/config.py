"""
gnip_stream Configuration
=========================

This module handles configuration loading for the stream client and the
API clients.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    GNIP_STREAM_URL        -> stream.url
    GNIP_USER              -> stream.user (and search/rules/usage when unset)
    GNIP_PASSWORD          -> stream.password (and search/rules/usage when unset)
    GNIP_USER_AGENT        -> stream.user_agent
    GNIP_TIMEOUT_MS        -> stream.timeout_ms
    GNIP_BACKFILL_MINUTES  -> stream.backfill_minutes
    GNIP_PARTITION         -> stream.partition
    GNIP_SEARCH_URL        -> search.url
    GNIP_RULES_URL         -> rules.url
    GNIP_USAGE_URL         -> usage.url
    GNIP_SERVER_PORT       -> server.port
    GNIP_LOG_LEVEL         -> logging.level
    PORT                   -> server.port (Cloud Run)

Example:
    from gnip_stream.config import get_settings

    settings = get_settings()
    print(settings.stream.url)
    print(settings.search.url)
"""

import os
import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)


# Idle timeout applied when stream.timeout_ms is not set
DEFAULT_TIMEOUT_MS = 35000

# An explicit idle timeout must be strictly above this
MIN_TIMEOUT_MS = 30000


# =============================================================================
# Configuration Models
# =============================================================================

class StreamConfig(BaseModel):
    """
    Streaming endpoint configuration.

    Frozen so a running connection never observes a change. Values are
    checked against the connection rules by StreamClient.start(), not here,
    so an invalid config can still be built and inspected.
    """

    model_config = ConfigDict(frozen=True)

    url: Optional[str] = Field(
        default=None,
        description="HTTPS URL of the streaming endpoint",
    )
    user: str = Field(default="", description="Basic auth user")
    password: str = Field(default="", description="Basic auth password")
    user_agent: Optional[str] = Field(
        default=None,
        description="User-Agent header sent with the stream request",
    )
    timeout_ms: Optional[int] = Field(
        default=None,
        description="Idle timeout in milliseconds (must exceed 30000 when set)",
    )
    backfill_minutes: Optional[int] = Field(
        default=None,
        ge=0,
        description="Replay this many minutes of history at stream start",
    )
    partition: Optional[int] = Field(
        default=None,
        ge=1,
        description="Stream partition to connect to",
    )
    max_value_bytes: Optional[int] = Field(
        default=None,
        ge=1,
        description="Reject a single JSON value larger than this (None = unbounded)",
    )

    @property
    def idle_timeout_seconds(self) -> float:
        """Effective idle timeout in seconds."""
        return (self.timeout_ms or DEFAULT_TIMEOUT_MS) / 1000.0


class ApiConfig(BaseModel):
    """Shared fields of the request/response API clients."""

    model_config = ConfigDict(frozen=True)

    url: Optional[str] = Field(default=None, description="Endpoint URL")
    user: str = Field(default="", description="Basic auth user")
    password: str = Field(default="", description="Basic auth password")
    user_agent: Optional[str] = Field(default=None, description="User-Agent header")
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout",
    )


class SearchConfig(ApiConfig):
    """Search API configuration."""

    counts_url: Optional[str] = Field(
        default=None,
        description="Counts endpoint (derived from url when unset)",
    )


class RulesConfig(ApiConfig):
    """Rules API configuration."""
    pass


class UsageConfig(ApiConfig):
    """Usage API configuration."""
    pass


class BufferConfig(BaseModel):
    """Event buffer used by the service entry point."""

    max_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of buffered events",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for gnip_stream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    stream: StreamConfig = Field(default_factory=StreamConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    # Find config file
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    # Load from YAML if exists
    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    # Apply environment variable overrides
    _apply_env_overrides(config_data)
    _share_credentials(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Stream settings
    if env_url := os.environ.get("GNIP_STREAM_URL"):
        config_data.setdefault("stream", {})["url"] = env_url
    if env_user := os.environ.get("GNIP_USER"):
        config_data.setdefault("stream", {})["user"] = env_user
    if env_password := os.environ.get("GNIP_PASSWORD"):
        config_data.setdefault("stream", {})["password"] = env_password
    if env_agent := os.environ.get("GNIP_USER_AGENT"):
        config_data.setdefault("stream", {})["user_agent"] = env_agent
    if env_timeout := os.environ.get("GNIP_TIMEOUT_MS"):
        config_data.setdefault("stream", {})["timeout_ms"] = int(env_timeout)
    if env_backfill := os.environ.get("GNIP_BACKFILL_MINUTES"):
        config_data.setdefault("stream", {})["backfill_minutes"] = int(env_backfill)
    if env_partition := os.environ.get("GNIP_PARTITION"):
        config_data.setdefault("stream", {})["partition"] = int(env_partition)

    # API endpoints
    if env_search := os.environ.get("GNIP_SEARCH_URL"):
        config_data.setdefault("search", {})["url"] = env_search
    if env_rules := os.environ.get("GNIP_RULES_URL"):
        config_data.setdefault("rules", {})["url"] = env_rules
    if env_usage := os.environ.get("GNIP_USAGE_URL"):
        config_data.setdefault("usage", {})["url"] = env_usage

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("GNIP_SERVER_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("GNIP_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def _share_credentials(config_data: dict) -> None:
    """Copy stream credentials into API sections that define none."""
    stream = config_data.get("stream", {})
    for section in ("search", "rules", "usage"):
        target = config_data.setdefault(section, {})
        for key in ("user", "password", "user_agent"):
            if stream.get(key) and not target.get(key):
                target[key] = stream[key]


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""
    return load_config()
