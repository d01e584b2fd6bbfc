"""
mjpeg-stream Configuration
==========================

This module handles configuration loading for the MJPEG streaming server.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    MJPEG_CONFIG            -> path of the YAML file
    MJPEG_BOUNDARY          -> stream.boundary_token
    MJPEG_SOURCE            -> stream.source
    MJPEG_FRAME_INTERVAL_MS -> stream.frame_interval_ms
    MJPEG_STATIC_ROOT       -> static.root
    MJPEG_PORT              -> server.port
    MJPEG_LOG_LEVEL         -> logging.level
    PORT                    -> server.port (container platforms)

Example:
    from mjpeg_stream.config import settings

    print(settings.stream.boundary_token)
    print(settings.server.port)
"""

import os
import logging
import string
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator


logger = logging.getLogger(__name__)


# RFC 2046 bchars
_BOUNDARY_CHARS = frozenset(string.ascii_letters + string.digits + "'()+_,-./:=? ")


# =============================================================================
# Configuration Models
# =============================================================================

class StreamConfig(BaseModel):
    """Streaming session configuration."""

    boundary_token: str = Field(
        default="abcd4321",
        min_length=1,
        max_length=70,
        description="Multipart boundary separating frames",
    )
    source: str = Field(
        default="demo",
        description="Frame source for /animation: 'demo', 'pattern' or 'camera'",
    )
    frame_interval_ms: int = Field(
        default=500,
        ge=0,
        description="Pacing delay between consecutive frames in milliseconds",
    )
    frame_width: int = Field(default=200, ge=1, le=4096, description="Rendered frame width")
    frame_height: int = Field(default=200, ge=1, le=4096, description="Rendered frame height")
    jpeg_quality: int = Field(default=90, ge=1, le=100, description="JPEG quality")
    camera_device: int = Field(default=0, ge=0, description="OpenCV capture device index")
    next_frame_timeout_sec: Optional[float] = Field(
        default=None,
        gt=0,
        description="Abort when the source takes longer than this to produce a frame",
    )
    flush_timeout_sec: Optional[float] = Field(
        default=None,
        gt=0,
        description="Abort when a flush takes longer than this",
    )
    check_boundary: bool = Field(
        default=False,
        description="Reject frames whose payload contains the boundary token",
    )

    @field_validator("boundary_token")
    @classmethod
    def _validate_boundary(cls, value: str) -> str:
        invalid = set(value) - _BOUNDARY_CHARS
        if invalid:
            raise ValueError(
                f"boundary_token contains invalid characters: {''.join(sorted(invalid))!r}"
            )
        if value.endswith(" "):
            raise ValueError("boundary_token must not end with a space")
        return value


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, ge=1, le=65535, description="Bind port")


class StaticConfig(BaseModel):
    """Static file serving configuration."""

    root: str = Field(default="./static", description="Directory served at /")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for mjpeg-stream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    stream: StreamConfig = Field(default_factory=StreamConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    static: StaticConfig = Field(default_factory=StaticConfig)
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
        config_path: Path to config.yaml. If None, uses MJPEG_CONFIG or
            searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        config_path = os.environ.get("MJPEG_CONFIG")

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

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Stream settings
    if env_boundary := os.environ.get("MJPEG_BOUNDARY"):
        config_data.setdefault("stream", {})["boundary_token"] = env_boundary
    if env_source := os.environ.get("MJPEG_SOURCE"):
        config_data.setdefault("stream", {})["source"] = env_source
    if env_interval := os.environ.get("MJPEG_FRAME_INTERVAL_MS"):
        config_data.setdefault("stream", {})["frame_interval_ms"] = int(env_interval)

    # Static files
    if env_root := os.environ.get("MJPEG_STATIC_ROOT"):
        config_data.setdefault("static", {})["root"] = env_root

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("MJPEG_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("MJPEG_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


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


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
