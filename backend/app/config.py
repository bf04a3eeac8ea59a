"""Wellness Hub application configuration.

Loads settings from a single YAML file, ``wellness.settings.yaml``, looked up in
this order:

  * the path in the ``WELLNESS_SETTINGS`` environment variable
  * ``./config/wellness.settings.yaml``
  * ``./wellness.settings.yaml``

A missing file is not an error; every field has a default.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_ENV_VAR = "WELLNESS_SETTINGS"
SETTINGS_FILENAME = "wellness.settings.yaml"
SETTINGS_CANDIDATES = (
    Path("config") / SETTINGS_FILENAME,
    Path(SETTINGS_FILENAME),
)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _find_settings_file() -> Optional[Path]:
    env_path = os.environ.get(SETTINGS_ENV_VAR)
    if env_path:
        return Path(env_path)
    for candidate in SETTINGS_CANDIDATES:
        if candidate.exists():
            return candidate
    return None


def _base_dir_for(settings_path: Path) -> Path:
    """Directory that relative paths in *settings_path* are resolved against.

    Settings kept in a ``config/`` directory resolve from the project root
    (the parent of ``config/``); anywhere else they resolve from the file's
    own directory.
    """
    settings_dir = settings_path.resolve().parent
    if settings_dir.name == "config":
        return settings_dir.parent
    return settings_dir


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 3000
    environment:     Literal["development", "production", "test"] = "development"
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:8080"])


class LoggingConfig(BaseModel):
    level:  str = "info"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class UploadConfig(BaseModel):
    """Where uploaded files live and how large they may be."""
    dir:             str = "uploads"
    image_max_mb:    int = 5
    document_max_mb: int = 20

    @field_validator("image_max_mb", "document_max_mb")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("size limit must be a positive number of megabytes")
        return value

    @property
    def image_max_bytes(self) -> int:
        return self.image_max_mb * 1024 * 1024

    @property
    def document_max_bytes(self) -> int:
        return self.document_max_mb * 1024 * 1024


class AppConfig(BaseModel):
    server:  ServerConfig  = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    uploads: UploadConfig  = Field(default_factory=UploadConfig)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppConfig] = None


def load_config(settings_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load *AppConfig* from YAML, resolving relative paths.

    Args:
        settings_path: Explicit settings file. When omitted the file is
            discovered via ``WELLNESS_SETTINGS`` or the default locations.

    Returns:
        A fully validated AppConfig.
    """
    path = Path(settings_path) if settings_path else _find_settings_file()

    if path is None:
        logger.info("No %s found, using defaults", SETTINGS_FILENAME)
        data: Dict[str, Any] = {}
        base_dir = Path.cwd()
    else:
        data = _load_yaml(path)
        base_dir = _base_dir_for(path)

    config = AppConfig(**data)

    upload_dir = Path(config.uploads.dir).expanduser()
    if not upload_dir.is_absolute():
        upload_dir = base_dir / upload_dir
    config.uploads.dir = str(upload_dir)

    logger.info(
        "Settings loaded (server=%s:%s, environment=%s, uploads.dir=%s)",
        config.server.host,
        config.server.port,
        config.server.environment,
        config.uploads.dir,
    )
    return config


def get_config() -> AppConfig:
    """Return the process-wide config, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
