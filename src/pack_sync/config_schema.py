"""Pydantic models for the pack-sync YAML config file.

Every section has defaults, so ``UnifiedConfig()`` (zero-config) is valid;
the pack server URL and secret usually arrive via env vars or CLI args.

Usage:
    from pack_sync.config_loader import load_hierarchical_config
    from pack_sync.config_schema import build_config

    unified = build_config(load_hierarchical_config())
    fallbacks = unified.to_fallbacks()
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = "node_modules/yarr/node_machines"
DEFAULT_INSTALL_COMMAND = ["npm", "update"]
DEFAULT_MAX_PARALLEL = 4


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class SourceConfig(BaseModel):
    """Where the desired pack state comes from."""

    url: str | None = Field(default=None, description="Pack server base URL")
    secret: str | None = Field(
        default=None, description="Shared secret sent with the pack listing"
    )
    timeout: float = Field(
        default=60.0,
        gt=0,
        description="Read timeout in seconds for the pack listing request",
    )

    model_config = {"frozen": True}


class CacheConfig(BaseModel):
    """Where packs are materialised.

    Attributes:
        dir: Cache root relative to the project root.
        export: Use the project root itself as the cache root.
    """

    dir: str = Field(default=DEFAULT_CACHE_DIR, description="Cache root")
    export: bool = Field(default=False, description="Export mode")

    model_config = {"frozen": True}


class InstallConfig(BaseModel):
    """Dependency install step run once per changed pack."""

    command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_INSTALL_COMMAND),
        min_length=1,
        description="Command run with the pack directory as cwd",
    )
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds before an install is abandoned (unset: wait forever)",
    )
    enabled: bool = Field(default=True, description="Run installs at all")

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: Record layout, "text" or one JSON object per line ("json").
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: Literal["text", "json"] = Field(
        default="text", description="Log record format"
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level config file contents."""

    source: SourceConfig = Field(default_factory=SourceConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    install: InstallConfig = Field(default_factory=InstallConfig)
    max_parallel: int = Field(
        default=DEFAULT_MAX_PARALLEL,
        ge=1,
        le=64,
        description="Packs reconciled concurrently (1-64)",
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def to_fallbacks(self) -> dict[str, Any]:
        """Flatten into the keyword fallbacks accepted by ``load_config()``.

        ``None`` values are dropped so they never shadow built-in defaults.
        """
        flat = {
            "url": self.source.url,
            "secret": self.source.secret,
            "fetch_timeout": self.source.timeout,
            "cache_dir": self.cache.dir,
            "export": self.cache.export,
            "install_command": list(self.install.command),
            "install_timeout": self.install.timeout,
            "install_enabled": self.install.enabled,
            "max_parallel": self.max_parallel,
        }
        return {k: v for k, v in flat.items() if v is not None}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from ``load_hierarchical_config()`` output.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
