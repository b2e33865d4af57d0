"""Runtime configuration for pack-sync.

Reads settings from CLI args, environment variables, .env files, and
YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    PACK_SYNC_URL: Pack server base URL (required)
    PACK_SYNC_SECRET: Shared secret for the pack listing (required)
    PACK_SYNC_EXPORT: Use the current directory as cache root (default: false)
    PACK_SYNC_CACHE_DIR: Cache root relative to the project root
    PACK_SYNC_INSTALL_COMMAND: Install command, shell-quoted (default: npm update)
    PACK_SYNC_INSTALL_TIMEOUT: Seconds before an install is abandoned (default: none)
    PACK_SYNC_MAX_PARALLEL: Packs reconciled concurrently (default: 4)
    PACK_SYNC_DEBUG: Enable debug logging (default: false)
"""

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from .config_schema import (
    DEFAULT_CACHE_DIR,
    DEFAULT_INSTALL_COMMAND,
    DEFAULT_MAX_PARALLEL,
)

logger = logging.getLogger(__name__)


@dataclass
class Config:
    source_url: str
    secret: str
    project_root: Path = field(default_factory=Path.cwd)
    export: bool = False
    cache_dir: str = DEFAULT_CACHE_DIR
    install_command: list[str] = field(
        default_factory=lambda: list(DEFAULT_INSTALL_COMMAND)
    )
    install_timeout: float | None = None
    install_enabled: bool = True
    fetch_timeout: float = 60.0
    max_parallel: int = DEFAULT_MAX_PARALLEL
    debug: bool = False

    @property
    def cache_root(self) -> Path:
        return resolve_cache_root(
            self.project_root, export=self.export, cache_dir=self.cache_dir
        )


def resolve_cache_root(
    project_root: Path,
    export: bool = False,
    cache_dir: str = DEFAULT_CACHE_DIR,
) -> Path:
    """Return the absolute directory that holds one subdirectory per pack.

    In export mode the project root itself is the cache root.
    """
    root = Path(project_root).resolve()
    if export:
        return root
    return (root / cache_dir).resolve()


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the URL is malformed or the secret is empty.
    """
    config.source_url = config.source_url.strip()

    if not config.source_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid pack server URL '{config.source_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.source_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid pack server URL '{config.source_url}': URL must include a hostname"
        )

    config.source_url = config.source_url.removesuffix("/")

    if not config.secret.strip():
        raise ValueError(
            "Pack server secret cannot be empty. Set PACK_SYNC_SECRET environment variable."
        )

    if not config.install_command:
        raise ValueError("Install command cannot be empty.")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(
    key: str, cast: type, low: float, high: float | None = None
) -> float | int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    bounds = f"between {low} and {high}" if high is not None else f"at least {low}"
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number {bounds}"
        ) from None
    if value < low or (high is not None and value > high):
        raise ValueError(f"Invalid {key} '{raw}': must be a number {bounds}")
    return value


def load_config(
    url: str | None = None,
    secret: str | None = None,
    export: bool = False,
    debug: bool = False,
    project_root: Path | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` first.

    Args:
        url: Override pack server URL.
        secret: Override shared secret.
        export: Export mode (CLI flag).
        debug: Enable debug logging (CLI flag).
        project_root: Directory the cache root is resolved against
            (defaults to the current directory).
        yaml_fallbacks: Flat dict from ``UnifiedConfig.to_fallbacks()``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If URL or secret is missing or any value is invalid.
    """
    fb = yaml_fallbacks or {}

    source_url = url or os.getenv("PACK_SYNC_URL") or fb.get("url")
    if not source_url:
        raise ValueError(
            "Pack server URL not found. Set PACK_SYNC_URL environment variable, "
            "pass --url CLI argument, or add 'source.url' to config.yml."
        )

    source_secret = secret or os.getenv("PACK_SYNC_SECRET") or fb.get("secret")
    if not source_secret:
        raise ValueError(
            "Pack server secret not found. Set PACK_SYNC_SECRET environment variable, "
            "pass --secret CLI argument, or add 'source.secret' to config.yml."
        )

    # --- Booleans: CLI flag > env > YAML > default ---

    def pick_bool(cli_value: bool, env_key: str, fb_key: str, default: bool) -> bool:
        if cli_value:
            return True
        env_value = _get_bool_env(env_key)
        if env_value is not None:
            return env_value
        return bool(fb.get(fb_key, default))

    final_export = pick_bool(export, "PACK_SYNC_EXPORT", "export", False)
    final_debug = pick_bool(debug, "PACK_SYNC_DEBUG", "debug", False)

    # --- Everything else: env > YAML > default ---

    cache_dir = os.getenv("PACK_SYNC_CACHE_DIR") or fb.get(
        "cache_dir", DEFAULT_CACHE_DIR
    )

    command_raw = os.getenv("PACK_SYNC_INSTALL_COMMAND")
    if command_raw is not None:
        install_command = shlex.split(command_raw)
    else:
        install_command = list(
            fb.get("install_command", DEFAULT_INSTALL_COMMAND)
        )

    install_timeout = _get_number_env("PACK_SYNC_INSTALL_TIMEOUT", float, 1)
    if install_timeout is None:
        install_timeout = fb.get("install_timeout")

    max_parallel = _get_number_env("PACK_SYNC_MAX_PARALLEL", int, 1, 64)
    if max_parallel is None:
        max_parallel = int(fb.get("max_parallel", DEFAULT_MAX_PARALLEL))

    config = Config(
        source_url=source_url,
        secret=source_secret,
        project_root=project_root or Path.cwd(),
        export=final_export,
        cache_dir=cache_dir,
        install_command=install_command,
        install_timeout=install_timeout,
        install_enabled=bool(fb.get("install_enabled", True)),
        fetch_timeout=float(fb.get("fetch_timeout", 60.0)),
        max_parallel=max_parallel,
        debug=final_debug,
    )

    validate_config(config)

    return config
