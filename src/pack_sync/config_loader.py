"""
Config file discovery and loading for pack-sync.

Files are plain YAML (``yaml.safe_load``).  Several may exist; they are
merged with "project wins" semantics and ``${VAR}`` references are
expanded afterwards so values from ``.env`` can be injected.

Usage:
    from pack_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PACK_SYNC_CONFIG"

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  An unterminated ``${`` is left as is.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``PACK_SYNC_CONFIG`` env var (explicit path)
        2. ``.pack_sync/config.yml`` in the current directory
        3. ``~/.config/pack_sync/config.yml``
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        explicit = Path(env_path).expanduser().resolve()
        if not explicit.exists():
            logger.warning(
                "%s points at %s, which does not exist",
                CONFIG_ENV_VAR,
                explicit,
            )
        candidates.append(explicit)

    candidates.append(Path.cwd() / ".pack_sync" / "config.yml")
    candidates.append(Path.home() / ".config" / "pack_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


def load_config_file(path: Path) -> dict[str, Any]:
    """Parse one YAML config file; an empty file yields ``{}``."""
    with open(path, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Config file %s has non-dict root (%s) - skipping",
            path,
            type(data).__name__,
        )
        return {}
    return data


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest precedence to highest; top-level keys
    from a later file replace (not deep-merge) earlier ones.  Returns an
    empty dict when nothing is found.
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found - using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            merged.update(load_config_file(path))
        except yaml.YAMLError:
            logger.exception("Failed to parse config file %s", path)
            raise

    return _interpolate_recursive(merged)
