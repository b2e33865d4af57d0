"""Remove pack directories the server no longer lists."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)


def list_pack_dirs(cache_root: Path) -> set[str]:
    """Names of the immediate subdirectories of *cache_root*."""
    return {entry.name for entry in cache_root.iterdir() if entry.is_dir()}


def remove_pack_dir(target: Path) -> None:
    """Delete one pack directory.  A symlink or plain file is unlinked."""
    if target.is_symlink() or not target.is_dir():
        target.unlink()
    else:
        shutil.rmtree(target)


def prune(desired_pack_names: Iterable[str], cache_root: Path) -> list[str]:
    """Delete every pack directory under *cache_root* not in the desired set.

    *cache_root* is created first if needed.  Names match exactly
    (case-sensitive).  Plain files in the cache root are left alone; a
    symlinked pack directory is unlinked rather than emptied.
    Running it twice with the same names is a no-op the second time.

    Returns:
        Sorted names of the directories removed.

    Raises:
        OSError: On any filesystem failure other than a directory that is
            already gone.
    """
    cache_root.mkdir(parents=True, exist_ok=True)

    stale = sorted(list_pack_dirs(cache_root) - set(desired_pack_names))
    removed: list[str] = []
    for name in stale:
        target = cache_root / name
        try:
            remove_pack_dir(target)
        except FileNotFoundError:
            logger.debug("Pack directory %s already gone", target)
            continue
        logger.info("Pruned pack %s", name)
        removed.append(name)
    return removed
