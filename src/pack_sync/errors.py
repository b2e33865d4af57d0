"""Exception types raised by pack-sync.

Filesystem failures are not wrapped: they surface as the builtin
``OSError`` family and are handled per pack by the engine.  Only the
conditions with domain meaning get their own class here.
"""

from __future__ import annotations

from pathlib import Path


class PackSyncError(Exception):
    """Base class for all pack-sync errors."""


class FetchError(PackSyncError):
    """The pack server could not be reached or returned unusable data.

    Aborts the whole sync run.
    """


class MalformedManifestError(PackSyncError):
    """A pack's ``package.json`` exists on disk but cannot be parsed.

    Only the affected pack is aborted; sibling packs still reconcile.
    """

    def __init__(self, pack_name: str, path: Path, message: str) -> None:
        self.pack_name = pack_name
        self.path = path
        self.message = message
        super().__init__(
            f"Malformed manifest for pack '{pack_name}' at {path}: {message}"
        )


class InstallError(PackSyncError):
    """The dependency install command failed for a pack directory."""

    def __init__(
        self,
        pack_dir: Path,
        message: str,
        returncode: int | None = None,
    ) -> None:
        self.pack_dir = pack_dir
        self.returncode = returncode
        self.message = message
        detail = f" (exit code {returncode})" if returncode is not None else ""
        super().__init__(f"Install failed in {pack_dir}{detail}: {message}")


class PackNotFoundError(PackSyncError):
    """The requested pack is not listed by the pack server."""

    def __init__(self, pack_name: str, available: list[str]) -> None:
        self.pack_name = pack_name
        self.available = available
        listing = ", ".join(available) if available else "none"
        super().__init__(
            f"Pack '{pack_name}' not found on server (available: {listing})"
        )


class DestinationExistsError(PackSyncError):
    """An export target already exists and ``force`` was not given."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(
            f"A file or folder already exists at {path}. "
            "Pass --force to overwrite it."
        )
