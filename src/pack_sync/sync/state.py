"""Per-pack manifest persistence.

Each pack directory carries a ``package.json`` recording which unit
versions are materialised there.  It is the only durable state the sync
engine owns besides the generated unit files.

Key design choices:

* **Atomic writes** -- ``write_atomic()`` writes a temp file in the
  target directory then ``os.replace()``-s it, so readers never see a
  half-written manifest or unit.
* **Raw and typed views** -- ``load()`` returns both the validated
  ``PersistedManifest`` and the raw dict it came from.  Change detection
  serializes the raw dict, so keys the engine does not know about still
  count as a difference.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from pack_sync.errors import MalformedManifestError
from pack_sync.sync.codegen import MANIFEST_FILENAME
from pack_sync.sync.models import PersistedManifest

logger = logging.getLogger(__name__)


def write_atomic(path: Path, text: str) -> None:
    """Replace *path* with *text* atomically (UTF-8)."""
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class ManifestStore:
    """Load and save the manifest of one pack directory.

    Args:
        pack_name: Pack name, used in error messages.
        pack_dir: The pack's directory.
    """

    def __init__(self, pack_name: str, pack_dir: Path) -> None:
        self.pack_name = pack_name
        self.pack_dir = pack_dir

    @property
    def path(self) -> Path:
        return self.pack_dir / MANIFEST_FILENAME

    @staticmethod
    def empty() -> dict[str, Any]:
        """Wire form of a manifest for a pack with nothing materialised."""
        return PersistedManifest().to_wire()

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> tuple[PersistedManifest, dict[str, Any]]:
        """Read the manifest.

        Returns:
            ``(manifest, raw)``.  A missing file yields the empty manifest
            for both.

        Raises:
            MalformedManifestError: If the file is not JSON or not
                manifest-shaped.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raw = self.empty()
            return PersistedManifest.model_validate(raw), raw

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedManifestError(
                self.pack_name, self.path, str(exc)
            ) from exc

        if not isinstance(raw, dict):
            raise MalformedManifestError(
                self.pack_name,
                self.path,
                f"expected a JSON object, got {type(raw).__name__}",
            )

        try:
            manifest = PersistedManifest.model_validate(raw)
        except ValidationError as exc:
            raise MalformedManifestError(
                self.pack_name, self.path, str(exc)
            ) from exc

        return manifest, raw

    def save_text(self, text: str) -> None:
        """Write already-serialized manifest text atomically."""
        write_atomic(self.path, text)
        logger.debug("Wrote manifest %s", self.path)
