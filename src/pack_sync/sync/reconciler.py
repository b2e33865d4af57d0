"""Bring one pack directory in line with its desired ``PackSpec``.

The reconciler owns the unit files of every pack it touches.  For each
pack it:

1. Creates the pack directory if needed.
2. Loads the persisted manifest (absent means empty).
3. Deletes the files of units the pack no longer lists.
4. Writes units whose version is new or differs from the manifest.
5. Serializes the candidate manifest and the loaded one with the same
   function and compares the text.
6. Only on a difference, writes ``package.json`` and ``index.js`` and
   reports the pack as changed.

Versions are compared as exact strings.  A unit whose version did not
move is never rewritten, even if its definition did; the server is
expected to bump the version whenever a unit changes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pack_sync.sync.codegen import (
    INDEX_FILENAME,
    INDEX_STUB,
    render_unit,
    serialize_manifest,
    unit_filename,
)
from pack_sync.sync.models import (
    PackAction,
    PackResult,
    PackSpec,
    PersistedManifest,
)
from pack_sync.sync.state import ManifestStore, write_atomic

logger = logging.getLogger(__name__)


class PackReconciler:
    """Reconcile packs under one cache root.

    Args:
        cache_root: Absolute directory holding one subdirectory per pack.
    """

    def __init__(self, cache_root: Path) -> None:
        self.cache_root = cache_root

    def pack_dir(self, pack_name: str) -> Path:
        return self.cache_root / pack_name

    def reconcile(self, pack_name: str, spec: PackSpec) -> PackResult:
        """Apply *spec* to the pack's directory.

        Returns:
            A ``PackResult``; ``result.changed`` is the signal that the
            pack's dependencies need installing.

        Raises:
            MalformedManifestError: If the existing manifest is unreadable.
            OSError: On filesystem failures other than already-exists /
                already-gone.
        """
        pack_dir = self.pack_dir(pack_name)
        pack_dir.mkdir(parents=True, exist_ok=True)

        store = ManifestStore(pack_name, pack_dir)
        had_manifest = store.exists()
        previous, previous_raw = store.load()
        previous_versions = previous.units.machine_versions

        desired_units = spec.resolved_units()

        # All deletions happen before any write
        deleted = self._delete_stale(
            pack_dir, set(previous_versions) - set(desired_units)
        )

        candidate = PersistedManifest(dependencies=dict(spec.dependencies))
        written: list[str] = []
        for unit_name, (version, definition) in desired_units.items():
            if previous_versions.get(unit_name) != version:
                write_atomic(
                    pack_dir / unit_filename(unit_name),
                    render_unit(definition),
                )
                written.append(unit_name)
                logger.debug(
                    "Wrote unit %s/%s at version %s",
                    pack_name,
                    unit_name,
                    version,
                )
            candidate.record(unit_name, version)

        candidate_text = serialize_manifest(candidate.to_wire())
        if candidate_text == serialize_manifest(previous_raw):
            logger.debug("Pack %s is up to date", pack_name)
            return PackResult(
                pack_name=pack_name,
                action=PackAction.UNCHANGED,
                pack_dir=str(pack_dir),
                written_units=written,
                deleted_units=deleted,
            )

        store.save_text(candidate_text)
        write_atomic(pack_dir / INDEX_FILENAME, INDEX_STUB)

        action = PackAction.UPDATED if had_manifest else PackAction.CREATED
        logger.info(
            "Pack %s %s: %d unit(s) written, %d removed",
            pack_name,
            action.value,
            len(written),
            len(deleted),
        )
        return PackResult(
            pack_name=pack_name,
            action=action,
            pack_dir=str(pack_dir),
            written_units=written,
            deleted_units=deleted,
        )

    @staticmethod
    def _delete_stale(pack_dir: Path, stale: set[str]) -> list[str]:
        deleted: list[str] = []
        for unit_name in sorted(stale):
            target = pack_dir / unit_filename(unit_name)
            try:
                target.unlink()
            except FileNotFoundError:
                # Manifest still listed it; nothing left to remove
                logger.debug("Stale unit file %s already gone", target)
            deleted.append(unit_name)
        return deleted
