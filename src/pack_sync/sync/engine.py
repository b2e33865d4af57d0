"""Top-level driver for a pack sync run.

The ``PackSyncEngine`` wires the stages together:

1. Fetches the desired state from the pack server.
2. Prunes pack directories the server no longer lists.
3. Reconciles every listed pack concurrently and joins.
4. Queues a dependency install for every pack that changed.
5. Builds and returns a ``SyncReport``.

A fetch or prune failure aborts the run.  Reconciliation errors are
per-pack: a malformed manifest or a filesystem error in one pack is
recorded in the report and the other packs carry on.  The run does not
wait for installs to finish; use ``InstallQueue.wait_drained()`` for that.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from pack_sync.core.async_utils import gather_limited, run_sync, run_sync_limited
from pack_sync.errors import (
    DestinationExistsError,
    MalformedManifestError,
    PackNotFoundError,
)
from pack_sync.sync.install_queue import InstallQueue
from pack_sync.sync.models import PackAction, PackResult, PackSpec, SyncReport
from pack_sync.sync.pruner import prune, remove_pack_dir
from pack_sync.sync.reconciler import PackReconciler

if TYPE_CHECKING:
    from pack_sync.core.client import PackSourceClient

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Exception | None], None]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PackSyncEngine:
    """Run sync and export passes against one cache root.

    Args:
        client: Source of the desired state (``fetch_desired_state()``).
        cache_root: Absolute directory holding one subdirectory per pack.
        queue: Install queue for changed packs.
        install: When ``False``, changed packs are not queued.
    """

    def __init__(
        self,
        client: PackSourceClient,
        cache_root: Path,
        queue: InstallQueue,
        install: bool = True,
    ) -> None:
        self.client = client
        self.cache_root = cache_root
        self.queue = queue
        self.install = install
        self.reconciler = PackReconciler(cache_root)

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def run(
        self, on_complete: CompletionCallback | None = None
    ) -> SyncReport | None:
        """Execute a full sync pass.

        Args:
            on_complete: Called once with the aborting error, the first
                per-pack error, or ``None``.  When given, an aborting
                error is passed to it instead of raised and ``None`` is
                returned.

        Returns:
            The ``SyncReport``, or ``None`` if the run was aborted and
            ``on_complete`` received the error.

        Raises:
            FetchError: If the desired state cannot be fetched.
            OSError: If pruning fails.
        """
        started_at = _now()
        try:
            desired = await run_sync(self.client.fetch_desired_state)
            removed = await run_sync(prune, desired.keys(), self.cache_root)
        except Exception as exc:
            logger.error("Sync aborted: %s", exc)
            if on_complete is None:
                raise
            on_complete(exc)
            return None

        results = [
            PackResult(
                pack_name=name,
                action=PackAction.PRUNED,
                pack_dir=str(self.cache_root / name),
            )
            for name in removed
        ]
        outcomes = await gather_limited(
            [self._reconcile_one(name, spec) for name, spec in desired.items()]
        )
        reconciled = [result for result, _ in outcomes]
        results.extend(reconciled)

        report = SyncReport(
            cache_root=str(self.cache_root),
            results=results,
            install_queued=self._queue_installs(reconciled),
            started_at=started_at,
            completed_at=_now(),
        )

        if on_complete is not None:
            errors = [exc for _, exc in outcomes if exc is not None]
            on_complete(errors[0] if errors else None)
        return report

    # ------------------------------------------------------------------
    # Single-pack export
    # ------------------------------------------------------------------

    async def export_pack(
        self, pack_name: str, force: bool = False
    ) -> SyncReport:
        """Materialise one pack under the cache root without pruning.

        With *force*, an existing destination is removed first, so every
        unit, the manifest and ``index.js`` are written afresh and an
        install is queued.

        Raises:
            FetchError: If the desired state cannot be fetched.
            PackNotFoundError: If the server does not list *pack_name*.
            DestinationExistsError: If the pack directory already exists
                and *force* is not set.
        """
        started_at = _now()
        desired = await run_sync(self.client.fetch_desired_state)
        spec = desired.get(pack_name)
        if spec is None:
            raise PackNotFoundError(pack_name, sorted(desired))

        destination = self.reconciler.pack_dir(pack_name)
        if destination.exists() or destination.is_symlink():
            if not force:
                raise DestinationExistsError(destination)
            # Start from an empty folder so every file is regenerated
            logger.info("Replacing existing %s", destination)
            await run_sync(remove_pack_dir, destination)

        result, _ = await self._reconcile_one(pack_name, spec)
        return SyncReport(
            cache_root=str(self.cache_root),
            results=[result],
            install_queued=self._queue_installs([result]),
            started_at=started_at,
            completed_at=_now(),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reconcile_one(
        self, pack_name: str, spec: PackSpec
    ) -> tuple[PackResult, Exception | None]:
        """Reconcile one pack, turning per-pack failures into a result."""
        try:
            result = await run_sync_limited(
                self.reconciler.reconcile, pack_name, spec
            )
        except (MalformedManifestError, OSError) as exc:
            logger.error("Failed to reconcile pack %s: %s", pack_name, exc)
            failed = PackResult(
                pack_name=pack_name,
                action=PackAction.FAILED,
                pack_dir=str(self.reconciler.pack_dir(pack_name)),
                success=False,
                error=str(exc),
            )
            return failed, exc
        return result, None

    def _queue_installs(self, results: list[PackResult]) -> list[str]:
        if not self.install:
            return []
        queued: list[str] = []
        for result in results:
            if result.changed:
                self.queue.enqueue(Path(result.pack_dir))
                queued.append(result.pack_dir)
        return queued
