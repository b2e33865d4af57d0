"""Pack cache reconciliation.

Keeps ``<cache_root>/<pack>/`` directories in line with the pack server.

Modules:

- ``engine``        -- ``PackSyncEngine``: fetch, prune, reconcile, queue installs.
- ``pruner``        -- ``prune()``: drop pack directories no longer listed.
- ``reconciler``    -- ``PackReconciler``: per-pack diff and rewrite.
- ``install_queue`` -- ``InstallQueue``, ``MaintenanceFlag``, ``CommandInstaller``.
- ``state``         -- ``ManifestStore``: per-pack ``package.json`` I/O.
- ``codegen``       -- unit module, manifest and loader text.
- ``models``        -- ``PackSpec``, ``PersistedManifest``, ``PackResult``, ``SyncReport``.
- ``reporter``      -- human-readable and JSON report formatting.

Usage example
-------------
::

    import asyncio
    from pack_sync.config import load_config
    from pack_sync.core.client import PackSourceClient
    from pack_sync.sync import (
        CommandInstaller, InstallQueue, MaintenanceFlag, PackSyncEngine,
        format_sync_report,
    )

    async def main():
        config = load_config()
        queue = InstallQueue(
            MaintenanceFlag(), CommandInstaller(config.install_command)
        )
        engine = PackSyncEngine(
            PackSourceClient(config), config.cache_root, queue
        )
        report = await engine.run()
        print(format_sync_report(report))
        await queue.wait_drained()

    asyncio.run(main())
"""

from .engine import PackSyncEngine
from .install_queue import (
    CommandInstaller,
    InstallQueue,
    InstallResult,
    MaintenanceFlag,
)
from .models import (
    PackAction,
    PackResult,
    PackSpec,
    PersistedManifest,
    SyncReport,
)
from .pruner import prune
from .reconciler import PackReconciler
from .reporter import format_sync_report, report_to_json
from .state import ManifestStore

__all__ = [
    "CommandInstaller",
    "InstallQueue",
    "InstallResult",
    "MaintenanceFlag",
    "ManifestStore",
    "PackAction",
    "PackReconciler",
    "PackResult",
    "PackSpec",
    "PackSyncEngine",
    "PersistedManifest",
    "SyncReport",
    "format_sync_report",
    "prune",
    "report_to_json",
]
