"""Command-line entry point: ``pack-sync sync`` and ``pack-sync export``."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .core.async_utils import init_semaphore
from .core.client import PackSourceClient
from .errors import PackSyncError
from .logger import setup_logging
from .sync import (
    CommandInstaller,
    InstallQueue,
    MaintenanceFlag,
    PackSyncEngine,
    SyncReport,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def load_settings(overrides: dict[str, Any]) -> tuple[Config, UnifiedConfig]:
    """Resolve configuration from CLI > env/.env > YAML > defaults.

    Raises:
        ValueError: If required settings are missing or invalid.
    """
    # .env first so ${VAR} in YAML can see its values
    load_dotenv()

    unified = build_config(load_hierarchical_config())
    config_files = discover_config_files()
    if config_files:
        logger.info("Using config file: %s", config_files[0])

    config = load_config(
        url=overrides.get("url"),
        secret=overrides.get("secret"),
        export=overrides.get("export", False),
        debug=overrides.get("debug", False),
        yaml_fallbacks=unified.to_fallbacks(),
    )
    return config, unified


def build_engine(config: Config, install: bool = True) -> PackSyncEngine:
    queue = InstallQueue(
        MaintenanceFlag(),
        CommandInstaller(config.install_command, config.install_timeout),
    )
    return PackSyncEngine(
        client=PackSourceClient(config),
        cache_root=config.cache_root,
        queue=queue,
        install=install and config.install_enabled,
    )


def _print_report(report: SyncReport, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_sync_report(report))


async def main(args: argparse.Namespace, config: Config) -> int:
    """Run one command; returns the process exit status."""
    init_semaphore(config.max_parallel)
    engine = build_engine(config, install=not args.no_install)
    try:
        if args.command == "export":
            report = await engine.export_pack(args.pack, force=args.force)
        else:
            report = await engine.run()
    finally:
        engine.client.close()

    _print_report(report, args.json)

    if report.install_queued:
        _stderr_print(
            f"Waiting for {len(report.install_queued)} dependency install(s)..."
        )
        await engine.queue.wait_drained()

    return 1 if report.errors else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pack-sync",
        description="Synchronize the local machinepack cache with the pack server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync every pack into node_modules/yarr/node_machines
  pack-sync sync

  # Sync into the current directory instead
  pack-sync sync --export

  # Export a single pack into ./<pack>, replacing what is there
  pack-sync export my-pack --force

Connection settings come from PACK_SYNC_URL / PACK_SYNC_SECRET, a .env
file, or .pack_sync/config.yml.
        """,
    )
    parser.add_argument(
        "--url",
        help="Override pack server URL (takes precedence over PACK_SYNC_URL and config files)",
    )
    parser.add_argument(
        "--secret",
        help="Override pack server secret"
        " (visible in process list -- prefer PACK_SYNC_SECRET)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--log-file", help="Also append logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log record format (default: logging.format from config, else text)",
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"pack-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync_cmd = sub.add_parser("sync", help="Reconcile every pack")
    sync_cmd.add_argument(
        "--export",
        action="store_true",
        help="Use the current directory as the cache root",
    )
    sync_cmd.add_argument(
        "--no-install",
        action="store_true",
        help="Skip dependency installation for changed packs",
    )

    export_cmd = sub.add_parser(
        "export", help="Write one pack into the current directory"
    )
    export_cmd.add_argument("pack", help="Name of the pack to export")
    export_cmd.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing folder of the same name",
    )
    export_cmd.add_argument(
        "--no-install",
        action="store_true",
        help="Skip dependency installation",
    )
    return parser


def run(argv: list[str] | None = None) -> None:
    """Entry point for the ``pack-sync`` console script."""
    args = _build_parser().parse_args(argv)

    overrides: dict[str, Any] = {}
    if args.url:
        overrides["url"] = args.url
    if args.secret:
        overrides["secret"] = args.secret
    if args.debug:
        overrides["debug"] = True
    if args.command == "export" or getattr(args, "export", False):
        overrides["export"] = True

    try:
        config, unified = load_settings(overrides)
    except ValueError as e:
        _stderr_print(f"ERROR: Configuration error: {e}")
        sys.exit(1)

    setup_logging(
        debug=config.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        status = asyncio.run(main(args, config))
    except PackSyncError as e:
        logger.error("%s", e)
        _stderr_print(f"ERROR: {e}")
        sys.exit(1)
    except OSError as e:
        logger.error("Filesystem error: %s", e)
        _stderr_print(f"ERROR: Filesystem error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        _stderr_print("\nInterrupted.")
        sys.exit(130)
    sys.exit(status)


if __name__ == "__main__":
    run()
