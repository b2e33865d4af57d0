"""Strictly serialized dependency installation.

Installing a pack's dependencies is slow and two installs running at once
can corrupt a shared lockfile, so every install goes through one
``InstallQueue`` that runs a single task at a time, in enqueue order.

While anything is pending or running, the queue holds the shared
``MaintenanceFlag`` up.  Other parts of the host process read that flag to
know the dependency tree is in flux; only the queue writes it.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from pack_sync.core.async_utils import run_sync
from pack_sync.errors import InstallError

logger = logging.getLogger(__name__)

Installer = Callable[[Path], Awaitable[None]]
TaskCallback = Callable[[Path, "InstallError | None"], None]
FlagWatcher = Callable[[bool], None]


class MaintenanceFlag:
    """Process-wide "installs in flight" signal.

    Starts lowered.  Pass the same instance to the queue and to whatever
    reports health; watchers are called on every transition.
    """

    def __init__(self) -> None:
        self._active = False
        self._watchers: list[FlagWatcher] = []

    @property
    def active(self) -> bool:
        return self._active

    def subscribe(self, watcher: FlagWatcher) -> None:
        self._watchers.append(watcher)

    def _set(self, value: bool) -> None:
        if value == self._active:
            return
        self._active = value
        logger.info("Maintenance mode %s", "on" if value else "off")
        for watcher in list(self._watchers):
            try:
                watcher(value)
            except Exception:
                logger.exception("Maintenance flag watcher failed")


@dataclass(frozen=True)
class InstallResult:
    """Outcome of one install task."""

    pack_dir: Path
    error: InstallError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class _InstallTask:
    pack_dir: Path
    callback: TaskCallback | None
    future: asyncio.Future


class CommandInstaller:
    """Run an install command with the pack directory as working directory.

    Args:
        command: argv list, e.g. ``["npm", "update"]``.
        timeout: Seconds before the command is killed.  ``None`` waits
            forever, so a hung command stalls the queue.
    """

    def __init__(
        self, command: list[str], timeout: float | None = None
    ) -> None:
        self.command = list(command)
        self.timeout = timeout

    async def __call__(self, pack_dir: Path) -> None:
        logger.debug("Running %s in %s", " ".join(self.command), pack_dir)
        try:
            completed = await run_sync(
                subprocess.run,
                self.command,
                cwd=str(pack_dir),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise InstallError(
                pack_dir, f"command not found: {self.command[0]}"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise InstallError(
                pack_dir, f"timed out after {self.timeout}s"
            ) from exc

        if completed.stdout:
            logger.debug("%s", completed.stdout.rstrip())
        if completed.returncode != 0:
            raise InstallError(
                pack_dir,
                (completed.stderr or "").strip() or "no error output",
                returncode=completed.returncode,
            )


class InstallQueue:
    """FIFO install runner with concurrency 1.

    Args:
        flag: Shared maintenance flag; raised on the first enqueue while
            idle and lowered when the queue drains.
        installer: Async callable doing the install for one directory.
            Raising ``InstallError`` marks the task failed.
    """

    def __init__(self, flag: MaintenanceFlag, installer: Installer) -> None:
        self.flag = flag
        self.installer = installer
        self._pending: deque[_InstallTask] = deque()
        self._in_flight: _InstallTask | None = None
        self._worker: asyncio.Task | None = None
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def idle(self) -> bool:
        return not self._pending and self._in_flight is None

    def __len__(self) -> int:
        return len(self._pending) + (1 if self._in_flight else 0)

    def enqueue(
        self, pack_dir: Path, callback: TaskCallback | None = None
    ) -> asyncio.Future:
        """Schedule an install for *pack_dir*.

        Never raises for install failures: they go to *callback* as
        ``(pack_dir, error)`` and resolve the returned future to a failed
        ``InstallResult``.  Must be called from within the event loop.
        """
        loop = asyncio.get_running_loop()
        if self.idle:
            self._drained.clear()
            self.flag._set(True)

        task = _InstallTask(Path(pack_dir), callback, loop.create_future())
        self._pending.append(task)
        logger.debug(
            "Queued install for %s (%d pending)", pack_dir, len(self)
        )

        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return task.future

    async def wait_drained(self) -> None:
        """Block until nothing is pending or running."""
        await self._drained.wait()

    async def _drain(self) -> None:
        while self._pending:
            task = self._pending.popleft()
            self._in_flight = task
            error: InstallError | None = None
            try:
                await self.installer(task.pack_dir)
            except InstallError as exc:
                error = exc
            except Exception as exc:
                error = InstallError(task.pack_dir, str(exc))
                error.__cause__ = exc
            finally:
                self._in_flight = None
            self._finish(task, error)

        self.flag._set(False)
        self._drained.set()

    @staticmethod
    def _finish(task: _InstallTask, error: InstallError | None) -> None:
        if error is None:
            logger.info("Installed dependencies in %s", task.pack_dir)
        else:
            logger.error("%s", error)

        if task.callback is not None:
            try:
                task.callback(task.pack_dir, error)
            except Exception:
                logger.exception(
                    "Install callback for %s failed", task.pack_dir
                )
        if not task.future.done():
            task.future.set_result(InstallResult(task.pack_dir, error))
