"""Tests for the serialized install queue and maintenance flag."""

from __future__ import annotations

import asyncio
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from pack_sync.errors import InstallError
from pack_sync.sync.install_queue import (
    CommandInstaller,
    InstallQueue,
    InstallResult,
    MaintenanceFlag,
)

# ---------------------------------------------------------------------------
# MaintenanceFlag
# ---------------------------------------------------------------------------


class TestMaintenanceFlag:
    def test_starts_inactive(self):
        assert MaintenanceFlag().active is False

    def test_watchers_see_transitions_only(self):
        flag = MaintenanceFlag()
        seen: list[bool] = []
        flag.subscribe(seen.append)
        flag._set(True)
        flag._set(True)
        flag._set(False)
        assert seen == [True, False]

    def test_failing_watcher_does_not_block_others(self):
        flag = MaintenanceFlag()
        seen: list[bool] = []

        def _bad(_value):
            raise RuntimeError("watcher bug")

        flag.subscribe(_bad)
        flag.subscribe(seen.append)
        flag._set(True)
        assert seen == [True]
        assert flag.active


# ---------------------------------------------------------------------------
# Queue ordering and concurrency
# ---------------------------------------------------------------------------


class TestQueueSerialization:
    async def test_runs_fifo_one_at_a_time(self, make_installer):
        installer = make_installer(delay=0.01)
        queue = InstallQueue(MaintenanceFlag(), installer)
        dirs = [Path(f"/packs/p{i}") for i in range(5)]

        futures = [queue.enqueue(d) for d in dirs]
        await asyncio.gather(*futures)

        assert installer.started == dirs
        assert installer.max_running == 1
        # Every start is immediately followed by its own end
        for i in range(0, len(installer.events), 2):
            assert installer.events[i] == ("start", dirs[i // 2])
            assert installer.events[i + 1] == ("end", dirs[i // 2])

    async def test_concurrent_enqueuers_still_serialized(self, make_installer):
        installer = make_installer(delay=0.005)
        queue = InstallQueue(MaintenanceFlag(), installer)

        async def _producer(name: str) -> asyncio.Future:
            await asyncio.sleep(0)
            return queue.enqueue(Path(name))

        futures = await asyncio.gather(
            *[_producer(f"/packs/{n}") for n in "abcd"]
        )
        await asyncio.gather(*futures)

        assert installer.max_running == 1
        assert installer.started == [Path(f"/packs/{n}") for n in "abcd"]

    async def test_enqueue_while_running_joins_same_drain(
        self, make_installer
    ):
        installer = make_installer(delay=0.01)
        flag = MaintenanceFlag()
        seen: list[bool] = []
        flag.subscribe(seen.append)
        queue = InstallQueue(flag, installer)

        first = queue.enqueue(Path("/a"))
        await asyncio.sleep(0.001)
        second = queue.enqueue(Path("/b"))
        await asyncio.gather(first, second)
        await queue.wait_drained()

        assert installer.started == [Path("/a"), Path("/b")]
        assert seen == [True, False]


# ---------------------------------------------------------------------------
# Maintenance flag lifecycle
# ---------------------------------------------------------------------------


class TestMaintenanceLifecycle:
    async def test_three_enqueues_toggle_flag_once(self, make_installer):
        flag = MaintenanceFlag()
        seen: list[bool] = []
        flag.subscribe(seen.append)
        queue = InstallQueue(flag, make_installer(delay=0.001))

        assert flag.active is False
        queue.enqueue(Path("/one"))
        assert flag.active is True
        queue.enqueue(Path("/two"))
        queue.enqueue(Path("/three"))
        assert flag.active is True

        await queue.wait_drained()

        assert flag.active is False
        assert seen == [True, False]

    async def test_flag_stays_up_until_last_task_finishes(
        self, make_installer
    ):
        flag = MaintenanceFlag()
        states: list[bool] = []
        installer = make_installer()

        async def _observing(pack_dir: Path) -> None:
            states.append(flag.active)
            await installer(pack_dir)

        queue = InstallQueue(flag, _observing)
        for name in ("a", "b", "c"):
            queue.enqueue(Path(name))
        await queue.wait_drained()

        assert states == [True, True, True]
        assert flag.active is False

    async def test_wait_drained_returns_immediately_when_idle(self, installer):
        queue = InstallQueue(MaintenanceFlag(), installer)
        await asyncio.wait_for(queue.wait_drained(), timeout=1)
        assert queue.idle
        assert len(queue) == 0

    async def test_second_drain_cycle_raises_flag_again(self, installer):
        flag = MaintenanceFlag()
        seen: list[bool] = []
        flag.subscribe(seen.append)
        queue = InstallQueue(flag, installer)

        await queue.enqueue(Path("/a"))
        await queue.wait_drained()
        await queue.enqueue(Path("/b"))
        await queue.wait_drained()

        assert seen == [True, False, True, False]


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_failure_goes_to_callback_and_queue_continues(
        self, make_installer
    ):
        bad = Path("/bad")
        installer = make_installer(fail={bad})
        queue = InstallQueue(MaintenanceFlag(), installer)
        outcomes: list[tuple[Path, InstallError | None]] = []

        def _record(pack_dir, error):
            outcomes.append((pack_dir, error))

        queue.enqueue(Path("/good1"), _record)
        queue.enqueue(bad, _record)
        queue.enqueue(Path("/good2"), _record)
        await queue.wait_drained()

        assert [d for d, _ in outcomes] == [Path("/good1"), bad, Path("/good2")]
        assert outcomes[0][1] is None
        assert isinstance(outcomes[1][1], InstallError)
        assert outcomes[1][1].returncode == 1
        assert outcomes[2][1] is None

    async def test_future_resolves_to_result_on_failure(self, make_installer):
        bad = Path("/bad")
        queue = InstallQueue(MaintenanceFlag(), make_installer(fail={bad}))

        result = await queue.enqueue(bad)

        assert isinstance(result, InstallResult)
        assert result.success is False
        assert result.pack_dir == bad

    async def test_unexpected_installer_exception_is_wrapped(self):
        async def _explode(pack_dir: Path) -> None:
            raise RuntimeError("disk on fire")

        queue = InstallQueue(MaintenanceFlag(), _explode)
        result = await queue.enqueue(Path("/x"))

        assert isinstance(result.error, InstallError)
        assert "disk on fire" in str(result.error)

    async def test_callback_exception_does_not_stop_queue(self, installer):
        queue = InstallQueue(MaintenanceFlag(), installer)

        def _broken(pack_dir, error):
            raise ValueError("callback bug")

        queue.enqueue(Path("/a"), _broken)
        second = queue.enqueue(Path("/b"))
        result = await second

        assert result.success
        assert installer.started == [Path("/a"), Path("/b")]


# ---------------------------------------------------------------------------
# CommandInstaller
# ---------------------------------------------------------------------------


class TestCommandInstaller:
    async def test_runs_command_in_pack_dir(self, tmp_path: Path):
        installer = CommandInstaller(
            [
                sys.executable,
                "-c",
                "import os, pathlib; pathlib.Path('cwd.txt').write_text(os.getcwd())",
            ]
        )
        await installer(tmp_path)
        written = Path((tmp_path / "cwd.txt").read_text())
        assert written.resolve() == tmp_path.resolve()

    async def test_nonzero_exit_raises_install_error(self, tmp_path: Path):
        installer = CommandInstaller(
            [sys.executable, "-c", "import sys; sys.stderr.write('nope'); sys.exit(3)"]
        )
        with pytest.raises(InstallError) as excinfo:
            await installer(tmp_path)
        assert excinfo.value.returncode == 3
        assert "nope" in str(excinfo.value)

    async def test_missing_executable_raises_install_error(
        self, tmp_path: Path
    ):
        installer = CommandInstaller(["definitely-not-a-real-binary-xyz"])
        with pytest.raises(InstallError, match="command not found"):
            await installer(tmp_path)

    async def test_timeout_raises_install_error(self, tmp_path: Path):
        installer = CommandInstaller(["npm", "update"], timeout=5)
        with patch(
            "pack_sync.sync.install_queue.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["npm", "update"], 5),
        ):
            with pytest.raises(InstallError, match="timed out"):
                await installer(tmp_path)

    async def test_passes_cwd_and_timeout(self, tmp_path: Path):
        installer = CommandInstaller(["npm", "update"], timeout=30)
        completed = subprocess.CompletedProcess(
            ["npm", "update"], 0, stdout="updated 3 packages\n", stderr=""
        )
        with patch(
            "pack_sync.sync.install_queue.subprocess.run",
            return_value=completed,
        ) as mock_run:
            await installer(tmp_path)

        args, kwargs = mock_run.call_args
        assert args[0] == ["npm", "update"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == 30
