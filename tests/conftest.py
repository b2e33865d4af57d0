"""Shared pytest fixtures for pack-sync tests."""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from pack_sync.config import Config
from pack_sync.sync.models import PackSpec, parse_desired_state


def make_desired(data: dict[str, Any]) -> dict[str, PackSpec]:
    """Build a desired state from a wire-shaped dict."""
    return parse_desired_state(data)


class FakeSourceClient:
    """In-memory stand-in for PackSourceClient."""

    def __init__(self, data: dict[str, Any] | None = None, error=None):
        self.data = data or {}
        self.error = error
        self.calls = 0
        self.closed = False

    def fetch_desired_state(self) -> dict[str, PackSpec]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return make_desired(self.data)

    def close(self) -> None:
        self.closed = True


class RecordingInstaller:
    """Async installer that records start/end order instead of running npm.

    Directories listed in ``fail`` raise ``InstallError``.
    """

    def __init__(self, delay: float = 0.0, fail: set[Path] | None = None):
        self.delay = delay
        self.fail = fail or set()
        self.events: list[tuple[str, Path]] = []
        self.running = 0
        self.max_running = 0

    async def __call__(self, pack_dir: Path) -> None:
        from pack_sync.errors import InstallError

        self.running += 1
        self.max_running = max(self.max_running, self.running)
        self.events.append(("start", pack_dir))
        try:
            await asyncio.sleep(self.delay)
            if pack_dir in self.fail:
                raise InstallError(pack_dir, "boom", returncode=1)
        finally:
            self.running -= 1
            self.events.append(("end", pack_dir))

    @property
    def started(self) -> list[Path]:
        return [d for kind, d in self.events if kind == "start"]


@pytest.fixture
def mock_config(tmp_path):
    """Config pointing at a fake server with the project root in tmp_path."""
    return Config(
        source_url="https://packs.example.com/api",
        secret="s3cret",
        project_root=tmp_path,
    )


@pytest.fixture
def cache_root(tmp_path) -> Path:
    root = tmp_path / "node_machines"
    root.mkdir()
    return root


@pytest.fixture
def pack_a_listing() -> dict[str, Any]:
    return {
        "packA": {
            "machines": {
                "u1:1.0": {"fn": "function(i,e){e.success();}", "name": "u1"}
            },
            "dependencies": {"request": "0.2.8"},
        }
    }


@pytest.fixture
def make_client():
    """Factory for FakeSourceClient instances."""
    return FakeSourceClient


@pytest.fixture
def installer():
    return RecordingInstaller()


@pytest.fixture
def make_installer():
    """Factory for RecordingInstaller instances with custom delay/failures."""
    return RecordingInstaller
