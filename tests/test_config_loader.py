"""Tests for config file discovery, interpolation and merging."""

from pathlib import Path

import pytest
import yaml

from pack_sync.config_loader import (
    discover_config_files,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Run with cwd and HOME inside tmp_path and no explicit config."""
    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("PACK_SYNC_CONFIG", raising=False)
    monkeypatch.chdir(project)
    return project, home


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestInterpolation:
    def test_plain_var(self, monkeypatch):
        monkeypatch.setenv("PACK_SECRET", "abc")
        assert interpolate_env_vars("${PACK_SECRET}") == "abc"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("NOPE", raising=False)
        assert interpolate_env_vars("${NOPE:-fallback}") == "fallback"

    def test_unset_without_default_is_empty(self, monkeypatch):
        monkeypatch.delenv("NOPE", raising=False)
        assert interpolate_env_vars("x${NOPE}y") == "xy"

    def test_unterminated_left_alone(self):
        assert interpolate_env_vars("${OPEN") == "${OPEN"


class TestDiscovery:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []
        assert load_hierarchical_config() == {}

    def test_order_is_explicit_project_global(self, isolated, tmp_path, monkeypatch):
        project, home = isolated
        explicit = _write(tmp_path / "explicit.yml", "a: 1")
        proj = _write(project / ".pack_sync" / "config.yml", "a: 2")
        glob = _write(home / ".config" / "pack_sync" / "config.yml", "a: 3")
        monkeypatch.setenv("PACK_SYNC_CONFIG", str(explicit))

        found = discover_config_files()

        assert [p.resolve() for p in found] == [
            explicit.resolve(),
            proj.resolve(),
            glob.resolve(),
        ]


class TestHierarchicalLoad:
    def test_project_wins_top_level(self, isolated):
        project, home = isolated
        _write(
            home / ".config" / "pack_sync" / "config.yml",
            "source:\n  url: https://global\nmax_parallel: 2\n",
        )
        _write(
            project / ".pack_sync" / "config.yml",
            "source:\n  secret: project\n",
        )

        merged = load_hierarchical_config()

        # Shallow merge: the project's source section replaces the global one
        assert merged == {"source": {"secret": "project"}, "max_parallel": 2}

    def test_interpolates_after_merge(self, isolated, monkeypatch):
        project, _ = isolated
        monkeypatch.setenv("MY_SECRET", "from-env")
        _write(
            project / ".pack_sync" / "config.yml",
            "source:\n  secret: ${MY_SECRET}\n  url: ${MY_URL:-https://default}\n",
        )
        monkeypatch.delenv("MY_URL", raising=False)

        merged = load_hierarchical_config()

        assert merged["source"] == {
            "secret": "from-env",
            "url": "https://default",
        }

    def test_empty_and_non_dict_files_ignored(self, isolated):
        project, home = isolated
        _write(project / ".pack_sync" / "config.yml", "")
        _write(home / ".config" / "pack_sync" / "config.yml", "- a\n- b\n")
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        project, _ = isolated
        _write(project / ".pack_sync" / "config.yml", "a: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()
