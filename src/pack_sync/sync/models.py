"""Pydantic models shared by the sync modules.

- ``PackSpec``: desired state of one pack as listed by the server.
- ``ManifestUnits`` / ``PersistedManifest``: the on-disk ``package.json``.
- ``PackAction``: what happened to a pack during a run.
- ``PackResult``: outcome for one pack.
- ``SyncReport``: aggregate for a whole run.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, field_validator

UNIT_KEY_SEPARATOR = ":"


def split_unit_key(key: str) -> tuple[str, str]:
    """Split ``"unitName:version"`` into ``(unitName, version)``.

    Only the first separator splits; the version keeps any later colons.

    Raises:
        ValueError: If the key has no separator or an empty unit name.
    """
    name, sep, version = key.partition(UNIT_KEY_SEPARATOR)
    if not sep or not name:
        raise ValueError(
            f"unit key '{key}' must look like 'unitName{UNIT_KEY_SEPARATOR}version'"
        )
    return name, version


class PackSpec(BaseModel):
    """Desired state of one pack.

    Attributes:
        units: ``"unitName:version"`` -> unit definition (wire key
            ``machines``).  Definitions are passed to code generation as is.
        dependencies: Dependency name -> version range.
    """

    units: dict[str, dict[str, Any]] = Field(alias="machines")
    dependencies: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("units")
    @classmethod
    def _check_unit_keys(
        cls, units: dict[str, dict[str, Any]]
    ) -> dict[str, dict[str, Any]]:
        for key in units:
            split_unit_key(key)
        return units

    def resolved_units(self) -> dict[str, tuple[str, dict[str, Any]]]:
        """Base name -> (version, definition), last duplicate wins.

        A name keeps the position of its first appearance.
        """
        resolved: dict[str, tuple[str, dict[str, Any]]] = {}
        for key, definition in self.units.items():
            name, version = split_unit_key(key)
            resolved[name] = (version, definition)
        return resolved

    def unit_versions(self) -> dict[str, str]:
        """Base name -> version, in listing order (last duplicate wins)."""
        return {
            name: version
            for name, (version, _) in self.resolved_units().items()
        }


_DESIRED_STATE_ADAPTER = TypeAdapter(dict[str, PackSpec])


def parse_desired_state(data: Any) -> dict[str, PackSpec]:
    """Validate a decoded pack listing into ``{pack_name: PackSpec}``.

    Raises:
        pydantic.ValidationError: If the document is not a pack listing.
    """
    return _DESIRED_STATE_ADAPTER.validate_python(data)


class ManifestUnits(BaseModel):
    """The ``machinepack`` section of a pack manifest."""

    machines: list[str] = Field(default_factory=list)
    machine_versions: dict[str, str] = Field(
        default_factory=dict, alias="machineVersions"
    )

    model_config = {"populate_by_name": True}


class PersistedManifest(BaseModel):
    """A pack's ``package.json`` as written by the reconciler.

    ``units.machines`` and the keys of ``units.machine_versions`` always
    hold the same names.
    """

    dependencies: dict[str, Any] = Field(default_factory=dict)
    units: ManifestUnits = Field(
        default_factory=ManifestUnits, alias="machinepack"
    )

    model_config = {"populate_by_name": True}

    def record(self, unit_name: str, version: str) -> None:
        """Add or update one unit, keeping both views in step."""
        if unit_name not in self.units.machine_versions:
            self.units.machines.append(unit_name)
        self.units.machine_versions[unit_name] = version

    def to_wire(self) -> dict[str, Any]:
        """Dict in on-disk key order and spelling."""
        return self.model_dump(by_alias=True)


class PackAction(str, Enum):
    """What a sync run did to one pack."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    PRUNED = "pruned"
    FAILED = "failed"


class PackResult(BaseModel):
    """Outcome for one pack.

    Attributes:
        pack_name: Pack name as listed by the server.
        action: What happened.
        pack_dir: Absolute pack directory.
        written_units: Unit files (re)written, in listing order.
        deleted_units: Stale unit files removed.
        success: False when reconciliation raised.
        error: Error message for failed packs.
    """

    pack_name: str
    action: PackAction
    pack_dir: str
    written_units: list[str] = []
    deleted_units: list[str] = []
    success: bool = True
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def changed(self) -> bool:
        """True when the manifest was rewritten and an install is due."""
        return self.action in (PackAction.CREATED, PackAction.UPDATED)


class SyncReport(BaseModel):
    """Aggregate report for one sync or export run.

    Attributes:
        cache_root: Absolute cache root the run worked in.
        results: Per-pack results, pruned packs first.
        install_queued: Pack directories handed to the install queue.
        started_at: ISO 8601 start timestamp.
        completed_at: ISO 8601 completion timestamp.
    """

    cache_root: str
    results: list[PackResult] = []
    install_queued: list[str] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    def _with_action(self, action: PackAction) -> list[PackResult]:
        return [r for r in self.results if r.action == action]

    @property
    def created(self) -> list[PackResult]:
        return self._with_action(PackAction.CREATED)

    @property
    def updated(self) -> list[PackResult]:
        return self._with_action(PackAction.UPDATED)

    @property
    def unchanged(self) -> list[PackResult]:
        return self._with_action(PackAction.UNCHANGED)

    @property
    def pruned(self) -> list[PackResult]:
        return self._with_action(PackAction.PRUNED)

    @property
    def errors(self) -> list[PackResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    def summary(self) -> str:
        """One-line counts by action."""
        return (
            f"{len(self.results)} packs: "
            f"{len(self.created)} created, {len(self.updated)} updated, "
            f"{len(self.pruned)} pruned, {len(self.errors)} errors"
        )
