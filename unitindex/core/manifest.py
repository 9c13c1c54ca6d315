"""Runtime manifest: the host application's introspection dump.

The host process (where the object model is actually loaded) writes a
``unitindex.json`` describing every class it knows about::

    {
      "app_root": "/srv/app",
      "units": [
        {"name": "User", "kind": "model",
         "declared_at": "/srv/app/app/models/user.rb",
         "instance_methods": [...], "class_methods": [...],
         "fields": ["email"], "callbacks": [{"type": "before_save", "filter": "x"}]}
      ]
    }

Indexing then runs offline against that dump.
"""

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from unitindex.core.locator import RecordDescriptor
from unitindex.utils.logging import logger


class ManifestError(ValueError):
    """The runtime manifest is missing, unreadable or malformed."""


@dataclass
class UnitRecord:
    """One class entry of the manifest."""

    name: str
    kind: str = "model"
    declared_at: str | None = None
    instance_methods: list[str] = field(default_factory=list)
    class_methods: list[str] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)
    callbacks: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def descriptor(self) -> RecordDescriptor:
        return RecordDescriptor(
            name=self.name,
            declared_at=self.declared_at,
            instance_methods=list(self.instance_methods),
            class_methods=list(self.class_methods),
        )


_KNOWN_KEYS = {"name", "kind", "declared_at", "instance_methods", "class_methods", "fields", "callbacks"}


def _parse_record(raw: Any, index: int) -> UnitRecord:
    if not isinstance(raw, dict):
        raise ManifestError(f"units[{index}] must be an object")
    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ManifestError(f"units[{index}] has no name")

    for key in ("instance_methods", "class_methods", "fields", "callbacks"):
        if key in raw and not isinstance(raw[key], list):
            raise ManifestError(f"units[{index}].{key} must be a list")

    callbacks = [cb for cb in raw.get("callbacks") or [] if isinstance(cb, dict)]
    return UnitRecord(
        name=name,
        kind=raw.get("kind") or "model",
        declared_at=raw.get("declared_at"),
        instance_methods=[str(p) for p in raw.get("instance_methods") or [] if p],
        class_methods=[str(p) for p in raw.get("class_methods") or [] if p],
        fields=[str(f) for f in raw.get("fields") or []],
        callbacks=callbacks,
        extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
    )


class RuntimeManifest:
    """Parsed runtime manifest."""

    def __init__(self, units: list[UnitRecord], app_root: str | None = None, source: Path | None = None):
        self.units = units
        self.app_root = app_root
        self.source = source

    @classmethod
    def from_dict(cls, data: Any, source: Path | None = None) -> "RuntimeManifest":
        if not isinstance(data, dict):
            raise ManifestError("Runtime manifest must be a JSON object")
        raw_units = data.get("units", [])
        if not isinstance(raw_units, list):
            raise ManifestError("'units' must be a list")
        units = [_parse_record(raw, i) for i, raw in enumerate(raw_units)]
        return cls(units, app_root=data.get("app_root"), source=source)

    @classmethod
    def load(cls, path: str | Path) -> "RuntimeManifest":
        """Read and validate a manifest file.

        Raises:
            ManifestError: Missing file, invalid JSON or invalid structure.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ManifestError(f"Runtime manifest not found: {path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise ManifestError(f"Cannot read runtime manifest {path}: {e}") from e

        manifest = cls.from_dict(data, source=path)
        logger.info(f"Loaded runtime manifest with {len(manifest.units)} units from {path}")
        return manifest

    def __iter__(self) -> Iterator[UnitRecord]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)

    def of_kind(self, kind: str) -> list[UnitRecord]:
        return [u for u in self.units if u.kind == kind]

    def model_names(self) -> list[str]:
        """Names of every model; usable as a NameRegistry loader."""
        return [u.name for u in self.of_kind("model")]
