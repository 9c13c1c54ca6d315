"""Model extractor.

Models come from the runtime manifest when one is available: the host
process knows every model class, its columns, its callbacks and where its
methods are defined. Without a manifest the extractor falls back to
``app/models`` and reads callback declarations from the source.

The unit's source is the composite of the model file and the concerns it
includes, so callbacks defined in a concern are still found.
"""

import re
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from unitindex.core.callbacks import CallbackAnalyzer
from unitindex.core.collector import Candidate
from unitindex.core.locator import RecordDescriptor, locate
from unitindex.core.manifest import UnitRecord
from unitindex.core.paths import is_first_party
from unitindex.core.scanner import scan_common_dependencies
from unitindex.core.units import Dependency, ExtractedUnit, SubChunk, UnitType, annotate_source
from unitindex.extractors import BaseExtractor
from unitindex.utils.helpers import underscore
from unitindex.utils.logging import logger

MODELS_DIR = "app/models"
CONCERNS_DIR = "app/models/concerns"

_CALLBACK_DECLARATION = re.compile(
    r"^\s*((?:before|after|around)_(?:validation|save|create|update|destroy|commit|rollback"
    r"|initialize|find|touch|create_commit|update_commit|destroy_commit|save_commit))"
    r"\s+:(\w+[!?]?)(.*)$",
    re.MULTILINE,
)
_INCLUDE = re.compile(r"^\s*include\s+([A-Z][\w:]*(?:\s*,\s*[A-Z][\w:]*)*)", re.MULTILINE)
_ASSOCIATION = re.compile(
    r"^\s*(belongs_to|has_many|has_one|has_and_belongs_to_many)\s+:(\w+)(.*)$", re.MULTILINE
)
_CLASS_NAME_OPTION = re.compile(r"""class_name:\s*['"]([\w:]+)['"]""")
_DECLARES_CLASS = re.compile(r"^\s*class\s+[A-Z]", re.MULTILINE)

_CALLBACK_LABELS = (
    ("columns_written", "writes"),
    ("jobs_enqueued", "enqueues"),
    ("services_called", "calls"),
    ("mailers_triggered", "mails"),
    ("database_reads", "reads"),
)


def _singular_class(association: str, macro: str) -> str:
    name = association
    if macro in ("has_many", "has_and_belongs_to_many"):
        if name.endswith("ies"):
            name = name[:-3] + "y"
        elif name.endswith("ses"):
            name = name[:-2]
        elif name.endswith("s"):
            name = name[:-1]
    return "".join(part.capitalize() for part in name.split("_"))


def declared_callbacks(source: str) -> list[dict[str, Any]]:
    """Callback registrations written as ``before_save :name`` in *source*."""
    callbacks = []
    for match in _CALLBACK_DECLARATION.finditer(source):
        callback_type, name, rest = match.groups()
        conditions = dict(re.findall(r"\b(if|unless):\s*:?(\w+[!?]?)", rest))
        callbacks.append({
            "type": callback_type,
            "filter": name,
            "kind": callback_type.split("_", 1)[0],
            "conditions": conditions,
        })
    return callbacks


def declared_associations(source: str) -> list[dict[str, str]]:
    associations = []
    for match in _ASSOCIATION.finditer(source):
        macro, name, rest = match.groups()
        explicit = _CLASS_NAME_OPTION.search(rest)
        associations.append({
            "type": macro,
            "name": name,
            "class_name": explicit.group(1) if explicit else _singular_class(name, macro),
        })
    return associations


def format_callback_line(callback: dict[str, Any]) -> str:
    line = f"  {callback.get('filter')}"
    effects = callback.get("side_effects") or {}
    annotations = [
        f"{label}: {', '.join(effects[key])}" for key, label in _CALLBACK_LABELS if effects.get(key)
    ]
    if not annotations:
        return line
    return f"{line} [{'; '.join(annotations)}]"


def callbacks_chunk_text(identifier: str, callbacks: list[dict[str, Any]]) -> str:
    grouped: dict[str, list[str]] = {}
    for callback in callbacks:
        grouped.setdefault(str(callback.get("type")), []).append(format_callback_line(callback))
    sections = [f"{callback_type}:\n" + "\n".join(lines) for callback_type, lines in grouped.items()]
    return f"# {identifier} - Callbacks\n\n" + "\n\n".join(sections) + "\n"


class ModelExtractor(BaseExtractor):
    """Extracts domain models with callback side effects."""

    unit_type = UnitType.MODEL
    label = "model"
    source_dirs = (MODELS_DIR,)
    priority = 10

    def __init__(self, context):
        super().__init__(context)
        self._records: dict[str, UnitRecord] = {}

    def candidates(self) -> Iterator[Candidate]:
        manifest = self.context.manifest
        if manifest is None:
            for candidate in self.file_candidates():
                if f"/{CONCERNS_DIR}/" in candidate.file_path_hint.replace("\\", "/"):
                    continue
                yield candidate
            return

        self._records = {record.name: record for record in manifest.of_kind("model")}
        for record in self._records.values():
            yield Candidate(name=record.name)

    def extract_candidate(self, candidate: Candidate) -> ExtractedUnit | None:
        record = self._records.get(candidate.name)
        if record is not None:
            descriptor = record.descriptor()
        else:
            descriptor = RecordDescriptor(name=candidate.name, declared_at=candidate.file_path_hint)

        resolution = locate(
            descriptor,
            self.app_root,
            candidate.file_path_hint,
            convention_dir=MODELS_DIR,
            conventions=self.conventions,
        )
        source = self.read_candidate(Candidate(candidate.name, candidate.source_text, resolution.path))
        if record is None and not _DECLARES_CLASS.search(source):
            return None

        composite, concerns = self._inline_concerns(source, record)
        fields = record.fields if record else []
        raw_callbacks = record.callbacks if record and record.callbacks else declared_callbacks(composite)

        analyzer = CallbackAnalyzer(composite, fields, self.conventions)
        callbacks = [analyzer.analyze(cb) for cb in raw_callbacks]
        associations = (record.extra.get("associations") if record else None) or declared_associations(source)

        metadata = {
            "column_names": list(fields),
            "callbacks": callbacks,
            "associations": associations,
            "concerns": concerns,
            "source_tier": resolution.tier,
        }
        if record and "table_name" in record.extra:
            metadata["table_name"] = record.extra["table_name"]

        unit = ExtractedUnit(
            unit_type=self.unit_type,
            identifier=candidate.name,
            file_path=resolution.path,
            metadata=metadata,
        )
        unit.source_code = annotate_source(
            composite,
            "Model",
            candidate.name,
            {
                "Columns": len(fields),
                "Callbacks": len(callbacks),
                "Associations": [a.get("name") for a in associations],
                "Concerns": concerns,
            },
        )

        unit.add_dependencies([
            Dependency("model", a["class_name"], "association")
            for a in associations
            if a.get("class_name") and a["class_name"] != candidate.name
        ])
        unit.add_dependencies([
            dep
            for dep in scan_common_dependencies(
                composite, registry=self.registry, conventions=self.conventions
            )
            if dep.target != candidate.name
        ])

        threshold = int(self.context.limits.get("chunk_threshold", 1500))
        if callbacks and unit.needs_chunking(threshold):
            unit.chunks = unit.build_default_chunks(
                max_tokens=int(self.context.limits.get("max_chunk_tokens", 1500)),
                threshold=threshold,
            )
            unit.chunks.append(
                SubChunk.for_unit(
                    candidate.name, "callbacks", "callbacks", callbacks_chunk_text(candidate.name, callbacks)
                )
            )
        return unit

    def _inline_concerns(self, source: str, record: UnitRecord | None) -> tuple[str, list[str]]:
        """Append included first-party concerns to *source*."""
        names: list[str] = []
        if record and record.extra.get("concerns"):
            names = [str(n) for n in record.extra["concerns"]]
        else:
            for match in _INCLUDE.finditer(source):
                names.extend(n.strip() for n in match.group(1).split(","))

        parts = [source]
        inlined = []
        for name in names:
            path = Path(self.app_root, CONCERNS_DIR, *(underscore(s) for s in name.split("::")))
            path = path.with_name(path.name + self.conventions.source_extension)
            if not is_first_party(str(path), self.app_root, self.conventions.vendored_segments):
                continue
            if not path.is_file():
                logger.debug(f"Concern {name} not found at {path}")
                continue
            parts.append(f"\n# --- inlined from {name} ---\n{self.read_candidate(Candidate(name, None, str(path)))}")
            inlined.append(name)
        return "".join(parts), inlined
