"""Unit model: the envelope every extractor fills in.

An ``ExtractedUnit`` is one indexable entity (a model, a job, a mailer, ...)
with its source text, open metadata, outgoing ``Dependency`` edges and,
for large units, pre-built ``SubChunk`` slices. ``to_dict()`` is the JSON
contract consumed by downstream tooling.
"""

import json
import math
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from unitindex.utils.constants import CHARS_PER_TOKEN
from unitindex.utils.helpers import compute_text_hash

DEFAULT_CHUNK_THRESHOLD = 1500


class UnitType(Enum):
    """Closed set of unit categories."""

    MODEL = "model"
    CONTROLLER = "controller"
    SERVICE = "service"
    COMPONENT = "component"
    VIEW_COMPONENT = "view_component"
    JOB = "job"
    MAILER = "mailer"
    SERIALIZER = "serializer"
    MANAGER = "manager"
    POLICY = "policy"
    VALIDATOR = "validator"
    CONCERN = "concern"
    ROUTE = "route"
    MIDDLEWARE = "middleware"
    I18N = "i18n"
    PUNDIT_POLICY = "pundit_policy"
    CONFIGURATION = "configuration"
    ENGINE = "engine"
    VIEW_TEMPLATE = "view_template"
    MIGRATION = "migration"
    ACTION_CABLE_CHANNEL = "action_cable_channel"
    SCHEDULED_JOB = "scheduled_job"
    RAKE_TASK = "rake_task"
    STATE_MACHINE = "state_machine"
    EVENT = "event"
    DECORATOR = "decorator"
    DATABASE_VIEW = "database_view"
    CACHING = "caching"
    FACTORY = "factory"
    TEST_MAPPING = "test_mapping"
    RAILS_SOURCE = "rails_source"
    PORO = "poro"
    LIB = "lib"
    GRAPHQL_TYPE = "graphql_type"
    GRAPHQL_MUTATION = "graphql_mutation"
    GRAPHQL_RESOLVER = "graphql_resolver"
    GRAPHQL_QUERY = "graphql_query"

    def __str__(self) -> str:
        return self.value


# Detection mechanisms a Dependency may name in ``via``.
_KNOWN_VIA = {
    "code_reference",
    "association",
    "inheritance",
    "include",
    "extend",
    "render",
    "serialization",
    "delegation",
    "table_name",
    "job_enqueue",
    "scheduled",
    "state_machine",
    "state_machine_callback",
    "validation",
    "authorization",
    "policy_evaluation",
    "route_dispatch",
    "factory_for",
    "factory_association",
    "factory_parent",
    "test_coverage",
    "task_invoke",
    "task_dependency",
    "configuration",
    "decoration",
    "type_reference",
    "field_resolver",
    "url_helper",
    "view_render",
    "slot",
    "html_attribute",
    "data_dependency",
    "method_call",
    "reference",
    "call",
    "behavioral_profile",
    "engine_route",
}
_via_lock = threading.Lock()


def register_provenance(*tags: str) -> None:
    """Allow additional ``via`` tags (for extractors with their own mechanisms)."""
    with _via_lock:
        for tag in tags:
            if not tag or not isinstance(tag, str):
                raise ValueError(f"Provenance tag must be a non-empty string, got {tag!r}")
            _KNOWN_VIA.add(tag)


def known_provenance() -> frozenset[str]:
    return frozenset(_KNOWN_VIA)


def is_known_provenance(tag: str) -> bool:
    return tag in _KNOWN_VIA


@dataclass(frozen=True)
class Dependency:
    """One outgoing edge: *kind* of thing, its name, and how it was found."""

    kind: str
    target: str
    via: str

    def __post_init__(self):
        if not self.kind:
            raise ValueError(f"Dependency on {self.target!r} has an empty kind")
        if not self.target:
            raise ValueError("Dependency target must be non-empty")
        if not self.via:
            raise ValueError(f"Dependency on {self.target} has an empty via")
        if not is_known_provenance(self.via):
            raise ValueError(
                f"Unknown provenance tag '{self.via}' on {self.target}; register it with register_provenance()"
            )

    def to_dict(self) -> dict[str, str]:
        return {"type": self.kind, "target": self.target, "via": self.via}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Dependency":
        return cls(kind=data.get("type") or data.get("kind"), target=data["target"], via=data["via"])


@dataclass
class SubChunk:
    """A slice of a large unit, addressable as ``<parent>#<suffix>``."""

    chunk_type: str
    identifier: str
    content: str
    content_hash: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.content_hash:
            self.content_hash = compute_text_hash(self.content)

    @classmethod
    def for_unit(
        cls, parent: str, suffix: str, chunk_type: str, content: str, **metadata: Any
    ) -> "SubChunk":
        """Build a chunk scoped under *parent* with ``metadata["parent"]`` set."""
        return cls(
            chunk_type=chunk_type,
            identifier=f"{parent}#{suffix}",
            content=content,
            metadata={**metadata, "parent": parent},
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _derive_namespace(identifier: str) -> str | None:
    name = identifier.split("#", 1)[0]
    segments = name.split("::")
    if len(segments) < 2:
        return None
    return "::".join(segments[:-1])


def _tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@dataclass
class ExtractedUnit:
    """One discovered entity and everything known about it."""

    unit_type: UnitType
    identifier: str
    file_path: str | None = None
    source_code: str | None = None
    namespace: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    dependencies: list[Dependency] = field(default_factory=list)
    dependents: list[dict[str, str]] = field(default_factory=list)
    chunks: list[SubChunk] = field(default_factory=list)
    extracted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not isinstance(self.unit_type, UnitType):
            self.unit_type = UnitType(self.unit_type)
        if self.namespace is None:
            self.namespace = _derive_namespace(self.identifier)
        if self.dependencies is None:
            self.dependencies = []

    @property
    def source_hash(self) -> str:
        return compute_text_hash(self.source_code)

    def add_dependencies(self, dependencies: list[Dependency]) -> None:
        """Append *dependencies*, skipping ``(kind, target)`` pairs already present."""
        seen = {(d.kind, d.target) for d in self.dependencies}
        for dep in dependencies:
            key = (dep.kind, dep.target)
            if key in seen:
                continue
            seen.add(key)
            self.dependencies.append(dep)

    def estimated_tokens(self) -> int:
        """Rough token count: about four characters per token, metadata included."""
        source_tokens = _tokens(self.source_code) if self.source_code else 0
        metadata_tokens = _tokens(json.dumps(self.metadata, default=str)) if self.metadata else 0
        return source_tokens + metadata_tokens

    def needs_chunking(self, threshold: int = DEFAULT_CHUNK_THRESHOLD) -> bool:
        return self.estimated_tokens() > threshold

    def chunk_header(self) -> str:
        return (
            f"# Unit: {self.identifier} ({self.unit_type.value})\n"
            f"# File: {self.file_path}\n"
            f"# Namespace: {self.namespace or '(root)'}\n"
            "# ---\n"
        )

    def build_default_chunks(
        self, max_tokens: int = DEFAULT_CHUNK_THRESHOLD, threshold: int = DEFAULT_CHUNK_THRESHOLD
    ) -> list[SubChunk]:
        """Split the source into line-packed chunks, each prefixed with the unit header.

        Returns [] when the unit is below *threshold*.
        """
        if not self.needs_chunking(threshold) or not self.source_code:
            return []

        header = self.chunk_header()
        header_tokens = _tokens(header)
        chunks: list[SubChunk] = []
        current: list[str] = []
        current_tokens = 0

        def flush():
            chunks.append(
                SubChunk.for_unit(
                    self.identifier,
                    f"chunk_{len(chunks)}",
                    "source",
                    header + "".join(current),
                    chunk_index=len(chunks),
                    estimated_tokens=current_tokens + header_tokens,
                )
            )

        for line in self.source_code.splitlines(keepends=True):
            line_tokens = _tokens(line)
            if current and current_tokens + line_tokens > max_tokens:
                flush()
                current = []
                current_tokens = 0
            current.append(line)
            current_tokens += line_tokens

        if current:
            flush()
        return chunks

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.unit_type.value,
            "identifier": self.identifier,
            "file_path": self.file_path,
            "namespace": self.namespace,
            "source_code": self.source_code,
            "metadata": self.metadata,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "dependents": list(self.dependents),
            "chunks": [c.to_dict() for c in self.chunks],
            "extracted_at": self.extracted_at.isoformat(),
            "source_hash": self.source_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExtractedUnit":
        extracted_at = data.get("extracted_at")
        unit = cls(
            unit_type=UnitType(data["type"]),
            identifier=data["identifier"],
            file_path=data.get("file_path"),
            source_code=data.get("source_code"),
            namespace=data.get("namespace"),
            metadata=dict(data.get("metadata") or {}),
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            dependents=list(data.get("dependents") or []),
            chunks=[SubChunk(**c) for c in data.get("chunks") or []],
        )
        if extracted_at:
            unit.extracted_at = datetime.fromisoformat(extracted_at)
        return unit


BOX_WIDTH = 71


def annotate_source(
    source: str | None, label: str, name: str, fields: dict[str, Any] | None = None, comment: str = "#"
) -> str:
    """Prefix *source* with a boxed, comment-style summary header.

    Example:
        >>> print(annotate_source("class UserMailer; end\\n", "Mailer", "UserMailer"))
        # ╔═══...═══╗
        # ║ Mailer: UserMailer            ║
        # ╚═══...═══╝
        class UserMailer; end
    """
    rows = [f"{label}: {name}"]
    for key, value in (fields or {}).items():
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value) or "none"
        rows.append(f"{key}: {value}")

    lines = [f"{comment} ╔{'═' * BOX_WIDTH}╗"]
    lines.extend(f"{comment} ║ {row.ljust(BOX_WIDTH - 1)}║" for row in rows)
    lines.append(f"{comment} ╚{'═' * BOX_WIDTH}╝")
    return "\n".join(lines) + "\n\n" + (source or "")
