"""Extractor framework.

This module defines the BaseExtractor abstract class and the ExtractorRegistry
for dynamic discovery of unit extractors.

Every extractor is a thin convention matcher on top of the engine in
``unitindex.core``:

1. ``candidates()`` enumerates what might become a unit (a manifest
   record, a file under a convention directory, ...).
2. ``extract_candidate()`` turns one candidate into a unit (or a list of
   units, or None).
3. ``extract_all()`` runs both through ``collect()`` so one broken
   candidate never aborts the batch, then builds chunks for large units.

Errors raised by ``candidates()`` itself are NOT isolated: an inaccessible
discovery root aborts the extractor.
"""

import importlib
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from unitindex.config import DEFAULTS
from unitindex.core.collector import Candidate, ExtractResult, collect, read_source
from unitindex.core.conventions import DEFAULT_CONVENTIONS, Conventions
from unitindex.core.manifest import RuntimeManifest
from unitindex.core.names import NameRegistry, default_registry
from unitindex.core.paths import is_first_party
from unitindex.core.units import ExtractedUnit, UnitType
from unitindex.utils.helpers import class_name_from_path
from unitindex.utils.logging import logger

_CLASS_DECLARATION = re.compile(r"^\s*class\s+([A-Z][\w:]*)", re.MULTILINE)


@dataclass
class ExtractionContext:
    """Everything an extractor needs from the surrounding pass."""

    app_root: Path
    manifest: RuntimeManifest | None = None
    registry: NameRegistry = field(default_factory=default_registry)
    conventions: Conventions = DEFAULT_CONVENTIONS
    limits: dict[str, Any] = field(default_factory=lambda: dict(DEFAULTS["limits"]))

    def __post_init__(self):
        self.app_root = Path(self.app_root).resolve()


class BaseExtractor(ABC):
    """Abstract base class for all unit extractors.

    Subclasses set ``unit_type`` and ``label`` and implement ``candidates``
    and ``extract_candidate``. File-based extractors can set
    ``source_dirs`` and inherit ``candidates`` from here.
    """

    unit_type: UnitType
    label: str = "unit"
    # Convention directories (relative to the app root) scanned by
    # file_candidates(); empty for extractors fed from the manifest.
    source_dirs: tuple[str, ...] = ()
    # Extractors run in ascending priority in a sequential pass.
    priority: int = 100

    def __init__(self, context: ExtractionContext):
        self.context = context

    @property
    def app_root(self) -> Path:
        return self.context.app_root

    @property
    def conventions(self) -> Conventions:
        return self.context.conventions

    @property
    def registry(self) -> NameRegistry:
        return self.context.registry

    def candidates(self) -> Iterable[Candidate]:
        return self.file_candidates()

    @abstractmethod
    def extract_candidate(self, candidate: Candidate) -> ExtractResult:
        """Turn one candidate into a unit, a list of units, or None."""
        pass

    def extract_all(self) -> list[ExtractedUnit]:
        units = collect(
            self.candidates(),
            self.extract_candidate,
            label=self.label,
            workers=int(self.context.limits.get("workers", 1)),
            registry=self.registry,
        )
        for unit in units:
            self.finalize(unit)
        return units

    def finalize(self, unit: ExtractedUnit) -> None:
        """Attach default chunks to units over the chunk threshold."""
        threshold = int(self.context.limits.get("chunk_threshold", 1500))
        max_tokens = int(self.context.limits.get("max_chunk_tokens", 1500))
        if not unit.chunks and unit.needs_chunking(threshold):
            unit.chunks = unit.build_default_chunks(max_tokens=max_tokens, threshold=threshold)

    # -- file-based helpers --------------------------------------------------

    def file_candidates(self) -> Iterator[Candidate]:
        """One candidate per first-party source file under ``source_dirs``."""
        extension = self.conventions.source_extension
        for source_dir in self.source_dirs:
            base = self.app_root / source_dir
            if not base.is_dir():
                continue
            for path in sorted(base.rglob(f"*{extension}")):
                if not is_first_party(str(path), self.app_root, self.conventions.vendored_segments):
                    continue
                yield Candidate(
                    name=class_name_from_path(path, base),
                    source_text=None,
                    file_path_hint=str(path),
                )

    def class_name(self, source: str, candidate: Candidate) -> str:
        """Name of the class *source* declares, namespaced like its path.

        ``module Admin; class SyncJob`` in ``app/jobs/admin/sync_job.rb``
        is ``Admin::SyncJob``; a declaration that disagrees with the file
        name wins over the path.
        """
        declared = _CLASS_DECLARATION.search(source)
        if declared is None:
            return candidate.name
        name = declared.group(1)
        if "::" not in name and candidate.name.rsplit("::", 1)[-1] == name:
            return candidate.name
        return name

    def read_candidate(self, candidate: Candidate) -> str:
        """Source text of *candidate*, reading its file if needed."""
        if candidate.source_text is not None:
            return candidate.source_text
        if not candidate.file_path_hint:
            raise ValueError(f"{candidate.name} has neither source text nor a file path")
        return read_source(candidate.file_path_hint, self.context.limits.get("max_file_size"))

    def cleanup(self) -> None:
        """Release resources after extraction. Default: no-op."""
        pass


class ExtractorRegistry:
    """Registry for dynamic discovery and management of extractors.

    Automatically discovers all extractor modules in the extractors/ directory
    and registers them by their unit type.

    Design:
    - One extractor class per file (jobs.py -> JobExtractor)
    - No hardcoded mapping - pure discovery pattern
    """

    def __init__(self, context: ExtractionContext):
        self.context = context
        self.extractors: dict[str, BaseExtractor] = {}
        self._discover()

    def _discover(self):
        extractor_dir = Path(__file__).parent

        for file_path in sorted(extractor_dir.glob("*.py")):
            if file_path.name.startswith("_"):
                continue

            module_name = file_path.stem
            try:
                module = importlib.import_module(f".{module_name}", package=__name__)
            except ImportError as e:
                logger.warning(f"Failed to load extractor module {module_name}: {e}")
                continue

            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if (
                    isinstance(attr, type)
                    and issubclass(attr, BaseExtractor)
                    and attr is not BaseExtractor
                    and attr.__module__ == module.__name__
                ):
                    self.register(attr)

    def register(self, extractor_class: type[BaseExtractor]) -> BaseExtractor:
        extractor = extractor_class(self.context)
        self.extractors[extractor.unit_type.value] = extractor
        return extractor

    def get_extractor(self, unit_type: str) -> BaseExtractor | None:
        return self.extractors.get(str(unit_type))

    def ordered(self) -> list[BaseExtractor]:
        return sorted(self.extractors.values(), key=lambda e: (e.priority, e.unit_type.value))

    def unit_types(self) -> list[str]:
        return [e.unit_type.value for e in self.ordered()]
