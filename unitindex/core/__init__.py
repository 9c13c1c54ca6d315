"""Extraction engine shared by every unit extractor."""

from unitindex.core.callbacks import Callback, CallbackAnalyzer, analyze_callback
from unitindex.core.collector import Candidate, collect, deduplicate_units, read_source
from unitindex.core.conventions import DEFAULT_CONVENTIONS, Conventions
from unitindex.core.graph import DependencyGraph
from unitindex.core.locator import (
    ClassDescriptor,
    RecordDescriptor,
    Resolution,
    UnitDescriptor,
    locate,
    resolve_source_location,
)
from unitindex.core.manifest import ManifestError, RuntimeManifest
from unitindex.core.names import NameRegistry, default_registry, names_from_subclasses
from unitindex.core.paths import is_first_party
from unitindex.core.scanner import (
    merge_dependencies,
    scan,
    scan_common_dependencies,
    scan_job_dependencies,
    scan_mailer_dependencies,
    scan_model_dependencies,
    scan_service_dependencies,
)
from unitindex.core.units import (
    Dependency,
    ExtractedUnit,
    SubChunk,
    UnitType,
    annotate_source,
    register_provenance,
)

__all__ = [
    "Callback",
    "CallbackAnalyzer",
    "Candidate",
    "ClassDescriptor",
    "Conventions",
    "DEFAULT_CONVENTIONS",
    "Dependency",
    "DependencyGraph",
    "ExtractedUnit",
    "ManifestError",
    "NameRegistry",
    "RecordDescriptor",
    "Resolution",
    "RuntimeManifest",
    "SubChunk",
    "UnitDescriptor",
    "UnitType",
    "analyze_callback",
    "annotate_source",
    "collect",
    "deduplicate_units",
    "default_registry",
    "is_first_party",
    "locate",
    "merge_dependencies",
    "names_from_subclasses",
    "read_source",
    "register_provenance",
    "resolve_source_location",
    "scan",
    "scan_common_dependencies",
    "scan_job_dependencies",
    "scan_mailer_dependencies",
    "scan_model_dependencies",
    "scan_service_dependencies",
]
