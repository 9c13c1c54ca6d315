"""Pattern scanning of source text into Dependency edges.

Four categories are recognized. Models are matched against the name
registry (so ``Room.find`` is ignored unless ``Room`` is a known model);
services, jobs and mailers are matched by their naming convention plus an
invocation shape, which is precise enough on its own.
"""

from unitindex.core.conventions import DEFAULT_CONVENTIONS, Conventions
from unitindex.core.names import NameRegistry, default_registry
from unitindex.core.units import Dependency, is_known_provenance

CATEGORIES = ("model", "service", "job", "mailer")
DEFAULT_VIA = "code_reference"


def _targets(
    source_text: str, category: str, registry: NameRegistry | None, conventions: Conventions
) -> list[str]:
    if category == "model":
        return (registry or default_registry()).find_all(source_text)
    if category == "service":
        pattern = conventions.service_reference
    elif category == "job":
        pattern = conventions.job_reference
    elif category == "mailer":
        pattern = conventions.mailer_reference
    else:
        raise ValueError(f"Unknown dependency category '{category}', expected one of {CATEGORIES}")
    return [m.group(1) for m in pattern.finditer(source_text)]


def scan(
    source_text: str | None,
    category: str,
    via: str = DEFAULT_VIA,
    registry: NameRegistry | None = None,
    conventions: Conventions | None = None,
) -> list[Dependency]:
    """Scan *source_text* for references of one *category*.

    Args:
        source_text: Text to scan; None or "" yields [].
        category: One of ``model``, ``service``, ``job``, ``mailer``.
        via: Provenance tag recorded on every result.
        registry: Name registry for the model category; defaults to the
            process-wide registry.
        conventions: Naming vocabulary; defaults to the built-in one.

    Returns:
        Dependencies in first-seen order, one per target.

    Raises:
        ValueError: Unknown category or unregistered provenance tag.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Unknown dependency category '{category}', expected one of {CATEGORIES}")
    if not is_known_provenance(via):
        raise ValueError(f"Unknown provenance tag '{via}'; register it with register_provenance()")
    if not source_text:
        return []

    conventions = conventions or DEFAULT_CONVENTIONS
    seen: dict[str, None] = {}
    for target in _targets(source_text, category, registry, conventions):
        seen.setdefault(target, None)
    return [Dependency(kind=category, target=target, via=via) for target in seen]


def scan_model_dependencies(source_text, via=DEFAULT_VIA, registry=None):
    return scan(source_text, "model", via, registry=registry)


def scan_service_dependencies(source_text, via=DEFAULT_VIA, conventions=None):
    return scan(source_text, "service", via, conventions=conventions)


def scan_job_dependencies(source_text, via=DEFAULT_VIA, conventions=None):
    return scan(source_text, "job", via, conventions=conventions)


def scan_mailer_dependencies(source_text, via=DEFAULT_VIA, conventions=None):
    return scan(source_text, "mailer", via, conventions=conventions)


def merge_dependencies(*lists: list[Dependency]) -> list[Dependency]:
    """Concatenate dependency lists, keeping the first edge per ``(kind, target)``."""
    merged: dict[tuple[str, str], Dependency] = {}
    for deps in lists:
        for dep in deps or ():
            merged.setdefault((dep.kind, dep.target), dep)
    return list(merged.values())


def scan_common_dependencies(
    source_text: str | None,
    via: str = DEFAULT_VIA,
    registry: NameRegistry | None = None,
    conventions: Conventions | None = None,
) -> list[Dependency]:
    """All four categories at once, deduplicated per category."""
    return merge_dependencies(
        *(scan(source_text, category, via, registry, conventions) for category in CATEGORIES)
    )
