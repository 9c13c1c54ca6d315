"""Failure-isolated collection of units from extraction candidates."""

import os
import traceback
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from unitindex.core.names import NameRegistry, default_registry
from unitindex.core.units import ExtractedUnit
from unitindex.utils.logging import logger

ExtractResult = ExtractedUnit | list[ExtractedUnit] | None
ExtractFn = Callable[["Candidate"], ExtractResult]


@dataclass(frozen=True)
class Candidate:
    """One thing an extractor may turn into units (a class, a file, a DSL block)."""

    name: str
    source_text: str | None = None
    file_path_hint: str | None = None


def read_source(path: str | os.PathLike, max_size: int | None = None) -> str:
    """Read a source file as UTF-8 (undecodable bytes replaced).

    Raises:
        OSError: The file is missing or unreadable.
        ValueError: The file is larger than *max_size* bytes.
    """
    path = Path(path)
    if max_size is not None and path.stat().st_size > max_size:
        raise ValueError(f"{path} exceeds the {max_size} byte limit")
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


def _extract_one(candidate: Candidate, extract: ExtractFn, label: str) -> list[ExtractedUnit]:
    try:
        result = extract(candidate)
        if result is None:
            return []
        if isinstance(result, ExtractedUnit):
            return [result]
        if isinstance(result, (str, bytes)):
            raise TypeError(f"extractor returned {type(result).__name__}, expected units")
        # generators run here so a late read error stays with this candidate
        items = list(result)
    except Exception as e:
        logger.error(f"Failed to extract {label} {candidate.name}: {e}")
        logger.debug(traceback.format_exc())
        return []

    units = []
    for item in items:
        if item is None:
            continue
        if not isinstance(item, ExtractedUnit):
            logger.error(f"Ignoring non-unit {type(item).__name__} produced for {label} {candidate.name}")
            continue
        units.append(item)
    return units


def collect(
    candidates: Iterable[Candidate],
    extract: ExtractFn,
    *,
    label: str = "unit",
    workers: int = 1,
    registry: NameRegistry | None = None,
) -> list[ExtractedUnit]:
    """Run *extract* over every candidate, isolating failures per candidate.

    A failing candidate is logged and skipped; the batch always returns a
    list (possibly empty). Errors raised while enumerating *candidates*
    are not caught. A registry loader that fails during the threaded
    warm-up only fails the candidates that use the registry, the same as
    with ``workers=1``.

    Args:
        candidates: Iterable of Candidate; may be a generator.
        extract: Callable returning a unit, a list of units, or None.
        label: Noun used in log messages ("model", "job", ...).
        workers: Thread count; 1 runs inline.
        registry: Name registry to warm before threads start.

    Returns:
        Units in candidate order.
    """
    if workers <= 1:
        units: list[ExtractedUnit] = []
        for candidate in candidates:
            units.extend(_extract_one(candidate, extract, label))
        return units

    pending = list(candidates)
    if not pending:
        return []

    # Build the shared name matcher once, before any worker can race on it.
    # A failing loader is left to fail inside each candidate, as it does inline.
    try:
        (registry or default_registry()).known_names()
    except Exception as e:
        logger.warning(f"Name registry warm-up failed, continuing per {label}: {e}")

    units = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_extract_one, c, extract, label) for c in pending]
        for future in futures:
            units.extend(future.result())
    return units


def deduplicate_units(units: list[ExtractedUnit], label: str = "unit") -> list[ExtractedUnit]:
    """Keep the first unit per identifier; log how many were dropped."""
    seen: set[str] = set()
    kept: list[ExtractedUnit] = []
    for unit in units:
        if unit.identifier in seen:
            continue
        seen.add(unit.identifier)
        kept.append(unit)

    dropped = len(units) - len(kept)
    if dropped:
        logger.warning(f"Dropped {dropped} duplicate {label} identifier(s)")
    return kept
