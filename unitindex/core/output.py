"""On-disk layout of an extraction pass.

    <output_dir>/
        <type>/<Safe_Name>_<sha8>.json   one file per unit
        <type>/_index.json               per-type listing
        dependency_graph.json            graph plus PageRank scores
        manifest.json                    counts and input fingerprints
"""

import hashlib
import platform
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from unitindex import __version__
from unitindex.core.graph import DependencyGraph
from unitindex.core.units import ExtractedUnit
from unitindex.utils.constants import GRAPH_FILE, MANIFEST_FILE, TYPE_INDEX_FILE
from unitindex.utils.helpers import collision_safe_filename, save_json_file
from unitindex.utils.logging import logger

# Files whose digest identifies the state of the indexed application.
FINGERPRINT_FILES = {
    "gemfile_lock_sha": "Gemfile.lock",
    "schema_sha": "db/schema.rb",
}


def _file_sha(path: Path) -> str | None:
    if not path.is_file():
        return None
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for block in iter(lambda: f.read(65536), b""):
            digest.update(block)
    return digest.hexdigest()


def index_entry(unit: ExtractedUnit) -> dict[str, Any]:
    return {
        "identifier": unit.identifier,
        "file_path": unit.file_path,
        "namespace": unit.namespace,
        "estimated_tokens": unit.estimated_tokens(),
        "chunk_count": len(unit.chunks),
    }


class IndexWriter:
    """Writes extraction results under one output directory."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    def setup(self, unit_types: list[str]) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for unit_type in unit_types:
            (self.output_dir / unit_type).mkdir(exist_ok=True)

    def unit_path(self, unit: ExtractedUnit) -> Path:
        return self.output_dir / unit.unit_type.value / collision_safe_filename(unit.identifier)

    def write_results(self, results: dict[str, list[ExtractedUnit]]) -> int:
        """Write every unit and the per-type indexes; returns the file count."""
        written = 0
        for unit_type, units in results.items():
            type_dir = self.output_dir / unit_type
            type_dir.mkdir(parents=True, exist_ok=True)
            for unit in units:
                save_json_file(unit.to_dict(), self.unit_path(unit))
                written += 1
            save_json_file([index_entry(u) for u in units], type_dir / TYPE_INDEX_FILE)
        logger.debug(f"Wrote {written} unit files to {self.output_dir}")
        return written

    def write_dependency_graph(self, graph: DependencyGraph) -> Path:
        data = graph.to_dict()
        data["pagerank"] = graph.pagerank()
        path = self.output_dir / GRAPH_FILE
        save_json_file(data, path)
        return path

    def write_manifest(self, results: dict[str, list[ExtractedUnit]], app_root: str | Path) -> dict[str, Any]:
        root = Path(app_root)
        manifest: dict[str, Any] = {
            "extracted_at": datetime.now(timezone.utc).isoformat(),
            "unitindex_version": __version__,
            "python_version": platform.python_version(),
            "app_root": str(root),
            "counts": {unit_type: len(units) for unit_type, units in results.items()},
            "total_units": sum(len(units) for units in results.values()),
            "total_chunks": sum(len(u.chunks) for units in results.values() for u in units),
        }
        for key, relative in FINGERPRINT_FILES.items():
            manifest[key] = _file_sha(root / relative)

        save_json_file(manifest, self.output_dir / MANIFEST_FILE)
        return manifest
