"""Full extraction pass: extract, dedupe, link, write.

    pipeline = ExtractionPipeline(root="/srv/app", manifest_path="/srv/app/unitindex.json")
    result = pipeline.run()
    result.counts  # {"model": 42, "job": 17, "mailer": 5}

Extractors run sequentially in priority order, or one thread each when
``limits.concurrent_extraction`` is enabled. In concurrent mode a failing
extractor is logged and contributes no units; in sequential mode its error
propagates.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from unitindex.config import load_runtime_config
from unitindex.core.collector import deduplicate_units
from unitindex.core.conventions import Conventions
from unitindex.core.graph import DependencyGraph
from unitindex.core.manifest import RuntimeManifest
from unitindex.core.names import NameRegistry, default_registry, names_from_files
from unitindex.core.output import IndexWriter
from unitindex.core.units import ExtractedUnit
from unitindex.extractors import BaseExtractor, ExtractionContext, ExtractorRegistry
from unitindex.utils.helpers import normalize_relative_path
from unitindex.utils.logging import logger


@dataclass
class PipelineResult:
    """Outcome of one pass."""

    results: dict[str, list[ExtractedUnit]]
    graph: DependencyGraph
    output_dir: Path
    manifest: dict[str, Any] = field(default_factory=dict)
    elapsed: float = 0.0
    failed_extractors: list[str] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {unit_type: len(units) for unit_type, units in self.results.items()}

    @property
    def total_units(self) -> int:
        return sum(self.counts.values())


class ExtractionPipeline:
    """Orchestrates extractors over one application root."""

    def __init__(
        self,
        root: str | Path,
        manifest_path: str | Path | None = None,
        output_dir: str | Path | None = None,
        config: dict[str, Any] | None = None,
        registry: NameRegistry | None = None,
        workers: int | None = None,
        concurrent: bool | None = None,
    ):
        self.root = Path(root).resolve()
        self.config = config or load_runtime_config(self.root)
        limits = dict(self.config["limits"])
        if workers is not None:
            limits["workers"] = workers
        if concurrent is not None:
            limits["concurrent_extraction"] = concurrent
        self.limits = limits

        paths = self.config["paths"]
        self.output_dir = Path(output_dir) if output_dir else self.root / paths["output_dir"]
        if manifest_path is None:
            candidate = self.root / paths["runtime_manifest"]
            manifest_path = candidate if candidate.is_file() else None
        self.manifest = RuntimeManifest.load(manifest_path) if manifest_path else None

        self.registry = registry or default_registry()
        self.conventions = Conventions.from_config(self.config)
        self.context = ExtractionContext(
            app_root=self.root,
            manifest=self.manifest,
            registry=self.registry,
            conventions=self.conventions,
            limits=self.limits,
        )
        self.extractors = ExtractorRegistry(self.context)
        self.writer = IndexWriter(self.output_dir)

    def seed_registry(self) -> None:
        """Reset the name registry and point it at the current object model."""
        if self.manifest is not None:
            self.registry.use_loader(self.manifest.model_names)
        else:
            self.registry.use_loader(
                names_from_files(self.root, extension=self.conventions.source_extension)
            )
        self.registry.reset()

    def run(self) -> PipelineResult:
        start = time.perf_counter()
        self.writer.setup(self.extractors.unit_types())
        self.seed_registry()

        if self.limits.get("concurrent_extraction"):
            results, failed = self.extract_concurrent()
        else:
            results, failed = self.extract_sequential(), []

        logger.info("Deduplicating results...")
        results = {unit_type: deduplicate_units(units, unit_type) for unit_type, units in results.items()}

        self.normalize_file_paths(results)

        all_units = [unit for units in results.values() for unit in units]
        graph = DependencyGraph.build(all_units)
        logger.info("Resolving dependents...")
        graph.resolve_dependents(all_units)

        self.writer.write_results(results)
        self.writer.write_dependency_graph(graph)
        manifest = self.writer.write_manifest(results, self.root)

        elapsed = time.perf_counter() - start
        logger.info(f"Extraction complete: {len(all_units)} units in {elapsed:.2f}s")
        return PipelineResult(
            results=results,
            graph=graph,
            output_dir=self.output_dir,
            manifest=manifest,
            elapsed=elapsed,
            failed_extractors=failed,
        )

    def _run_extractor(self, extractor: BaseExtractor) -> list[ExtractedUnit]:
        unit_type = extractor.unit_type.value
        logger.info(f"Extracting {unit_type}...")
        start = time.perf_counter()
        try:
            units = extractor.extract_all()
        finally:
            extractor.cleanup()
        logger.info(f"Extracted {len(units)} {unit_type} in {time.perf_counter() - start:.2f}s")
        return units

    def extract_sequential(self) -> dict[str, list[ExtractedUnit]]:
        return {e.unit_type.value: self._run_extractor(e) for e in self.extractors.ordered()}

    def extract_concurrent(self) -> tuple[dict[str, list[ExtractedUnit]], list[str]]:
        extractors = self.extractors.ordered()
        # Build the name matcher before any extractor thread needs it.
        self.registry.known_names()

        results: dict[str, list[ExtractedUnit]] = {}
        failed: list[str] = []
        if not extractors:
            return results, failed

        with ThreadPoolExecutor(max_workers=len(extractors)) as executor:
            futures = {e.unit_type.value: executor.submit(self._run_extractor, e) for e in extractors}
            for unit_type, future in futures.items():
                try:
                    results[unit_type] = future.result()
                except Exception as e:
                    logger.error(f"Extractor {unit_type} failed: {e}")
                    results[unit_type] = []
                    failed.append(unit_type)
        return results, failed

    def normalize_file_paths(self, results: dict[str, list[ExtractedUnit]]) -> None:
        for units in results.values():
            for unit in units:
                unit.file_path = normalize_relative_path(unit.file_path, self.root)
