"""Run a full extraction pass over an application."""

from pathlib import Path

import click
from rich.table import Table

from unitindex.ui import console, print_header, print_status_panel
from unitindex.utils.constants import STATE_DIR_NAME
from unitindex.utils.error_handler import handle_exceptions
from unitindex.utils.logging import configure_file_logging, logger


@click.command("extract")
@click.option(
    "--root",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Application root directory",
)
@click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Runtime manifest written by the host application (default: <root>/unitindex.json if present)",
)
@click.option("--output", "output_dir", type=click.Path(path_type=Path), help="Output directory")
@click.option("--workers", type=click.IntRange(min=1), help="Threads per extractor")
@click.option("--concurrent", is_flag=True, help="Run extractors in parallel threads")
@click.option("--quiet", "-q", is_flag=True, help="Only print the final status line")
@handle_exceptions
def extract(root, manifest_path, output_dir, workers, concurrent, quiet):
    """Extract units and the dependency graph into JSON files.

    Discovers models (from the runtime manifest, or app/models), jobs and
    mailers, scans them for cross-unit references, infers callback side
    effects and writes one JSON document per unit plus a dependency graph.

    OUTPUT LAYOUT:
      <output>/<type>/<Name>_<sha8>.json   One file per unit
      <output>/<type>/_index.json          Per-type listing
      <output>/dependency_graph.json       Graph and PageRank scores
      <output>/manifest.json               Counts and input fingerprints

    EXAMPLES:
      unitindex extract --root /srv/app
      unitindex extract --root . --manifest unitindex.json --concurrent
      unitindex extract --root . --output /tmp/index --workers 4

    Failing units are logged and skipped; the pass itself only fails when a
    discovery root cannot be read."""
    from unitindex.pipeline import ExtractionPipeline

    pipeline = ExtractionPipeline(
        root=root,
        manifest_path=manifest_path,
        output_dir=output_dir,
        workers=workers,
        concurrent=True if concurrent else None,
    )
    handler_id = configure_file_logging(pipeline.root / STATE_DIR_NAME)
    try:
        result = pipeline.run()
    finally:
        logger.remove(handler_id)

    if not quiet:
        print_header("EXTRACTION SUMMARY")
        table = Table(show_header=True, header_style="bold")
        table.add_column("Type", style="kind")
        table.add_column("Units", justify="right")
        table.add_column("Chunks", justify="right")
        for unit_type, units in result.results.items():
            table.add_row(unit_type, str(len(units)), str(sum(len(u.chunks) for u in units)))
        console.print(table)

    if result.failed_extractors:
        print_status_panel(
            "PARTIAL",
            f"{result.total_units} units written to {result.output_dir}",
            f"Failed extractors: {', '.join(result.failed_extractors)}",
            level="warning",
        )
    elif result.total_units == 0:
        print_status_panel("EMPTY", "No units found", f"Root: {pipeline.root}", level="warning")
    else:
        print_status_panel(
            "COMPLETE",
            f"{result.total_units} units written to {result.output_dir}",
            f"Elapsed: {result.elapsed:.2f}s",
            level="success",
        )
