"""Blast radius of changed files, from a written dependency graph."""

import json
from pathlib import Path

import click
from rich.table import Table

from unitindex.ui import console, print_warning
from unitindex.utils.error_handler import handle_exceptions


@click.command("impact")
@click.argument("files", nargs=-1, required=True)
@click.option(
    "--root",
    default=".",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Application root the graph was extracted from",
)
@click.option(
    "--graph",
    "graph_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="dependency_graph.json (default: <root>/<paths.output_dir>/dependency_graph.json)",
)
@click.option("--depth", type=click.IntRange(min=0), help="Maximum hops from a changed unit")
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON")
@handle_exceptions
def impact(files, root, graph_path, depth, as_json):
    """List units affected by changes to FILES.

    A unit is affected when it is defined in a changed file or depends,
    directly or transitively, on a unit that is. Run `unitindex extract`
    first to produce the graph.

    EXAMPLES:
      unitindex impact app/models/user.rb
      unitindex impact app/models/user.rb app/jobs/sync_job.rb --depth 1
      git diff --name-only | xargs unitindex impact --json"""
    from unitindex.config import load_runtime_config
    from unitindex.core.graph import DependencyGraph
    from unitindex.utils.constants import GRAPH_FILE
    from unitindex.utils.helpers import load_json_file, normalize_relative_path

    root = root.resolve()
    if graph_path is None:
        config = load_runtime_config(root)
        graph_path = root / config["paths"]["output_dir"] / GRAPH_FILE
    if not graph_path.is_file():
        raise click.ClickException(
            f"Dependency graph not found at {graph_path}\nRun 'unitindex extract' first."
        )

    graph = DependencyGraph.from_dict(load_json_file(graph_path))

    changed = []
    for file in files:
        path = Path(file)
        absolute = path if path.is_absolute() else Path.cwd() / path
        changed.append(normalize_relative_path(str(absolute.resolve()), root))
        changed.append(path.as_posix())

    affected = graph.affected_by(list(dict.fromkeys(changed)), max_depth=depth)

    if as_json:
        click.echo(json.dumps(
            [{"identifier": a, "type": graph.nodes[a]["type"], "file_path": graph.nodes[a]["file_path"]}
             for a in affected],
            indent=2,
        ))
        return

    if not affected:
        print_warning("No indexed units are defined in the given files")
        return

    table = Table(title=f"Affected units ({len(affected)})")
    table.add_column("Unit", style="unit")
    table.add_column("Type", style="kind")
    table.add_column("File", style="path")
    for identifier in affected:
        node = graph.nodes.get(identifier, {})
        table.add_row(identifier, node.get("type", "?"), node.get("file_path") or "")
    console.print(table)
