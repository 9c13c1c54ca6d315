"""Scan one source file for cross-unit references."""

import json
from pathlib import Path

import click

from unitindex.ui import console, dependency_table
from unitindex.utils.error_handler import handle_exceptions


@click.command("scan")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--models", "-m", multiple=True, help="Known model name (repeatable)")
@click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Take known model names from a runtime manifest",
)
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON")
@handle_exceptions
def scan(file, models, manifest_path, as_json):
    """List the models, services, jobs and mailers FILE references.

    Model references only count when the name is known (from --models or
    --manifest); services, jobs and mailers are recognized by convention:

    \b
      FooService.call / FooService::Result    service
      FooJob.perform_later / FooWorker.perform_async    job
      FooMailer.welcome                        mailer

    EXAMPLES:
      unitindex scan app/models/user.rb --models Post --models Comment
      unitindex scan app/jobs/sync_job.rb --manifest unitindex.json --json"""
    from unitindex.core.collector import read_source
    from unitindex.core.manifest import RuntimeManifest
    from unitindex.core.names import NameRegistry
    from unitindex.core.scanner import scan_common_dependencies

    names = list(models)
    if manifest_path:
        names.extend(RuntimeManifest.load(manifest_path).model_names())
    registry = NameRegistry.from_names(names)

    dependencies = scan_common_dependencies(read_source(file), registry=registry)

    if as_json:
        click.echo(json.dumps([d.to_dict() for d in dependencies], indent=2))
        return

    if not dependencies:
        console.print(f"[dim]No references found in[/dim] [path]{file}[/path]")
        return
    console.print(dependency_table(dependencies, title=str(file)))
