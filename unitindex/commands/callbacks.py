"""Infer the side effects of one lifecycle callback."""

import json
from pathlib import Path

import click
from rich.table import Table

from unitindex.ui import console
from unitindex.utils.error_handler import handle_exceptions

_LABELS = {
    "columns_written": "Columns written",
    "jobs_enqueued": "Jobs enqueued",
    "services_called": "Services called",
    "mailers_triggered": "Mailers triggered",
    "database_reads": "Database reads",
}


@click.command("callbacks")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--filter", "filter_name", required=True, help="Callback method name")
@click.option("--field", "fields", multiple=True, help="Known persisted field (repeatable)")
@click.option("--type", "callback_type", default="before_save", show_default=True, help="Callback type")
@click.option("--json", "as_json", is_flag=True, help="Output results as JSON")
@handle_exceptions
def callbacks(file, filter_name, fields, callback_type, as_json):
    """Show what the callback method --filter does when it runs.

    Finds the first definition of the method anywhere in FILE and reports
    the fields it writes (only those given with --field), the jobs it
    enqueues, and the services, mailers and read queries it calls.

    EXAMPLES:
      unitindex callbacks app/models/user.rb --filter normalize_email --field email
      unitindex callbacks app/models/order.rb --filter notify --json"""
    from unitindex.core.callbacks import Callback, analyze_callback
    from unitindex.core.collector import read_source

    callback = Callback(type=callback_type, filter=filter_name, kind=callback_type.split("_", 1)[0])
    result = analyze_callback(callback, read_source(file), fields)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    table = Table(title=f"{callback_type} :{filter_name}", show_header=False)
    table.add_column("Effect", style="bold")
    table.add_column("Detected")
    for key, label in _LABELS.items():
        values = result["side_effects"][key]
        table.add_row(label, ", ".join(values) if values else "[dim]-[/dim]")
    console.print(table)
