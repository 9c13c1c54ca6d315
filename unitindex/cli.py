"""unitindex CLI - Main entry point and command registration hub."""
# ruff: noqa: E402 - Intentional lazy loading: commands imported after cli group definition

import click
from rich.table import Table

from unitindex import __version__
from unitindex.ui import console


class VerboseGroup(click.Group):
    """Help system that generates categorized help from registered commands."""

    def format_commands(self, ctx, formatter):
        """Override to suppress default command listing (we use categorized format in format_help)."""
        pass

    COMMAND_CATEGORIES = {
        "EXTRACTION": {
            "title": "EXTRACTION",
            "description": "Build the unit index and dependency graph",
            "commands": ["extract"],
            "command_meta": {
                "extract": {
                    "run_when": "After code changes, before search or impact queries",
                },
            },
        },
        "INSPECTION": {
            "title": "INSPECTION",
            "description": "Run one engine step against a single file",
            "commands": ["scan", "callbacks"],
            "command_meta": {
                "scan": {
                    "use_when": "Checking which units a file references",
                },
                "callbacks": {
                    "use_when": "Checking what a lifecycle callback does",
                },
            },
        },
        "ANALYSIS": {
            "title": "ANALYSIS",
            "description": "Queries over a written index",
            "commands": ["impact"],
            "command_meta": {
                "impact": {
                    "use_when": "Assessing blast radius of changed files",
                },
            },
        },
    }

    def format_help(self, ctx, formatter):
        """Generate Rich-styled categorized help."""
        super().format_help(ctx, formatter)

        registered = {
            name: cmd
            for name, cmd in self.commands.items()
            if not name.startswith("_") and not getattr(cmd, "hidden", False)
        }

        console.print()
        console.rule("[bold]COMMANDS[/bold]")

        for _category_id, category_data in self.COMMAND_CATEGORIES.items():
            console.print(f"\n[bold cyan]{category_data['title']}[/bold cyan]")
            console.print(f"[dim]{category_data['description']}[/dim]")

            table = Table(show_header=False, box=None, padding=(0, 2, 0, 0))
            table.add_column("Command", style="cmd", width=12)
            table.add_column("Description", style="white")
            table.add_column("When", style="dim", width=48)

            for cmd_name in category_data["commands"]:
                if cmd_name not in registered:
                    continue
                cmd = registered[cmd_name]

                first_line = (cmd.help or "").split("\n")[0].strip()
                period_idx = first_line.find(".")
                short_help = first_line[:period_idx] if period_idx > 0 else first_line
                if len(short_help) > 45:
                    short_help = short_help[:45].rsplit(" ", 1)[0] + "..."

                cmd_meta = category_data.get("command_meta", {}).get(cmd_name, {})
                hint = ""
                if "use_when" in cmd_meta:
                    hint = f"USE: {cmd_meta['use_when']}"
                elif "run_when" in cmd_meta:
                    hint = f"RUN: {cmd_meta['run_when']}"

                table.add_row(cmd_name, short_help, hint)

            console.print(table)

        console.print()
        console.rule()
        console.print("For detailed options: [cmd]unitindex <command> --help[/cmd]")


@click.group(cls=VerboseGroup)
@click.version_option(version=__version__, prog_name="unitindex")
@click.help_option("-h", "--help")
def cli():
    """unitindex - Unit index and dependency graph for convention-based codebases

    \b
    QUICK START:
      unitindex extract --root .            # Index the application
      unitindex impact app/models/user.rb   # Who is affected by a change

    \b
    For detailed options: unitindex <command> --help"""
    pass


from unitindex.commands.callbacks import callbacks
from unitindex.commands.extract import extract
from unitindex.commands.impact import impact
from unitindex.commands.scan import scan

cli.add_command(extract)
cli.add_command(scan)
cli.add_command(callbacks)
cli.add_command(impact)


def main():
    """Main entry point for console script."""
    cli()


if __name__ == "__main__":
    main()
