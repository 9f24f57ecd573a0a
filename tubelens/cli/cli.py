"""Main CLI entry point for TubeLens."""

from __future__ import annotations

import click

from tubelens.app.dependencies import get_settings
from tubelens.app.logging_config import configure_cli_logging

from .commands import reports, search, selection, session


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Log diagnostics to stderr.")
def main(verbose: bool) -> None:
    """TubeLens - YouTube analytics from the terminal."""
    configure_cli_logging(get_settings(), verbose=verbose)


# Session commands
main.add_command(session.login)
main.add_command(session.logout)
main.add_command(session.status)

# Search commands
main.add_command(search.search)
main.add_command(search.trending)
main.add_command(search.history)
main.add_command(search.results)
main.add_command(search.filters)

# Selection commands
main.add_command(selection.select)
main.add_command(selection.deselect)
main.add_command(selection.show_selection)
main.add_command(selection.clear)

# Report commands
main.add_command(reports.summary)
main.add_command(reports.charts)
main.add_command(reports.export)
main.add_command(reports.metrics)


if __name__ == "__main__":
    main()
