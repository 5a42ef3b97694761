"""
Rainier Query-Chain Load Generator CLI

Main entry point for the rainier command-line tool.
"""

import typer
import logging
import sys

from . import commands

app = typer.Typer(
    name="rainier",
    help="Query-chain load generator for Cassandra-compatible stores",
    add_completion=False,
)

# Add command groups
app.add_typer(commands.run.app, name="run", help="Run query chains")
app.add_typer(commands.validate.app, name="validate", help="Validate configurations and chain files")
app.add_typer(commands.info.app, name="info", help="Display system information")


def _configure_logging(verbose: bool, quiet: bool) -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr
    )

    # Reduce noise from the driver
    if not verbose:
        logging.getLogger('cassandra').setLevel(logging.WARNING)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output (logs every statement)"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-error output"),
):
    """Rainier query-chain load generator."""
    # Validate conflicting options
    if verbose and quiet:
        typer.echo("Error: Cannot use both --verbose and --quiet", err=True)
        raise typer.Exit(1)

    _configure_logging(verbose, quiet)


def _get_version() -> str:
    """Get package version."""
    import importlib.metadata
    try:
        return importlib.metadata.version("rainier")
    except importlib.metadata.PackageNotFoundError:
        from .. import __version__
        return __version__


@app.command()
def version():
    """Display version information."""
    import importlib.metadata

    typer.echo(f"rainier version {_get_version()}")
    typer.echo(f"Python {sys.version}")

    # Show key dependency versions
    deps = ['cassandra-driver', 'numpy', 'psutil', 'typer', 'pyyaml', 'prometheus-client', 'rich']
    typer.echo("\nKey dependencies:")
    for dep in deps:
        try:
            dep_version = importlib.metadata.version(dep)
            typer.echo(f"  {dep}: {dep_version}")
        except importlib.metadata.PackageNotFoundError:
            typer.echo(f"  {dep}: Not found")


if __name__ == "__main__":
    app()
