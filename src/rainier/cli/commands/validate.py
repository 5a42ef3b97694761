"""Configuration and chain file validation commands."""

import typer
from pathlib import Path

from ...core import Config, ConfigurationError, parse_key_value_pairs
from ...workload import find_named_markers, load_argument_lists, read_chain_file

app = typer.Typer()


@app.command()
def config(
    config_file: Path = typer.Argument(..., help="Path to configuration file"),
):
    """Validate a configuration file."""
    typer.echo(f"Validating config: {config_file}")

    if not config_file.exists():
        typer.echo(f"❌ Configuration file not found: {config_file}", err=True)
        raise typer.Exit(1)

    try:
        cfg = Config(config_path=config_file)
    except ConfigurationError as e:
        typer.echo(f"❌ Configuration validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo("✅ Configuration validation successful!")

    if not cfg.cluster.host:
        typer.echo("  ⚠️  No host configured, pass --host when running")
    if cfg.workload.chain_file is None:
        typer.echo("  ⚠️  No chain file configured, pass --file when running")

    # Show effective configuration
    typer.echo("\nEffective Configuration:")
    for section_name, section_data in cfg.to_dict().items():
        typer.echo(f"  {section_name}:")
        for key, value in section_data.items():
            typer.echo(f"    {key}: {value}")


@app.command()
def chain(
    chain_file: Path = typer.Argument(..., help="Path to chain file"),
    args: str = typer.Option("", "--args", help="key:value pairs of static arguments"),
    argfile: str = typer.Option("", "--argfile", help="arg:filename pairs of argument files"),
):
    """Check that every placeholder of a chain can be bound.

    Placeholders are found from ``:name`` markers, so this works without a
    connection. Columns returned by a statement can only be checked at run
    time; they are reported as possibly row-derived.
    """
    typer.echo(f"Validating chain: {chain_file}")

    if not chain_file.exists():
        typer.echo(f"❌ Chain file not found: {chain_file}", err=True)
        raise typer.Exit(1)

    try:
        static_args = parse_key_value_pairs(args)
        arg_files = {k: Path(v) for k, v in parse_key_value_pairs(argfile, "argfile argument").items()}
        list_sources = load_argument_lists(arg_files)
    except ConfigurationError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    lines = read_chain_file(chain_file)
    if not lines:
        typer.echo("⚠️  Chain file contains no statements")
        return

    known = set(static_args) | set(list_sources)
    for position, line in enumerate(lines):
        markers = find_named_markers(line.text)
        typer.echo(f"  {position + 1}. line {line.line_number}: {line.text}")
        for name in markers:
            if name in known:
                typer.echo(f"      {name}: ✅ argument")
            elif position > 0:
                typer.echo(f"      {name}: ⚠️  must come from a column of a previous statement")
            else:
                typer.echo(f"      {name}: ❌ no value", err=True)
                raise typer.Exit(1)

    typer.echo(f"✅ Chain of {len(lines)} statement(s) is valid")
