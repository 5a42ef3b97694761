"""System information commands."""

import typer
import platform
import sys
import psutil

from ...workload import RATE_LIMITERS

app = typer.Typer()


@app.command()
def system():
    """Display information about the load generator host."""
    typer.echo("System Information:")
    typer.echo("=" * 50)

    # Python information
    typer.echo(f"Python Version: {sys.version}")
    typer.echo(f"Python Executable: {sys.executable}")

    # Platform information
    typer.echo(f"Platform: {platform.platform()}")
    typer.echo(f"Machine: {platform.machine()}")

    # CPU information bounds how many worker threads are useful
    typer.echo(f"CPU Count: {psutil.cpu_count(logical=True)} (logical), {psutil.cpu_count(logical=False)} (physical)")
    cpu_freq = psutil.cpu_freq()
    if cpu_freq:
        typer.echo(f"CPU Frequency: {cpu_freq.current:.2f} MHz (max: {cpu_freq.max:.2f} MHz)")

    # Memory information
    memory = psutil.virtual_memory()
    typer.echo(f"Total Memory: {memory.total / (1024**3):.2f} GB")
    typer.echo(f"Available Memory: {memory.available / (1024**3):.2f} GB")

    typer.echo("\nRun 'rainier version' for package versions.")


@app.command()
def limiters():
    """List available rate limiters."""
    typer.echo("Available rate limiters:")
    for name, cls in sorted(RATE_LIMITERS.items()):
        doc = (cls.__doc__ or "").strip().splitlines()[0] if cls.__doc__ else ""
        typer.echo(f"  - {name}: {doc}")
