"""Run command for executing query chains."""

import typer
import yaml
from pathlib import Path
from typing import Optional
import logging

import rich.console
import rich.table

from ...core import (
    Config,
    ConfigurationError,
    ConnectionManager,
    ExecutionStats,
    PrepareError,
    RainierError,
    RowValueCodec,
    parse_key_value_pairs,
)
from ...monitoring import PrometheusExporter
from ...workload import (
    ChainExecutor,
    IterationScheduler,
    RunSummary,
    create_rate_limiter,
    load_argument_lists,
    prepare_chain,
    read_chain_file,
)

app = typer.Typer()
logger = logging.getLogger(__name__)
console = rich.console.Console()


def build_config(
    config_path: Optional[Path] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    keyspace: Optional[str] = None,
    consistency_level: Optional[str] = None,
    chain_file: Optional[Path] = None,
    threads: Optional[int] = None,
    iterations: Optional[int] = None,
    min_repeat: Optional[int] = None,
    max_repeat: Optional[int] = None,
    rate: Optional[float] = None,
    rate_limiter: Optional[str] = None,
    seed_offset: Optional[int] = None,
    args: Optional[str] = None,
    argfile: Optional[str] = None,
    strict: Optional[bool] = None,
    on_store_error: Optional[str] = None,
    max_retries: Optional[int] = None,
    duration: Optional[float] = None,
    summary: Optional[Path] = None,
    pushgateway: Optional[str] = None,
) -> Config:
    """Load the configuration file and apply command-line overrides."""
    config = Config(config_path=config_path)

    config.apply_overrides(
        "cluster",
        host=host,
        port=port,
        username=username,
        password=password,
        keyspace=keyspace,
        consistency_level=consistency_level,
    )

    static_args = dict(config.workload.args)
    static_args.update(parse_key_value_pairs(args))
    arg_files = dict(config.workload.arg_files)
    arg_files.update({k: Path(v) for k, v in parse_key_value_pairs(argfile, "argfile argument").items()})

    config.apply_overrides(
        "workload",
        chain_file=chain_file,
        n_threads=threads,
        n_iterations=iterations,
        min_repeat=min_repeat,
        max_repeat=max_repeat,
        rate=rate,
        rate_limiter=rate_limiter,
        seed_offset=seed_offset,
        args=static_args,
        arg_files=arg_files,
        strict=strict,
        on_store_error=on_store_error,
        max_retries=max_retries,
        duration_seconds=duration,
    )
    config.apply_overrides("output", summary_path=summary)
    config.apply_overrides("monitoring", prometheus_pushgateway=pushgateway)

    config.validate(for_run=True)
    return config


def run_chain_workload(config: Config, connection_manager: Optional[ConnectionManager] = None) -> RunSummary:
    """Prepare the chain, run every iteration and build the summary.

    Configuration and prepare errors are raised before any iteration runs.
    """
    workload = config.workload

    # Files are read before connecting so bad input fails fast
    lines = read_chain_file(workload.chain_file)
    list_sources = load_argument_lists(workload.arg_files)

    exporter = PrometheusExporter(
        pushgateway_url=config.monitoring.prometheus_pushgateway,
        job_name=config.monitoring.job_name,
        username=config.monitoring.pushgateway_username,
        password=config.monitoring.pushgateway_password,
    )
    stats = ExecutionStats(observer=exporter)
    rate_limiter = create_rate_limiter(workload.rate_limiter, workload.rate)

    connection_manager = connection_manager or ConnectionManager(config.cluster)
    with connection_manager as session:
        chain = prepare_chain(session, lines)

        executor = ChainExecutor(
            session=session,
            rate_limiter=rate_limiter,
            codec=RowValueCodec(),
            stats=stats,
            on_store_error=workload.on_store_error,
            max_retries=workload.max_retries,
        )
        scheduler = IterationScheduler(
            executor=executor,
            chain=chain,
            static_args=workload.args,
            list_sources=list_sources,
            min_repeat=workload.min_repeat,
            max_repeat=workload.max_repeat,
            n_threads=workload.n_threads,
            seed_offset=workload.seed_offset,
            strict=workload.strict,
        )

        stats.reset()
        try:
            result = scheduler.schedule(workload.n_iterations, duration_seconds=workload.duration_seconds)
        except KeyboardInterrupt:
            scheduler.stop()
            raise

    summary = RunSummary.from_run(workload.n_iterations, result, stats)
    exporter.update_run_summary(summary.to_dict())
    exporter.push_metrics()
    return summary


def _apply_log_level(level: str) -> None:
    # --verbose and --quiet take precedence over the configured level
    if logging.getLogger().level == logging.INFO:
        logging.getLogger("rainier").setLevel(level)


def print_summary(summary: RunSummary) -> None:
    """Render the run summary as a table."""
    table = rich.table.Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Iterations completed", f"{summary.iterations_completed}/{summary.iterations_requested}")
    table.add_row("Iterations failed", str(summary.iterations_failed))
    table.add_row("Iterations cancelled", str(summary.iterations_cancelled))
    table.add_row("Total chains", str(summary.total_chains))
    table.add_row("Statements executed", str(summary.statements_executed))
    table.add_row("Elapsed", f"{summary.total_time_seconds:.2f}s")
    table.add_row("Statements/sec", f"{summary.statements_per_second:.1f}")
    for name in ("p50", "p95", "p99"):
        table.add_row(f"Latency {name}", f"{summary.latency_percentiles.get(name, 0.0):.2f} ms")

    console.print(table)
    for error in summary.errors[:10]:
        console.print(f"[red]{error}[/red]")


@app.command()
def chain(
    chain_file: Optional[Path] = typer.Option(None, "--file", "-f", help="File of queries to run"),
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Contact point for the cluster"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file"),
    port: Optional[int] = typer.Option(None, "--port", help="CQL port number [9042]"),
    user: Optional[str] = typer.Option(None, "--user", help="Username"),
    password: Optional[str] = typer.Option(None, "--pw", help="Password for user"),
    keyspace: Optional[str] = typer.Option(None, "--keyspace", "-k", help="Keyspace to use"),
    consistency_level: Optional[str] = typer.Option(None, "--consistency-level", help="Consistency level [LOCAL_ONE]"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="How many iterations to run in parallel [1]"),
    iterations: Optional[int] = typer.Option(None, "--iterations", "-n", help="Number of iterations to run [1000]"),
    min_repeat: Optional[int] = typer.Option(None, "--min-repeat", help="Minimum number of times to repeat a chain [1]"),
    max_repeat: Optional[int] = typer.Option(None, "--max-repeat", help="Maximum number of times to repeat a chain [1]"),
    rate: Optional[float] = typer.Option(None, "--rate", help="Statement rate per second [50000]"),
    rate_limiter: Optional[str] = typer.Option(None, "--rate-limiter", help="leaky_bucket, token_bucket or sliding_window"),
    seed_offset: Optional[int] = typer.Option(None, "--seed-offset", help="Seed of iteration 0 [0]"),
    args: Optional[str] = typer.Option(None, "--args", help="key:value pairs of arguments, comma separated"),
    argfile: Optional[str] = typer.Option(None, "--argfile", help="arg:filename pairs of argument files, comma separated"),
    strict: Optional[bool] = typer.Option(None, "--strict/--no-strict", help="Abort the run on the first failed iteration"),
    on_store_error: Optional[str] = typer.Option(None, "--on-store-error", help="abort_iteration or skip_branch"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retries per failed statement [0]"),
    duration: Optional[float] = typer.Option(None, "--duration", help="Stop the run after this many seconds"),
    summary_path: Optional[Path] = typer.Option(None, "--summary", "-o", help="Write the run summary to this YAML file"),
    pushgateway: Optional[str] = typer.Option(None, "--pushgateway", help="Prometheus pushgateway URL"),
):
    """Run a query chain against the cluster."""
    try:
        cfg = build_config(
            config_path=config,
            host=host,
            port=port,
            username=user,
            password=password,
            keyspace=keyspace,
            consistency_level=consistency_level,
            chain_file=chain_file,
            threads=threads,
            iterations=iterations,
            min_repeat=min_repeat,
            max_repeat=max_repeat,
            rate=rate,
            rate_limiter=rate_limiter,
            seed_offset=seed_offset,
            args=args,
            argfile=argfile,
            strict=strict,
            on_store_error=on_store_error,
            max_retries=max_retries,
            duration=duration,
            summary=summary_path,
            pushgateway=pushgateway,
        )
    except ConfigurationError as e:
        typer.echo(f"Error processing arguments: {e}", err=True)
        raise typer.Exit(1)

    _apply_log_level(cfg.output.log_level)
    logger.info(f"Params: {cfg.to_dict()}")

    try:
        summary = run_chain_workload(cfg)
    except KeyboardInterrupt:
        typer.echo("\nRun interrupted by user")
        raise typer.Exit(130)
    except (ConfigurationError, PrepareError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except RainierError as e:
        typer.echo(f"Run aborted: {e}", err=True)
        raise typer.Exit(1)
    except Exception as e:
        logger.exception("Run failed")
        typer.echo(f"Error executing chain: {e}", err=True)
        raise typer.Exit(1)

    print_summary(summary)
    typer.echo(f"Completed {summary.iterations_completed} iterations, "
               f"for a total of {summary.total_chains} total chains")

    if cfg.output.summary_path:
        with open(cfg.output.summary_path, 'w') as f:
            yaml.safe_dump(summary.to_dict(), f, default_flow_style=False)
        typer.echo(f"Summary saved to: {cfg.output.summary_path}")

    if not summary.succeeded:
        raise typer.Exit(1)
