from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from physbench.catalog import build_schema, build_specs, build_variants, logical_queries
from physbench.config import get_settings
from physbench.domain.models import Variant
from physbench.errors import HarnessError
from physbench.generation.generator import DataGenerator
from physbench.infrastructure.ddl import (
    create_table_statements,
    drop_table_statements,
    truncate_statements,
)
from physbench.infrastructure.postgres import PostgresBackend
from physbench.reporter import ComparisonReporter, render_comparisons, render_runs
from physbench.runner import BenchmarkRunner
from physbench.utils.logging import configure_logging, get_logger
from physbench.variants.manager import VariantManager

app = typer.Typer(help="Physical-design benchmarking harness CLI.")
console = Console()
log = get_logger(__name__)


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"scale={settings.generation_scale} seed={settings.generation_seed} "
        f"batch={settings.generation_batch_size} workers={settings.generation_workers} | "
        f"warmup={settings.benchmark_warmup} repetitions={settings.benchmark_repetitions}"
    )


@app.command()
def setup(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables first."),
) -> None:
    """
    Create the workload tables.
    """
    _setup_logging()
    schema = build_schema()
    statements = (drop_table_statements(schema) if drop else []) + create_table_statements(schema)
    with PostgresBackend() as backend:
        try:
            for statement in statements:
                backend.execute(statement)
        except HarnessError as exc:
            typer.echo(f"Setup failed: {type(exc).__name__}: {exc}", err=True)
            raise typer.Exit(code=1) from exc
    typer.echo(f"Created {len(schema)} tables.")


@app.command()
def generate(
    scale: Optional[float] = typer.Option(
        None, "--scale", help="Fraction of the full-size row counts (default from settings)."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Generation seed."),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", help="Entities generated concurrently."
    ),
    partition_workers: int = typer.Option(
        1, "--partition-workers", help="Parallel row ranges per entity."
    ),
    truncate: bool = typer.Option(False, "--truncate", help="Empty all tables first."),
) -> None:
    """
    Populate the workload tables with deterministic synthetic data.
    """
    _setup_logging()
    settings = get_settings()
    schema = build_schema()
    specs = build_specs(
        scale=scale or settings.generation_scale,
        seed=settings.generation_seed if seed is None else seed,
    )
    generator = DataGenerator(schema, settings=settings)

    with PostgresBackend() as backend:
        if truncate:
            for statement in truncate_statements(schema):
                backend.execute(statement)
        try:
            results = generator.generate_all(
                specs, backend, workers=workers, partition_workers=partition_workers
            )
        except HarnessError as exc:
            typer.echo(f"Generation failed: {type(exc).__name__}: {exc}", err=True)
            raise typer.Exit(code=1) from exc

    table = Table(title="Generated Data", box=box.ROUNDED)
    table.add_column("Entity", style="cyan")
    table.add_column("Rows", justify="right", style="green")
    table.add_column("Batches", justify="right")
    table.add_column("Partitions", justify="right")
    table.add_column("Duration (s)", justify="right", style="magenta")
    for result in results.values():
        table.add_row(
            result.entity,
            f"{result.rows_written:,}",
            str(result.batches),
            str(result.partitions),
            f"{result.duration_seconds:.2f}",
        )
    console.print(table)


@app.command()
def variants(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Only this logical query."),
) -> None:
    """
    List logical queries and their physical-design variants.
    """
    descriptions = {q.query_id: q.description for q in logical_queries()}
    table = Table(title="Variants", box=box.ROUNDED)
    table.add_column("Query", style="cyan", no_wrap=True)
    table.add_column("Variant", style="cyan", no_wrap=True)
    table.add_column("Actions")
    table.add_column("Description")
    for variant in build_variants():
        if query is not None and variant.query_id != query:
            continue
        actions = ", ".join(a.action_type.value for a in variant.actions) or "-"
        table.add_row(
            variant.query_id,
            variant.variant_id,
            actions,
            variant.description or descriptions.get(variant.query_id, ""),
        )
    console.print(table)


def _measurement_order(selected: List[str], catalog: List[Variant], baseline_id: str) -> List[str]:
    """
    Baseline first, table rewrites last; a rewritten row order outlives its drop.
    """
    rewriting = {v.variant_id for v in catalog if any(a.rewrites for a in v.actions)}
    rest = [v for v in selected if v != baseline_id]
    return (
        [baseline_id]
        + [v for v in rest if v not in rewriting]
        + [v for v in rest if v in rewriting]
    )


@app.command()
def bench(
    query: str = typer.Option("products_per_category", "--query", "-q", help="Logical query id."),
    variant: Optional[List[str]] = typer.Option(
        None, "--variant", "-v", help="Variant to measure (repeatable; default all)."
    ),
    baseline: Optional[str] = typer.Option(
        None, "--baseline", help="Baseline variant id (default <query>_baseline)."
    ),
    warmup: Optional[bool] = typer.Option(
        None, "--warmup/--no-warmup", help="Discarded execution before measuring."
    ),
    runs: Optional[int] = typer.Option(None, "--runs", "-r", help="Repetitions per variant."),
    force: bool = typer.Option(False, "--force", help="Allow runs against stale variants."),
    keep: bool = typer.Option(False, "--keep", help="Leave the last measured variant applied."),
    strict: bool = typer.Option(False, "--strict", help="Abort on the first failed run."),
) -> None:
    """
    Measure the query under each variant in isolation and compare against the baseline.

    Each variant is applied, measured and dropped before the next one is
    applied, so no two designs are in place during a measurement.
    """
    _setup_logging()
    settings = get_settings()
    catalog = [v for v in build_variants() if v.query_id == query]
    if not catalog:
        typer.echo(f"Unknown query '{query}'.", err=True)
        raise typer.Exit(code=2)
    baseline_id = baseline or f"{query}_baseline"
    selected = list(variant) if variant else [v.variant_id for v in catalog]
    order = _measurement_order(selected, catalog, baseline_id)

    summaries: List[dict] = []
    with PostgresBackend() as backend:
        manager = VariantManager(backend, settings=settings)
        for item in catalog:
            manager.register(item)
        runner = BenchmarkRunner(backend, manager, settings=settings)

        try:
            for position, variant_id in enumerate(order, start=1):
                manager.apply(variant_id)
                try:
                    summaries += runner.run_suite(
                        query,
                        [variant_id],
                        repetitions=runs,
                        force=force,
                        warmup=warmup,
                        failure_policy="strict" if strict else "tolerant",
                    )
                finally:
                    if not (keep and position == len(order)):
                        try:
                            manager.drop(variant_id)
                        except HarnessError:
                            log.exception(f"[VARIANT DROP FAILED] {variant_id}")
                            raise
        except HarnessError as exc:
            typer.echo(f"Benchmark failed: {type(exc).__name__}: {exc}", err=True)
            raise typer.Exit(code=1) from exc
        finally:
            if len(runner.run_log):
                runner.run_log.persist(Path(settings.results_dir))

    render_runs(runner.run_log.runs(), console=console)
    try:
        reports = ComparisonReporter(runner.run_log).compare_latest(query, baseline_id)
    except HarnessError as exc:
        typer.echo(f"No comparison: {exc}", err=True)
        reports = []
    render_comparisons(reports, run_log=runner.run_log, console=console)
    typer.echo(json.dumps(summaries, indent=2))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
