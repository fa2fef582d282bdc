"""
Comparison reporter: derives before/after comparisons from recorded runs and
renders runs and comparisons as rich tables. Reads run records only; never
mutates them.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from physbench.domain.models import BenchmarkRun, ComparisonReport
from physbench.errors import IncomparableRuns
from physbench.runner import RunLog


def compare_runs(baseline: BenchmarkRun, optimized: BenchmarkRun) -> ComparisonReport:
    """
    Compare two runs of the same logical query.

    `delta = baseline.cost - optimized.cost` and
    `percent_improvement = delta / baseline.cost * 100`; a zero baseline cost
    yields 0% with `degenerate=True` instead of a division error.

    Raises
    ------
    IncomparableRuns
        Different queries, a failed run, or mismatched warm-up policies.
    """
    if baseline.query_id != optimized.query_id:
        raise IncomparableRuns(
            f"Runs target different queries: '{baseline.query_id}' vs '{optimized.query_id}'"
        )
    for run in (baseline, optimized):
        if run.failed or run.cost_seconds is None:
            raise IncomparableRuns(f"Run '{run.run_id}' is a recorded failure ({run.error_kind})")
    if baseline.warmup != optimized.warmup:
        raise IncomparableRuns(
            f"Runs '{baseline.run_id}' and '{optimized.run_id}' used different warm-up policies"
        )

    delta = baseline.cost_seconds - optimized.cost_seconds
    degenerate = baseline.cost_seconds == 0
    percent = 0.0 if degenerate else delta / baseline.cost_seconds * 100
    return ComparisonReport(
        baseline_run_id=baseline.run_id,
        optimized_run_id=optimized.run_id,
        query_id=baseline.query_id,
        baseline_cost=baseline.cost_seconds,
        optimized_cost=optimized.cost_seconds,
        delta=delta,
        percent_improvement=percent,
        degenerate=degenerate,
        stale_data=baseline.stale or optimized.stale,
    )


class ComparisonReporter:
    """
    Read-only view over a `RunLog` producing comparison reports.
    """

    def __init__(self, run_log: RunLog) -> None:
        self.run_log = run_log

    def compare(self, baseline_run_id: str, optimized_run_id: str) -> ComparisonReport:
        return compare_runs(self.run_log.get(baseline_run_id), self.run_log.get(optimized_run_id))

    def compare_latest(self, query_id: str, baseline_variant_id: str) -> List[ComparisonReport]:
        """
        Compare the latest successful run of every other variant of `query_id`
        against the baseline variant's latest successful run.

        Variants whose latest run is incomparable (e.g. a different warm-up
        policy) are left out.
        """
        baseline = self.run_log.latest(baseline_variant_id, query_id)
        if baseline is None:
            raise IncomparableRuns(
                f"No successful run of baseline '{baseline_variant_id}' for '{query_id}'"
            )
        variant_ids: List[str] = []
        for run in self.run_log.for_query(query_id):
            if run.variant_id != baseline_variant_id and run.variant_id not in variant_ids:
                variant_ids.append(run.variant_id)

        reports: List[ComparisonReport] = []
        for variant_id in variant_ids:
            optimized = self.run_log.latest(variant_id, query_id)
            if optimized is None or optimized.warmup != baseline.warmup:
                continue
            reports.append(compare_runs(baseline, optimized))
        return reports


def render_runs(runs: Iterable[BenchmarkRun], console: Optional[Console] = None) -> None:
    """
    Render benchmark runs as a rich table, in recording order.
    """
    console = console or Console()
    runs = list(runs)
    if not runs:
        console.print("[yellow]No runs to display.[/yellow]")
        return

    table = Table(title="Benchmark Runs", box=box.ROUNDED)
    table.add_column("Query", style="cyan", no_wrap=True)
    table.add_column("Variant", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Cost (ms)", justify="right", style="green")
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Warm-up", justify="center")
    table.add_column("Stale", justify="center")

    for run in runs:
        status = "[red]failed[/red]" if run.failed else "[green]ok[/green]"
        cost = f"{run.cost_seconds * 1000:,.2f}" if run.cost_seconds is not None else "N/A"
        rows = f"{run.row_count:,}" if run.row_count is not None else "N/A"
        table.add_row(
            run.query_id,
            run.variant_id,
            status if not run.error_kind else f"{status} ({run.error_kind})",
            cost,
            rows,
            "yes" if run.warmup else "no",
            "[yellow]yes[/yellow]" if run.stale else "no",
        )
    console.print(table)


def render_comparisons(
    reports: Iterable[ComparisonReport],
    run_log: Optional[RunLog] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render comparison reports as a rich table, best improvement first.
    """
    console = console or Console()
    reports = sorted(reports, key=lambda r: r.percent_improvement, reverse=True)
    if not reports:
        console.print("[yellow]No comparisons to display.[/yellow]")
        return

    table = Table(
        title="Physical Design Comparison",
        box=box.ROUNDED,
        caption="Sorted by improvement (descending); negative values are regressions",
    )
    table.add_column("Query", style="cyan", no_wrap=True)
    table.add_column("Optimized", style="cyan", no_wrap=True)
    table.add_column("Baseline (ms)", justify="right", style="green")
    table.add_column("Optimized (ms)", justify="right", style="bold green")
    table.add_column("Delta (ms)", justify="right", style="yellow")
    table.add_column("Improvement %", justify="right", style="bold")
    table.add_column("Notes")

    for report in reports:
        label = report.optimized_run_id
        if run_log is not None:
            label = run_log.get(report.optimized_run_id).variant_id
        notes = []
        if report.degenerate:
            notes.append("zero baseline")
        if report.stale_data:
            notes.append("[yellow]stale data[/yellow]")
        style = "green" if report.percent_improvement >= 0 else "red"
        table.add_row(
            report.query_id,
            label,
            f"{report.baseline_cost * 1000:,.2f}",
            f"{report.optimized_cost * 1000:,.2f}",
            f"{report.delta * 1000:,.2f}",
            f"[{style}]{report.percent_improvement:,.1f}[/{style}]",
            ", ".join(notes),
        )
    console.print(table)


__all__ = ["ComparisonReporter", "compare_runs", "render_comparisons", "render_runs"]
