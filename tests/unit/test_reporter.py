from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest
from rich.console import Console

from physbench.domain.models import BenchmarkRun, RunStatus
from physbench.errors import IncomparableRuns
from physbench.reporter import (
    ComparisonReporter,
    compare_runs,
    render_comparisons,
    render_runs,
)
from physbench.runner import RunLog

QUERY = "revenue_per_category"
BASELINE_COST = 2.0
OPTIMIZED_COST = 0.5
EXPECTED_DELTA = 1.5
EXPECTED_IMPROVEMENT = 75.0


def _run(
    run_id: str,
    variant_id: str,
    cost: Optional[float],
    *,
    query_id: str = QUERY,
    warmup: bool = False,
    stale: bool = False,
    status: RunStatus = RunStatus.SUCCEEDED,
) -> BenchmarkRun:
    return BenchmarkRun(
        run_id=run_id,
        variant_id=variant_id,
        query_id=query_id,
        timestamp=datetime.now(timezone.utc),
        status=status,
        cost_seconds=cost,
        warmup=warmup,
        stale=stale,
        error_kind="QueryTimeout" if status is RunStatus.FAILED else None,
    )


def test_improvement_is_relative_to_baseline() -> None:
    report = compare_runs(_run("b", "baseline", BASELINE_COST), _run("o", "mv", OPTIMIZED_COST))

    assert report.delta == EXPECTED_DELTA
    assert report.percent_improvement == EXPECTED_IMPROVEMENT
    assert not report.degenerate
    assert report.query_id == QUERY


def test_swapping_runs_negates_delta() -> None:
    a = _run("a", "baseline", 1.25)
    b = _run("b", "indexed", 0.75)

    assert compare_runs(a, b).delta == -compare_runs(b, a).delta
    assert compare_runs(b, a).percent_improvement < 0


def test_zero_baseline_cost_is_degenerate() -> None:
    report = compare_runs(_run("b", "baseline", 0.0), _run("o", "indexed", 0.1))

    assert report.degenerate
    assert report.percent_improvement == 0.0


def test_stale_runs_are_flagged() -> None:
    report = compare_runs(_run("b", "baseline", 1.0), _run("o", "mv", 0.1, stale=True))
    assert report.stale_data


@pytest.mark.parametrize(
    "optimized",
    [
        _run("o", "indexed", 0.5, query_id="products_per_category"),
        _run("o", "indexed", None, status=RunStatus.FAILED),
        _run("o", "indexed", 0.5, warmup=True),
    ],
    ids=["different-query", "failed-run", "warmup-mismatch"],
)
def test_incomparable_runs(optimized: BenchmarkRun) -> None:
    with pytest.raises(IncomparableRuns):
        compare_runs(_run("b", "baseline", 1.0), optimized)


def test_reporter_compares_by_run_id() -> None:
    log = RunLog([_run("b", "baseline", BASELINE_COST), _run("o", "mv", OPTIMIZED_COST)])

    report = ComparisonReporter(log).compare("b", "o")

    assert (report.baseline_run_id, report.optimized_run_id) == ("b", "o")
    assert report.as_record()["percent_improvement"] == EXPECTED_IMPROVEMENT


def test_compare_latest_uses_latest_successful_runs() -> None:
    log = RunLog(
        [
            _run("b1", "baseline", 4.0),
            _run("b2", "baseline", BASELINE_COST),
            _run("i1", "indexed", 1.0),
            _run("i2", "indexed", None, status=RunStatus.FAILED),
            _run("m1", "mv", OPTIMIZED_COST),
            _run("w1", "summary", 0.1, warmup=True),
        ]
    )

    reports = ComparisonReporter(log).compare_latest(QUERY, "baseline")

    assert [(r.baseline_run_id, r.optimized_run_id) for r in reports] == [
        ("b2", "i1"),
        ("b2", "m1"),
    ]


def test_compare_latest_without_baseline_run() -> None:
    log = RunLog([_run("i1", "indexed", 1.0)])
    with pytest.raises(IncomparableRuns):
        ComparisonReporter(log).compare_latest(QUERY, "baseline")


def test_render_comparisons_lists_variants_best_first() -> None:
    log = RunLog(
        [
            _run("b", "baseline", BASELINE_COST),
            _run("i", "indexed", 1.5),
            _run("m", "mv", OPTIMIZED_COST),
        ]
    )
    reports = ComparisonReporter(log).compare_latest(QUERY, "baseline")
    console = Console(record=True, width=160)

    render_comparisons(reports, run_log=log, console=console)

    output = console.export_text()
    assert output.index("mv") < output.index("indexed")
    assert "75.0" in output


def test_render_runs_handles_empty_input() -> None:
    console = Console(record=True, width=120)
    render_runs([], console=console)
    assert "No runs" in console.export_text()
