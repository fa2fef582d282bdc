"""
Benchmark runner: executes a logical query against an applied variant,
measures it, and appends an immutable run record.

Usage:
    from physbench.runner import BenchmarkRunner

    runner = BenchmarkRunner(backend, manager)
    run = runner.run("revenue_per_category", "revenue_mv")
    summary = runner.run_suite("revenue_per_category", repetitions=3)

Run logs are persisted to `results/` on request:
- `results/latest.json` (last persisted log)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import statistics
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from physbench.config import Settings, get_settings
from physbench.domain.models import BenchmarkRun, RunStatus, VariantState
from physbench.errors import (
    HarnessError,
    InvalidVariantState,
    QueryTimeout,
    ReservationTimeout,
)
from physbench.infrastructure.backend import Backend, StatementResult
from physbench.infrastructure.retry import backend_retrying
from physbench.utils.cancellation import CancellationToken
from physbench.utils.logging import get_logger
from physbench.utils.profiler import ProfileStats, profile_block
from physbench.variants.manager import VariantManager

log = get_logger(__name__)

FailurePolicy = Literal["tolerant", "strict"]


def _round_float(value: float, decimals: int = 6) -> float:
    return round(value, decimals)


def _round_stats(stats: dict, decimals: int = 6) -> dict:
    return {k: _round_float(v, decimals) if isinstance(v, float) else v for k, v in stats.items()}


class RunLog:
    """
    Append-only, thread-safe store of benchmark runs.
    """

    def __init__(self, runs: Iterable[BenchmarkRun] = ()) -> None:
        self._lock = threading.Lock()
        self._runs: Dict[str, BenchmarkRun] = {}
        for run in runs:
            self.append(run)

    def append(self, run: BenchmarkRun) -> BenchmarkRun:
        with self._lock:
            if run.run_id in self._runs:
                raise ValueError(f"Run '{run.run_id}' is already recorded")
            self._runs[run.run_id] = run
        return run

    def get(self, run_id: str) -> BenchmarkRun:
        try:
            return self._runs[run_id]
        except KeyError:
            raise KeyError(f"Unknown run '{run_id}'") from None

    def runs(self) -> Tuple[BenchmarkRun, ...]:
        with self._lock:
            return tuple(self._runs.values())

    def for_query(self, query_id: str) -> List[BenchmarkRun]:
        return [r for r in self.runs() if r.query_id == query_id]

    def latest(
        self, variant_id: str, query_id: Optional[str] = None, successful_only: bool = True
    ) -> Optional[BenchmarkRun]:
        for run in reversed(self.runs()):
            if run.variant_id != variant_id:
                continue
            if query_id is not None and run.query_id != query_id:
                continue
            if successful_only and run.failed:
                continue
            return run
        return None

    def to_records(self) -> List[Dict[str, Any]]:
        return [r.model_dump(mode="json") for r in self.runs()]

    def __len__(self) -> int:
        return len(self._runs)

    def persist(self, results_dir: Path | str) -> Path:
        """
        Write the log to `latest.json` and a timestamped archive; returns the archive path.
        """
        results_dir = Path(results_dir)
        results_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        latest_path = results_dir / "latest.json"
        archive_path = results_dir / f"run-{timestamp}.json"
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "runs": self.to_records(),
        }
        for path in (latest_path, archive_path):
            with path.open("w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
        log.info(
            "Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)}
        )
        return archive_path


def _aggregate_runs(runs: List[BenchmarkRun]) -> dict:
    """
    Summarize the successful costs of repeated runs of one variant.
    """
    costs = [r.cost_seconds for r in runs if not r.failed and r.cost_seconds is not None]
    aggregated: Dict[str, Any] = {
        "repetitions": len(runs),
        "failures": sum(1 for r in runs if r.failed),
        "run_ids": [r.run_id for r in runs],
    }
    if costs:
        aggregated["cost_seconds"] = _round_stats(
            {
                "median": statistics.median(costs),
                "mean": statistics.mean(costs),
                "stddev": statistics.stdev(costs) if len(costs) > 1 else 0.0,
                "min": min(costs),
                "max": max(costs),
            }
        )
    else:
        aggregated["cost_seconds"] = None
    row_counts = {r.row_count for r in runs if r.row_count is not None}
    aggregated["row_count"] = row_counts.pop() if len(row_counts) == 1 else None
    return aggregated


class BenchmarkRunner:
    """
    Measures logical queries against variants managed by a `VariantManager`.

    At most one run is in flight per backend: `run` holds the backend's
    reservation lock for its whole duration.
    """

    def __init__(
        self,
        backend: Backend,
        manager: VariantManager,
        run_log: Optional[RunLog] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.backend = backend
        self.manager = manager
        self.run_log = run_log if run_log is not None else RunLog()
        self.settings = settings or get_settings()

    def _execute(self, statement: str) -> StatementResult:
        return self.backend.execute(statement, timeout_ms=self.settings.query_timeout_ms)

    def _measured_execute(self, label: str, statement: str) -> Tuple[StatementResult, ProfileStats]:
        with profile_block(label) as stats:
            result = self._execute(statement)
        return result, stats

    def _record(
        self,
        *,
        query_id: str,
        variant_id: str,
        warmup: bool,
        stale: bool,
        result: Optional[StatementResult] = None,
        stats: Optional[ProfileStats] = None,
        error: Optional[HarnessError] = None,
    ) -> BenchmarkRun:
        run = BenchmarkRun(
            run_id=uuid.uuid4().hex,
            variant_id=variant_id,
            query_id=query_id,
            timestamp=datetime.now(timezone.utc),
            status=RunStatus.FAILED if error is not None else RunStatus.SUCCEEDED,
            cost_seconds=stats.duration_seconds if error is None and stats else None,
            row_count=result.row_count if result is not None else None,
            warmup=warmup,
            stale=stale,
            error=str(error) if error is not None else None,
            error_kind=type(error).__name__ if error is not None else None,
            peak_rss_bytes=stats.peak_rss_bytes if stats else None,
            cpu_percent=_round_float(stats.cpu_percent, 1)
            if stats and stats.cpu_percent is not None
            else None,
        )
        return self.run_log.append(run)

    def run(
        self,
        query_id: str,
        variant_id: str,
        *,
        force: bool = False,
        warmup: Optional[bool] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> BenchmarkRun:
        """
        Execute one measured run of `query_id` under `variant_id`.

        Parameters
        ----------
        force : bool
            Allow running against a Stale variant; the run is tagged stale.
        warmup : bool, optional
            Execute once, discarded, before measuring. Defaults to settings.
        cancel : CancellationToken, optional
            Checked before each statement is issued.

        Returns
        -------
        BenchmarkRun
            The recorded run. A `QueryTimeout` is returned as a failed run.

        Raises
        ------
        InvalidVariantState
            The variant is not Applied (or Stale without `force`), or it answers
            a different query. `UnknownVariant` when it is not registered.
        ReservationTimeout
            Another run held the backend for longer than the configured wait.
        BackendUnavailable
            After retries; a failed run is recorded first.
        Cancelled
            `cancel` fired before the measured execution was issued.
        """
        variant = self.manager.variant(variant_id)
        if variant.query_id != query_id:
            raise InvalidVariantState(
                f"Variant '{variant_id}' answers query '{variant.query_id}', not '{query_id}'"
            )
        use_warmup = self.settings.benchmark_warmup if warmup is None else warmup
        label = f"{query_id}/{variant_id}"

        wait = self.settings.reservation_timeout_seconds
        if not self.backend.reservation.acquire(timeout=wait):
            raise ReservationTimeout(
                f"Backend '{self.backend.name}' stayed reserved for more than {wait:.1f}s"
            )
        try:
            with self.manager.locked(variant_id):
                state = self.manager.state(variant_id)
                if state is VariantState.STALE and not force:
                    raise InvalidVariantState(
                        f"Variant '{variant_id}' is Stale; refresh it or run with force=True"
                    )
                if state not in (VariantState.APPLIED, VariantState.STALE):
                    raise InvalidVariantState(
                        f"Variant '{variant_id}' must be Applied to run (is {state.value})"
                    )
                stale = state is VariantState.STALE
                retrying = backend_retrying(self.settings)

                if use_warmup:
                    if cancel is not None:
                        cancel.raise_if_cancelled()
                    log.info(f"[WARMUP] {label}", extra={"query": query_id, "variant": variant_id})
                    try:
                        retrying(self._execute, variant.statement)
                    except HarnessError as exc:
                        log.warning(
                            f"[WARMUP] Failed for {label}",
                            extra={"query": query_id, "variant": variant_id, "error": str(exc)},
                        )

                if cancel is not None:
                    cancel.raise_if_cancelled()
                log.info(
                    f"[RUN START] {label}",
                    extra={"query": query_id, "variant": variant_id, "stale": stale},
                )
                try:
                    result, stats = retrying(self._measured_execute, label, variant.statement)
                except QueryTimeout as exc:
                    log.warning(
                        f"[RUN TIMEOUT] {label}",
                        extra={"query": query_id, "variant": variant_id, "error": str(exc)},
                    )
                    return self._record(
                        query_id=query_id,
                        variant_id=variant_id,
                        warmup=use_warmup,
                        stale=stale,
                        error=exc,
                    )
                except HarnessError as exc:
                    log.exception(
                        f"[RUN FAILED] {label}",
                        extra={"query": query_id, "variant": variant_id},
                    )
                    self._record(
                        query_id=query_id,
                        variant_id=variant_id,
                        warmup=use_warmup,
                        stale=stale,
                        error=exc,
                    )
                    raise

                run = self._record(
                    query_id=query_id,
                    variant_id=variant_id,
                    warmup=use_warmup,
                    stale=stale,
                    result=result,
                    stats=stats,
                )
                log.info(
                    f"[RUN SUCCESS] {label}",
                    extra={
                        "query": query_id,
                        "variant": variant_id,
                        "cost_seconds": _round_float(run.cost_seconds or 0.0),
                        "rows": run.row_count,
                    },
                )
                return run
        finally:
            self.backend.reservation.release()

    def run_suite(
        self,
        query_id: str,
        variant_ids: Optional[Iterable[str]] = None,
        *,
        repetitions: Optional[int] = None,
        force: bool = False,
        warmup: Optional[bool] = None,
        failure_policy: FailurePolicy = "tolerant",
        cancel: Optional[CancellationToken] = None,
        results_dir: Optional[Path | str] = None,
    ) -> List[dict]:
        """
        Run every variant of a query `repetitions` times and aggregate costs.

        Parameters
        ----------
        variant_ids : iterable[str], optional
            Variants to measure; defaults to all registered for the query.
        failure_policy : "tolerant" | "strict"
            Tolerant records failures and moves on; strict re-raises the first.
        results_dir : Path | str, optional
            When given, the run log is persisted there afterwards.

        Returns
        -------
        List[dict]
            One aggregate per variant: repetitions, failures, run ids, cost
            statistics (median, mean, stddev, min, max) and row count.
        """
        names = (
            list(variant_ids)
            if variant_ids is not None
            else [v.variant_id for v in self.manager.variants_for(query_id)]
        )
        reps = repetitions or self.settings.benchmark_repetitions
        total = len(names) * reps
        current = 0

        summaries: List[dict] = []
        for variant_id in names:
            runs: List[BenchmarkRun] = []
            for rep in range(1, reps + 1):
                current += 1
                log.info(
                    f"[RUN {current}/{total}] {query_id}/{variant_id}",
                    extra={"query": query_id, "variant": variant_id, "repetition": rep},
                )
                recorded_before = len(self.run_log)
                try:
                    runs.append(
                        self.run(query_id, variant_id, force=force, warmup=warmup, cancel=cancel)
                    )
                except HarnessError as exc:
                    if failure_policy == "strict":
                        raise
                    log.warning(
                        f"[RUN SKIPPED] {query_id}/{variant_id} in tolerant mode",
                        extra={"query": query_id, "variant": variant_id, "error": str(exc)},
                    )
                    runs.extend(
                        r
                        for r in self.run_log.runs()[recorded_before:]
                        if r.variant_id == variant_id and r.query_id == query_id
                    )
            summary = _aggregate_runs(runs)
            summary["query_id"] = query_id
            summary["variant_id"] = variant_id
            summaries.append(summary)
            log.info(
                f"[AGGREGATION] {query_id}/{variant_id}",
                extra={
                    "query": query_id,
                    "variant": variant_id,
                    "failures": summary["failures"],
                    "median_cost": (summary["cost_seconds"] or {}).get("median"),
                },
            )

        if results_dir is not None:
            self.run_log.persist(results_dir)
        return summaries


__all__ = ["BenchmarkRunner", "FailurePolicy", "RunLog"]
