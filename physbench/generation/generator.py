"""
Deterministic synthetic data generator.

Rows are produced from compiled distribution rules in row-index order and
streamed to the backend in bounded batches. Nothing but the current batch is
held in memory. Generation appends: truncating an already-populated backend is
the caller's responsibility (see `physbench.infrastructure.ddl`).

Usage:
    generator = DataGenerator(schema)
    result = generator.generate(spec, backend)
    results = generator.generate_all(specs, backend, workers=4)
"""

from __future__ import annotations

import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from physbench.config import Settings, get_settings
from physbench.domain.models import CyclicForeignKey, GenerationResult, GenerationSpec
from physbench.domain.schema import Entity, Schema, topological_order
from physbench.errors import ConstraintViolation
from physbench.generation.partition import RowRange, plan_partitions
from physbench.generation.rules import ValueFn, check_value, compile_rule
from physbench.infrastructure.backend import Backend
from physbench.infrastructure.retry import backend_retrying
from physbench.utils.cancellation import CancellationToken
from physbench.utils.logging import get_logger

log = get_logger(__name__)

Row = Tuple[Any, ...]


@dataclass(frozen=True)
class CompiledSpec:
    """A generation spec bound to its entity, ready to produce rows."""

    spec: GenerationSpec
    entity: Entity
    columns: Tuple[str, ...]
    value_fns: Tuple[Optional[ValueFn], ...]


class DataGenerator:
    """
    Generates rows for entities of one schema.

    Parameters
    ----------
    schema : Schema
        Entities the specs refer to.
    settings : Settings, optional
        Source of batch size, worker count and retry policy.
    batch_size : int, optional
        Rows per backend write; overrides settings. Never affects values.
    """

    def __init__(
        self,
        schema: Schema,
        settings: Optional[Settings] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self.schema = schema
        self.settings = settings or get_settings()
        self.batch_size = batch_size or self.settings.generation_batch_size
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")

    # ------------------------------------------------------------------ #
    # Compilation
    # ------------------------------------------------------------------ #

    def compile(self, spec: GenerationSpec) -> CompiledSpec:
        """
        Validate a spec against its entity and compile its rules.

        Raises
        ------
        ConstraintViolation
            Unknown entity or column, a non-nullable column without a rule, or
            a foreign-key column not driven by `cyclic_foreign_key`.
        """
        if spec.entity not in self.schema:
            raise ConstraintViolation(f"Generation spec targets unknown entity '{spec.entity}'")
        entity = self.schema.entity(spec.entity)

        unknown = sorted(set(spec.rules) - set(entity.column_names))
        if unknown:
            raise ConstraintViolation(
                f"Rules for unknown columns of '{entity.name}': {', '.join(unknown)}"
            )

        value_fns: List[Optional[ValueFn]] = []
        for column in entity.columns:
            rule = spec.rules.get(column.name)
            fk = entity.foreign_key_for(column.name)
            if rule is None:
                if not column.nullable:
                    raise ConstraintViolation(
                        f"Column '{entity.name}.{column.name}' is not nullable and has no rule"
                    )
                value_fns.append(None)
                continue
            if isinstance(rule, CyclicForeignKey) and fk is None:
                raise ConstraintViolation(
                    f"cyclic_foreign_key on '{entity.name}.{column.name}', "
                    "which is not a foreign key"
                )
            if fk is not None and not isinstance(rule, CyclicForeignKey):
                raise ConstraintViolation(
                    f"Foreign key '{entity.name}.{column.name}' must use cyclic_foreign_key"
                )
            value_fns.append(compile_rule(rule, seed=spec.seed, column=column.name))

        return CompiledSpec(
            spec=spec,
            entity=entity,
            columns=tuple(entity.column_names),
            value_fns=tuple(value_fns),
        )

    def _row(self, compiled: CompiledSpec, index: int) -> Row:
        values = []
        for column, fn in zip(compiled.entity.columns, compiled.value_fns):
            value = fn(index) if fn is not None else None
            check_value(compiled.entity.name, column, value, index)
            values.append(value)
        return tuple(values)

    def iter_rows(
        self, spec: GenerationSpec, rows: Optional[RowRange] = None
    ) -> Iterator[Row]:
        """
        Yield rows for `spec` (or one slice of it) without touching a backend.
        """
        compiled = self.compile(spec)
        row_range = rows or RowRange(0, spec.row_count)
        for index in row_range:
            yield self._row(compiled, index)

    # ------------------------------------------------------------------ #
    # Single entity
    # ------------------------------------------------------------------ #

    def _write_range(
        self,
        compiled: CompiledSpec,
        backend: Backend,
        row_range: RowRange,
        should_stop: Callable[[], bool],
    ) -> Tuple[int, int, bool]:
        retrying = backend_retrying(self.settings)
        table = compiled.entity.name
        written = 0
        batches = 0
        for batch_start in range(row_range.start, row_range.stop, self.batch_size):
            if should_stop():
                return written, batches, True
            batch_stop = min(batch_start + self.batch_size, row_range.stop)
            batch = [self._row(compiled, i) for i in range(batch_start, batch_stop)]
            written += retrying(backend.insert_rows, table, compiled.columns, batch)
            batches += 1
            log.debug(
                f"[GENERATE BATCH] {table} rows {batch_start}..{batch_stop - 1}",
                extra={"entity": table, "batch_rows": len(batch), "written": written},
            )
        return written, batches, False

    def generate(
        self,
        spec: GenerationSpec,
        backend: Backend,
        *,
        workers: int = 1,
        cancel: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        """
        Generate `spec.row_count` rows for one entity and stream them to `backend`.

        With `workers > 1` the row range is split up front into disjoint
        partitions written concurrently; values do not depend on the split.

        Returns a result with `cancelled=True` if `cancel` fired: batches
        already written stay committed, no further batches are issued.

        Raises
        ------
        ConstraintViolation
            A rule is malformed or produced a value breaking a column check.
        BackendUnavailable
            The backend stayed unreachable after all retry attempts.
        """
        compiled = self.compile(spec)
        entity = compiled.entity.name
        partitions = plan_partitions(
            spec.row_count, workers, min_rows_per_partition=self.batch_size
        )
        failed = CancellationToken()

        def should_stop() -> bool:
            return failed.cancelled or (cancel is not None and cancel.cancelled)

        log.info(
            f"[GENERATE START] {entity}",
            extra={
                "entity": entity,
                "rows": spec.row_count,
                "seed": spec.seed,
                "partitions": len(partitions),
                "batch_size": self.batch_size,
            },
        )
        start = time.perf_counter()
        written = batches = 0
        cancelled = False
        try:
            if len(partitions) <= 1:
                for part in partitions:
                    written, batches, cancelled = self._write_range(
                        compiled, backend, part, should_stop
                    )
            else:
                with ThreadPoolExecutor(
                    max_workers=len(partitions), thread_name_prefix=f"gen-{entity}"
                ) as pool:
                    futures = [
                        pool.submit(self._write_range, compiled, backend, part, should_stop)
                        for part in partitions
                    ]
                    first_error: Optional[Exception] = None
                    for future in futures:
                        try:
                            part_written, part_batches, part_cancelled = future.result()
                        except Exception as exc:  # noqa: BLE001 - re-raised below
                            failed.cancel(f"partition failed: {exc}")
                            first_error = first_error or exc
                            continue
                        written += part_written
                        batches += part_batches
                        cancelled = cancelled or part_cancelled
                    if first_error is not None:
                        raise first_error
        except Exception:
            log.exception(
                f"[GENERATE FAILED] {entity}",
                extra={"entity": entity, "written": written},
            )
            raise

        duration = time.perf_counter() - start
        result = GenerationResult(
            entity=entity,
            rows_written=written,
            batches=batches,
            partitions=len(partitions),
            duration_seconds=duration,
            cancelled=cancelled,
        )
        tag = "[GENERATE CANCELLED]" if cancelled else "[GENERATE COMPLETE]"
        log.info(
            f"{tag} {entity}",
            extra={
                "entity": entity,
                "written": written,
                "batches": batches,
                "duration": round(duration, 3),
            },
        )
        return result

    # ------------------------------------------------------------------ #
    # Whole dataset
    # ------------------------------------------------------------------ #

    def _check_references(self, specs: Mapping[str, GenerationSpec]) -> None:
        for spec in specs.values():
            entity = self.schema.entity(spec.entity)
            for column, rule in spec.rules.items():
                if not isinstance(rule, CyclicForeignKey):
                    continue
                fk = entity.foreign_key_for(column)
                if fk is None:
                    continue
                parent = specs.get(fk.target_entity)
                if parent is not None and rule.parent_count > parent.row_count:
                    raise ConstraintViolation(
                        f"{entity.name}.{column} cycles over {rule.parent_count} parents but "
                        f"only {parent.row_count} '{fk.target_entity}' rows are generated"
                    )

    def generate_all(
        self,
        specs: Iterable[GenerationSpec],
        backend: Backend,
        *,
        workers: Optional[int] = None,
        partition_workers: int = 1,
        cancel: Optional[CancellationToken] = None,
    ) -> Dict[str, GenerationResult]:
        """
        Generate several entities, each only after its foreign-key targets.

        Entities without a pending dependency run concurrently on up to
        `workers` threads. Targets outside `specs` are assumed to be populated
        already. A failing entity stops its dependents from starting; entities
        already completed stay committed and the error is re-raised.

        Returns results keyed by entity, in generation order, for every entity
        that started.
        """
        by_entity: Dict[str, GenerationSpec] = {}
        for spec in specs:
            if spec.entity in by_entity:
                raise ConstraintViolation(f"Duplicate generation spec for '{spec.entity}'")
            if spec.entity not in self.schema:
                raise ConstraintViolation(
                    f"Generation spec targets unknown entity '{spec.entity}'"
                )
            by_entity[spec.entity] = spec
        self._check_references(by_entity)
        for spec in by_entity.values():
            self.compile(spec)

        order = [e.name for e in topological_order(self.schema) if e.name in by_entity]
        pending_deps: Dict[str, Set[str]] = {
            name: {d for d in self.schema.entity(name).dependencies if d in by_entity}
            for name in order
        }
        max_workers = workers or self.settings.generation_workers

        results: Dict[str, GenerationResult] = {}
        done: Set[str] = set()
        started: Set[str] = set()
        running: Dict[Future, str] = {}
        first_error: Optional[Exception] = None

        def stop_scheduling() -> bool:
            return first_error is not None or (cancel is not None and cancel.cancelled)

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gen") as pool:
            while True:
                if not stop_scheduling():
                    for name in order:
                        if name in started or not pending_deps[name] <= done:
                            continue
                        started.add(name)
                        future = pool.submit(
                            self.generate,
                            by_entity[name],
                            backend,
                            workers=partition_workers,
                            cancel=cancel,
                        )
                        running[future] = name
                if not running:
                    break
                finished, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in finished:
                    name = running.pop(future)
                    try:
                        result = future.result()
                    except Exception as exc:  # noqa: BLE001 - re-raised below
                        first_error = first_error or exc
                        continue
                    results[name] = result
                    if not result.cancelled:
                        done.add(name)

        if first_error is not None:
            raise first_error
        return {name: results[name] for name in order if name in results}


__all__ = ["CompiledSpec", "DataGenerator"]
