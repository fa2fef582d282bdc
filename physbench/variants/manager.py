"""
Variant manager: applies and retracts alternative physical designs.

Lifecycle per variant::

    Defined -> Applying -> Applied -> Stale -> Refreshing -> Applied
    Applied | Stale -> Dropping -> Defined

Failure edges return a variant to where it started: a failed apply is
compensated back to Defined, a failed refresh stays Stale, a failed drop keeps
the prior state. Operations on one variant are serialized by a per-variant
lock; different variants only contend on the object names they claim.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Generator, List, Optional

from physbench.config import Settings, get_settings
from physbench.domain.models import Variant, VariantAction, VariantState
from physbench.errors import (
    InvalidVariantState,
    ReservationTimeout,
    UnknownVariant,
    VariantConflict,
)
from physbench.infrastructure.backend import Backend
from physbench.infrastructure.retry import backend_retrying
from physbench.utils.logging import get_logger

log = get_logger(__name__)

_TRANSITIONS: Dict[VariantState, frozenset] = {
    VariantState.DEFINED: frozenset({VariantState.APPLYING}),
    VariantState.APPLYING: frozenset({VariantState.APPLIED, VariantState.DEFINED}),
    VariantState.APPLIED: frozenset({VariantState.STALE, VariantState.DROPPING}),
    VariantState.STALE: frozenset({VariantState.REFRESHING, VariantState.DROPPING}),
    VariantState.REFRESHING: frozenset({VariantState.APPLIED, VariantState.STALE}),
    VariantState.DROPPING: frozenset(
        {VariantState.DEFINED, VariantState.APPLIED, VariantState.STALE}
    ),
}


@dataclass(frozen=True)
class Transition:
    variant_id: str
    source: VariantState
    target: VariantState
    at: datetime


class VariantManager:
    """
    Tracks registered variants and their lifecycle against one backend.
    """

    def __init__(self, backend: Backend, settings: Optional[Settings] = None) -> None:
        self.backend = backend
        self.settings = settings or get_settings()
        self._registry_lock = threading.Lock()
        self._variants: Dict[str, Variant] = {}
        self._states: Dict[str, VariantState] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._history: Dict[str, List[Transition]] = {}
        self._claims: Dict[str, str] = {}

    # ------------------------------------------------------------------ #
    # Registry
    # ------------------------------------------------------------------ #

    def register(self, variant: Variant) -> Variant:
        with self._registry_lock:
            if variant.variant_id in self._variants:
                raise VariantConflict(f"Variant '{variant.variant_id}' is already registered")
            self._variants[variant.variant_id] = variant
            self._states[variant.variant_id] = VariantState.DEFINED
            self._locks[variant.variant_id] = threading.Lock()
            self._history[variant.variant_id] = []
        return variant

    def variant(self, variant_id: str) -> Variant:
        try:
            return self._variants[variant_id]
        except KeyError:
            raise UnknownVariant(f"Unknown variant '{variant_id}'") from None

    def state(self, variant_id: str) -> VariantState:
        self.variant(variant_id)
        return self._states[variant_id]

    def history(self, variant_id: str) -> List[Transition]:
        self.variant(variant_id)
        return list(self._history[variant_id])

    def variants_for(self, query_id: str) -> List[Variant]:
        return [v for v in self._variants.values() if v.query_id == query_id]

    @contextmanager
    def locked(
        self, variant_id: str, timeout: Optional[float] = None
    ) -> Generator[Variant, None, None]:
        """
        Hold the variant's mutual-exclusion lock.

        Raises
        ------
        ReservationTimeout
            If the lock is not acquired within `timeout` seconds.
        """
        variant = self.variant(variant_id)
        lock = self._locks[variant_id]
        wait = self.settings.variant_lock_timeout_seconds if timeout is None else timeout
        if not lock.acquire(timeout=wait):
            raise ReservationTimeout(
                f"Variant '{variant_id}' stayed busy for more than {wait:.1f}s"
            )
        try:
            yield variant
        finally:
            lock.release()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _transition(self, variant_id: str, target: VariantState) -> None:
        source = self._states[variant_id]
        if target not in _TRANSITIONS[source]:
            raise InvalidVariantState(
                f"Variant '{variant_id}' cannot move from {source.value} to {target.value}"
            )
        self._states[variant_id] = target
        self._history[variant_id].append(
            Transition(variant_id, source, target, datetime.now(timezone.utc))
        )
        log.debug(
            f"[VARIANT STATE] {variant_id}: {source.value} -> {target.value}",
            extra={"variant": variant_id, "source": source.value, "target": target.value},
        )

    def _require(self, variant_id: str, *allowed: VariantState, operation: str) -> VariantState:
        current = self._states[variant_id]
        if current not in allowed:
            expected = "/".join(s.value for s in allowed)
            raise InvalidVariantState(
                f"Cannot {operation} variant '{variant_id}' in state {current.value} "
                f"(expected {expected})"
            )
        return current

    def _execute(self, statement: str) -> None:
        backend_retrying(self.settings)(
            self.backend.execute, statement, timeout_ms=self.settings.statement_timeout_ms
        )

    def _claim_objects(self, variant: Variant) -> None:
        names = variant.claimed_names
        with self._registry_lock:
            for name in names:
                owner = self._claims.get(name)
                if owner is not None and owner != variant.variant_id:
                    raise VariantConflict(
                        f"Object '{name}' of variant '{variant.variant_id}' is already "
                        f"claimed by variant '{owner}'"
                    )
            for name in names:
                self._claims[name] = variant.variant_id
        try:
            for name in variant.object_names:
                if self.backend.object_exists(name):
                    raise VariantConflict(
                        f"Object '{name}' of variant '{variant.variant_id}' already exists"
                    )
        except Exception:
            self._release_objects(variant)
            raise

    def _release_objects(self, variant: Variant) -> None:
        with self._registry_lock:
            for name in variant.claimed_names:
                if self._claims.get(name) == variant.variant_id:
                    del self._claims[name]

    def _compensate(self, variant: Variant, executed: List[VariantAction]) -> None:
        for action in reversed(executed):
            if not action.reverse_statement:
                continue
            try:
                self._execute(action.reverse_statement)
            except Exception:  # noqa: BLE001 - logged, original error is re-raised by caller
                log.exception(
                    f"[VARIANT ROLLBACK FAILED] {variant.variant_id}",
                    extra={"variant": variant.variant_id, "object": action.object_name},
                )

    # ------------------------------------------------------------------ #
    # Lifecycle operations
    # ------------------------------------------------------------------ #

    def apply(self, variant_id: str) -> VariantState:
        """
        Execute the variant's actions in order; all or nothing.

        Raises
        ------
        VariantConflict
            An action's object already exists or is claimed by another
            variant. Nothing is executed in that case.
        InvalidVariantState
            The variant is not in Defined.
        """
        with self.locked(variant_id) as variant:
            self._require(variant_id, VariantState.DEFINED, operation="apply")
            self._claim_objects(variant)
            self._transition(variant_id, VariantState.APPLYING)
            log.info(
                f"[VARIANT APPLY] {variant_id}",
                extra={"variant": variant_id, "actions": len(variant.actions)},
            )
            executed: List[VariantAction] = []
            try:
                for action in variant.actions:
                    self._execute(action.statement)
                    executed.append(action)
            except Exception:
                log.exception(
                    f"[VARIANT APPLY FAILED] {variant_id}",
                    extra={"variant": variant_id, "executed": len(executed)},
                )
                self._compensate(variant, executed)
                self._release_objects(variant)
                self._transition(variant_id, VariantState.DEFINED)
                raise
            self._transition(variant_id, VariantState.APPLIED)
            log.info(f"[VARIANT APPLIED] {variant_id}", extra={"variant": variant_id})
            return VariantState.APPLIED

    def mark_stale(self, variant_id: str) -> VariantState:
        """
        Flag derived objects as lagging behind base data.

        Variants without derived objects are kept current by the backend and
        stay Applied.
        """
        with self.locked(variant_id) as variant:
            current = self._require(
                variant_id, VariantState.APPLIED, VariantState.STALE, operation="mark stale"
            )
            if current is VariantState.STALE or not variant.has_derived_objects:
                return current
            self._transition(variant_id, VariantState.STALE)
            log.info(f"[VARIANT STALE] {variant_id}", extra={"variant": variant_id})
            return VariantState.STALE

    def notify_base_change(self, entity: str) -> List[str]:
        """
        Mark every applied variant whose derived objects read `entity` stale.

        Returns the ids of the variants that were marked.
        """
        marked: List[str] = []
        for variant in list(self._variants.values()):
            if self._states[variant.variant_id] is not VariantState.APPLIED:
                continue
            reads_entity = any(
                action.is_derived and entity in action.source_entities
                for action in variant.actions
            )
            if reads_entity and self.mark_stale(variant.variant_id) is VariantState.STALE:
                marked.append(variant.variant_id)
        return marked

    def refresh(self, variant_id: str) -> VariantState:
        """
        Repopulate derived objects of a Stale variant.

        A no-op on an Applied variant.

        Raises
        ------
        InvalidVariantState
            The variant is neither Applied nor Stale.
        """
        with self.locked(variant_id) as variant:
            current = self._require(
                variant_id, VariantState.APPLIED, VariantState.STALE, operation="refresh"
            )
            if current is VariantState.APPLIED:
                return current
            self._transition(variant_id, VariantState.REFRESHING)
            log.info(f"[VARIANT REFRESH] {variant_id}", extra={"variant": variant_id})
            try:
                for action in variant.actions:
                    if not action.is_derived:
                        continue
                    for statement in action.refresh_statements:
                        self._execute(statement)
            except Exception:
                log.exception(f"[VARIANT REFRESH FAILED] {variant_id}", extra={"variant": variant_id})
                self._transition(variant_id, VariantState.STALE)
                raise
            self._transition(variant_id, VariantState.APPLIED)
            return VariantState.APPLIED

    def drop(self, variant_id: str) -> VariantState:
        """
        Run reverse statements in opposite order and return to Defined.

        Raises
        ------
        InvalidVariantState
            The variant is neither Applied nor Stale.
        """
        with self.locked(variant_id) as variant:
            prior = self._require(
                variant_id, VariantState.APPLIED, VariantState.STALE, operation="drop"
            )
            self._transition(variant_id, VariantState.DROPPING)
            log.info(f"[VARIANT DROP] {variant_id}", extra={"variant": variant_id})
            try:
                for action in reversed(variant.actions):
                    if action.reverse_statement:
                        self._execute(action.reverse_statement)
            except Exception:
                log.exception(f"[VARIANT DROP FAILED] {variant_id}", extra={"variant": variant_id})
                self._transition(variant_id, prior)
                raise
            self._release_objects(variant)
            self._transition(variant_id, VariantState.DEFINED)
            return VariantState.DEFINED


__all__ = ["Transition", "VariantManager"]
