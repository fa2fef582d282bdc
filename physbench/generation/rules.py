"""
Distribution rules compiled into per-column value functions.

Every compiled function maps a 0-based row index to a value and depends only on
(seed, column name, row index). Pseudo-random rules draw from a stateless
64-bit mix of those inputs instead of a sequential RNG, so any slice of rows can
be produced on its own and partitioned workers emit exactly the values a single
worker would.
"""

from __future__ import annotations

import zlib
from datetime import timedelta
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Any, Callable

from physbench.domain.models import (
    CyclicForeignKey,
    DistributionRule,
    FixedDate,
    NumericRange,
    RangeDate,
    SequentialId,
    TemplatedString,
)
from physbench.domain.schema import Column, ColumnType
from physbench.errors import ConstraintViolation

ValueFn = Callable[[int], Any]

_MASK64 = (1 << 64) - 1


def mix64(value: int) -> int:
    """SplitMix64 finalizer."""
    value = (value + 0x9E3779B97F4A7C15) & _MASK64
    value = ((value ^ (value >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    value = ((value ^ (value >> 27)) * 0x94D049BB133111EB) & _MASK64
    return value ^ (value >> 31)


def stream_key(seed: int, column: str) -> int:
    """Independent draw stream per (seed, column)."""
    return mix64((seed & _MASK64) ^ (zlib.crc32(column.encode("utf-8")) << 32))


def draw(key: int, index: int) -> int:
    return mix64(key ^ mix64(index))


def _compile_numeric(rule: NumericRange, key: int) -> ValueFn:
    quantum = Decimal(1).scaleb(-rule.scale)
    low = rule.minimum.quantize(quantum, rounding=ROUND_CEILING)
    high = rule.maximum.quantize(quantum, rounding=ROUND_FLOOR)
    if low > high:
        raise ConstraintViolation(
            f"numeric_range [{rule.minimum}, {rule.maximum}] holds no value at scale {rule.scale}"
        )
    low_units = int(low.scaleb(rule.scale))
    span = int(high.scaleb(rule.scale)) - low_units + 1

    if rule.scale == 0:
        return lambda i: low_units + draw(key, i) % span
    return lambda i: Decimal(low_units + draw(key, i) % span).scaleb(-rule.scale)


def compile_rule(rule: DistributionRule, *, seed: int, column: str) -> ValueFn:
    """
    Turn a distribution rule into a function of the row index.

    Raises
    ------
    ConstraintViolation
        If the rule itself is malformed (bad template, empty range).
    """
    if isinstance(rule, SequentialId):
        start = rule.start
        return lambda i: start + i
    if isinstance(rule, CyclicForeignKey):
        parent_count = rule.parent_count
        return lambda i: (i % parent_count) + 1
    if isinstance(rule, TemplatedString):
        template, prefix = rule.template, rule.prefix
        try:
            template.format(prefix=prefix, n=1)
        except (KeyError, IndexError, ValueError) as exc:
            raise ConstraintViolation(
                f"Invalid template {template!r} for column '{column}': {exc}"
            ) from exc
        return lambda i: template.format(prefix=prefix, n=i + 1)
    if isinstance(rule, NumericRange):
        return _compile_numeric(rule, stream_key(seed, column))
    if isinstance(rule, FixedDate):
        value = rule.value
        return lambda i: value
    if isinstance(rule, RangeDate):
        key = stream_key(seed, column)
        start, days = rule.start, (rule.end - rule.start).days + 1
        return lambda i: start + timedelta(days=draw(key, i) % days)
    raise ConstraintViolation(f"Unsupported distribution rule {rule!r} for column '{column}'")


def check_value(entity: str, column: Column, value: Any, index: int) -> None:
    """
    Validate one generated value against the column's declaration.

    Raises
    ------
    ConstraintViolation
        The value is null for a non-nullable column or breaks the column check.
    """
    where = f"{entity}.{column.name} (row {index})"
    if value is None:
        if not column.nullable:
            raise ConstraintViolation(f"{where}: null in non-nullable column")
        return
    check = column.check
    if check is None:
        return
    if column.type in (ColumnType.INTEGER, ColumnType.BIGINT, ColumnType.NUMERIC):
        if check.minimum is not None and value < check.minimum:
            raise ConstraintViolation(f"{where}: {value} is below minimum {check.minimum}")
        if check.maximum is not None and value > check.maximum:
            raise ConstraintViolation(f"{where}: {value} is above maximum {check.maximum}")
    if check.max_length is not None and isinstance(value, str) and len(value) > check.max_length:
        raise ConstraintViolation(
            f"{where}: length {len(value)} exceeds max_length {check.max_length}"
        )


__all__ = ["ValueFn", "check_value", "compile_rule", "draw", "mix64", "stream_key"]
