"""
Up-front row-range partitioning for parallel generation workers.

Each worker receives a disjoint, contiguous slice of row indices. Identifiers
derive from the row index, so disjoint slices mean disjoint primary keys
without any shared counter.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List


@dataclass(frozen=True)
class RowRange:
    """Half-open range of 0-based row indices `[start, stop)`."""

    start: int
    stop: int

    def __len__(self) -> int:
        return self.stop - self.start

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.stop))


def plan_partitions(row_count: int, workers: int, min_rows_per_partition: int = 1) -> List[RowRange]:
    """
    Split `[0, row_count)` into at most `workers` near-equal ranges.

    Earlier partitions absorb the remainder, so sizes differ by at most one.
    Fewer partitions are returned when there are not enough rows to give each
    one `min_rows_per_partition`.
    """
    if row_count < 0:
        raise ValueError("row_count must be >= 0")
    if workers < 1:
        raise ValueError("workers must be >= 1")
    if row_count == 0:
        return []

    count = min(workers, max(1, row_count // max(1, min_rows_per_partition)))
    base, remainder = divmod(row_count, count)
    ranges: List[RowRange] = []
    start = 0
    for index in range(count):
        size = base + (1 if index < remainder else 0)
        ranges.append(RowRange(start=start, stop=start + size))
        start += size
    return ranges


__all__ = ["RowRange", "plan_partitions"]
