"""
Profiling utilities for physbench.

`profile_block` measures a block of code:
- wall-clock time (perf_counter), the cost recorded on benchmark runs
- peak RSS of this process, sampled on a background thread (psutil)
- CPU percent of this process over the block (psutil)

Usage:
    from physbench.utils.profiler import profile_block

    with profile_block("revenue_per_category/indexed") as stats:
        backend.execute(statement)

    print(stats.duration_seconds, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)


class _RssSampler(threading.Thread):
    def __init__(self, process: psutil.Process, interval_seconds: float) -> None:
        super().__init__(name="rss-sampler", daemon=True)
        self._process = process
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self.peak = process.memory_info().rss

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.peak = max(self.peak, self._process.memory_info().rss)
            except psutil.Error:
                return
            self._stop_event.wait(self._interval)

    def stop(self) -> int:
        self._stop_event.set()
        self.join(timeout=1.0)
        return self.peak


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 50, sample_memory: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        Interval in milliseconds for RSS sampling.
    sample_memory : bool
        Whether to run the RSS sampling thread at all.

    Notes
    -----
    Stats are filled in even when the block raises, so failed executions can
    still report how long they ran.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    process.cpu_percent(interval=None)

    sampler: Optional[_RssSampler] = None
    if sample_memory:
        sampler = _RssSampler(process, sample_interval_ms / 1000.0)
        sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        if sampler is not None:
            stats.peak_rss_bytes = sampler.stop()
        stats.cpu_percent = process.cpu_percent(interval=None)


__all__ = ["ProfileStats", "profile_block"]
