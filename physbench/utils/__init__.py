"""
Utilities package for physbench.

Exports shared helpers for logging, profiling and cooperative cancellation.
Keep this package lightweight and free of domain-specific logic.
"""

from physbench.utils.cancellation import CancellationToken
from physbench.utils.logging import configure_logging, get_logger
from physbench.utils.profiler import ProfileStats, profile_block

__all__ = [
    "CancellationToken",
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
