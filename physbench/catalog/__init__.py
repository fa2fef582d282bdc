"""
Workload catalogs shipped with physbench.
"""

from physbench.catalog.ecommerce import (
    BASE_ROW_COUNTS,
    PRODUCTS_PER_CATEGORY,
    REVENUE_PER_CATEGORY,
    build_schema,
    build_specs,
    build_variants,
    logical_queries,
    scaled_row_counts,
)

__all__ = [
    "BASE_ROW_COUNTS",
    "PRODUCTS_PER_CATEGORY",
    "REVENUE_PER_CATEGORY",
    "build_schema",
    "build_specs",
    "build_variants",
    "logical_queries",
    "scaled_row_counts",
]
