"""
E-commerce workload: schema, generation specs, logical queries and the
physical-design variants benchmarked against them.

Row counts scale linearly from `BASE_ROW_COUNTS` (scale 1.0). Every foreign key
cycles over exactly the number of parent rows generated, so no child can point
at a missing parent.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List

from physbench.domain.models import (
    ActionType,
    CyclicForeignKey,
    GenerationSpec,
    LogicalQuery,
    NumericRange,
    RangeDate,
    SequentialId,
    TemplatedString,
    Variant,
    VariantAction,
)
from physbench.domain.schema import (
    Column,
    ColumnCheck,
    ColumnType,
    ForeignKey,
    OnDelete,
    Schema,
)

BASE_ROW_COUNTS: Dict[str, int] = {
    "category": 100_000,
    "product": 5_000_000,
    "customer": 1_000_000,
    "orders": 2_000_000,
    "order_details": 10_000_000,
}

ORDER_WINDOW = (date(2023, 1, 1), date(2024, 12, 31))

PRODUCTS_PER_CATEGORY = "products_per_category"
REVENUE_PER_CATEGORY = "revenue_per_category"


def build_schema() -> Schema:
    schema = Schema("public")
    non_negative = ColumnCheck(minimum=Decimal("0"))

    schema.define_entity(
        "category",
        columns=[
            Column(name="category_id", type=ColumnType.BIGINT),
            Column(
                name="category_name", type=ColumnType.TEXT, check=ColumnCheck(max_length=100)
            ),
        ],
        primary_key=["category_id"],
    )
    schema.define_entity(
        "product",
        columns=[
            Column(name="product_id", type=ColumnType.BIGINT),
            Column(name="product_name", type=ColumnType.TEXT, check=ColumnCheck(max_length=200)),
            Column(name="category_id", type=ColumnType.BIGINT),
            Column(
                name="price",
                type=ColumnType.NUMERIC,
                check=non_negative,
                numeric_precision=(10, 2),
            ),
        ],
        primary_key=["product_id"],
        foreign_keys=[ForeignKey(column="category_id", target_entity="category", target_column="category_id")],
    )
    schema.define_entity(
        "customer",
        columns=[
            Column(name="customer_id", type=ColumnType.BIGINT),
            Column(name="customer_name", type=ColumnType.TEXT, check=ColumnCheck(max_length=100)),
            Column(name="email", type=ColumnType.TEXT, check=ColumnCheck(max_length=255)),
            Column(name="signup_date", type=ColumnType.DATE),
        ],
        primary_key=["customer_id"],
    )
    schema.define_entity(
        "orders",
        columns=[
            Column(name="order_id", type=ColumnType.BIGINT),
            Column(name="customer_id", type=ColumnType.BIGINT),
            Column(name="order_date", type=ColumnType.DATE),
        ],
        primary_key=["order_id"],
        foreign_keys=[ForeignKey(column="customer_id", target_entity="customer", target_column="customer_id")],
    )
    schema.define_entity(
        "order_details",
        columns=[
            Column(name="order_detail_id", type=ColumnType.BIGINT),
            Column(name="order_id", type=ColumnType.BIGINT),
            Column(name="product_id", type=ColumnType.BIGINT),
            Column(
                name="quantity",
                type=ColumnType.INTEGER,
                check=ColumnCheck(minimum=Decimal("1")),
            ),
            Column(
                name="unit_price",
                type=ColumnType.NUMERIC,
                check=non_negative,
                numeric_precision=(10, 2),
            ),
        ],
        primary_key=["order_detail_id"],
        foreign_keys=[
            ForeignKey(
                column="order_id",
                target_entity="orders",
                target_column="order_id",
                on_delete=OnDelete.CASCADE,
            ),
            ForeignKey(column="product_id", target_entity="product", target_column="product_id"),
        ],
    )
    return schema


def scaled_row_counts(scale: float = 1.0) -> Dict[str, int]:
    if scale <= 0:
        raise ValueError("scale must be > 0")
    return {name: max(1, round(count * scale)) for name, count in BASE_ROW_COUNTS.items()}


def build_specs(scale: float = 1.0, seed: int = 42) -> List[GenerationSpec]:
    counts = scaled_row_counts(scale)
    start, end = ORDER_WINDOW
    return [
        GenerationSpec(
            entity="category",
            row_count=counts["category"],
            seed=seed,
            rules={
                "category_id": SequentialId(),
                "category_name": TemplatedString(prefix="Category "),
            },
        ),
        GenerationSpec(
            entity="product",
            row_count=counts["product"],
            seed=seed,
            rules={
                "product_id": SequentialId(),
                "product_name": TemplatedString(prefix="Product "),
                "category_id": CyclicForeignKey(parent_count=counts["category"]),
                "price": NumericRange(minimum=Decimal("1.00"), maximum=Decimal("1000.00")),
            },
        ),
        GenerationSpec(
            entity="customer",
            row_count=counts["customer"],
            seed=seed,
            rules={
                "customer_id": SequentialId(),
                "customer_name": TemplatedString(prefix="Customer "),
                "email": TemplatedString(prefix="customer", template="{prefix}{n}@example.com"),
                "signup_date": RangeDate(start=date(2020, 1, 1), end=start),
            },
        ),
        GenerationSpec(
            entity="orders",
            row_count=counts["orders"],
            seed=seed,
            rules={
                "order_id": SequentialId(),
                "customer_id": CyclicForeignKey(parent_count=counts["customer"]),
                "order_date": RangeDate(start=start, end=end),
            },
        ),
        GenerationSpec(
            entity="order_details",
            row_count=counts["order_details"],
            seed=seed,
            rules={
                "order_detail_id": SequentialId(),
                "order_id": CyclicForeignKey(parent_count=counts["orders"]),
                "product_id": CyclicForeignKey(parent_count=counts["product"]),
                "quantity": NumericRange(minimum=Decimal("1"), maximum=Decimal("10"), scale=0),
                "unit_price": NumericRange(minimum=Decimal("1.00"), maximum=Decimal("1000.00")),
            },
        ),
    ]


def logical_queries() -> List[LogicalQuery]:
    return [
        LogicalQuery(
            query_id=PRODUCTS_PER_CATEGORY,
            description="Number of products in each category.",
        ),
        LogicalQuery(
            query_id=REVENUE_PER_CATEGORY,
            description="Total order revenue per category.",
        ),
    ]


_PRODUCTS_PER_CATEGORY_SQL = (
    "SELECT category_id, COUNT(*) AS product_count "
    "FROM product GROUP BY category_id ORDER BY category_id"
)

_REVENUE_SELECT = (
    "SELECT c.category_id, c.category_name, "
    "SUM(od.quantity * od.unit_price) AS revenue "
    "FROM order_details od "
    "JOIN product p ON p.product_id = od.product_id "
    "JOIN category c ON c.category_id = p.category_id "
    "GROUP BY c.category_id, c.category_name"
)

_REVENUE_SOURCES = ("order_details", "product", "category")


def build_variants() -> List[Variant]:
    return [
        Variant(
            variant_id="products_per_category_baseline",
            query_id=PRODUCTS_PER_CATEGORY,
            statement=_PRODUCTS_PER_CATEGORY_SQL,
            description="Plain table scan.",
        ),
        Variant(
            variant_id="products_per_category_indexed",
            query_id=PRODUCTS_PER_CATEGORY,
            statement=_PRODUCTS_PER_CATEGORY_SQL,
            description="Secondary index on product.category_id.",
            actions=(
                VariantAction(
                    action_type=ActionType.CREATE_INDEX,
                    object_name="idx_product_category_id",
                    statement="CREATE INDEX idx_product_category_id ON product (category_id)",
                    reverse_statement="DROP INDEX IF EXISTS idx_product_category_id",
                ),
            ),
        ),
        Variant(
            variant_id="products_per_category_clustered",
            query_id=PRODUCTS_PER_CATEGORY,
            statement=_PRODUCTS_PER_CATEGORY_SQL,
            description=(
                "Product rows physically ordered by category_id. Dropping removes the "
                "index and the cluster marker; the row order persists until the table "
                "is rewritten."
            ),
            actions=(
                VariantAction(
                    action_type=ActionType.CREATE_INDEX,
                    object_name="idx_product_category_cluster",
                    statement="CREATE INDEX idx_product_category_cluster ON product (category_id)",
                    reverse_statement="DROP INDEX IF EXISTS idx_product_category_cluster",
                ),
                VariantAction(
                    action_type=ActionType.CLUSTER_ON,
                    rewrites="product",
                    statement="CLUSTER product USING idx_product_category_cluster",
                    reverse_statement="ALTER TABLE product SET WITHOUT CLUSTER",
                ),
            ),
        ),
        Variant(
            variant_id="revenue_per_category_baseline",
            query_id=REVENUE_PER_CATEGORY,
            statement=f"{_REVENUE_SELECT} ORDER BY c.category_id",
            description="Three-way join and aggregation over base tables.",
        ),
        Variant(
            variant_id="revenue_per_category_indexed",
            query_id=REVENUE_PER_CATEGORY,
            statement=f"{_REVENUE_SELECT} ORDER BY c.category_id",
            description="Index on order_details.product_id for the join.",
            actions=(
                VariantAction(
                    action_type=ActionType.CREATE_INDEX,
                    object_name="idx_order_details_product_id",
                    statement=(
                        "CREATE INDEX idx_order_details_product_id "
                        "ON order_details (product_id) INCLUDE (quantity, unit_price)"
                    ),
                    reverse_statement="DROP INDEX IF EXISTS idx_order_details_product_id",
                ),
            ),
        ),
        Variant(
            variant_id="revenue_per_category_mv",
            query_id=REVENUE_PER_CATEGORY,
            statement=(
                "SELECT category_id, category_name, revenue "
                "FROM mv_category_revenue ORDER BY category_id"
            ),
            description="Materialized view over the revenue aggregation.",
            actions=(
                VariantAction(
                    action_type=ActionType.CREATE_MATERIALIZED_VIEW,
                    object_name="mv_category_revenue",
                    statement=f"CREATE MATERIALIZED VIEW mv_category_revenue AS {_REVENUE_SELECT}",
                    reverse_statement="DROP MATERIALIZED VIEW IF EXISTS mv_category_revenue",
                    refresh_statements=("REFRESH MATERIALIZED VIEW mv_category_revenue",),
                    source_entities=_REVENUE_SOURCES,
                ),
            ),
        ),
        Variant(
            variant_id="revenue_per_category_summary",
            query_id=REVENUE_PER_CATEGORY,
            statement=(
                "SELECT category_id, category_name, revenue "
                "FROM category_revenue_summary ORDER BY category_id"
            ),
            description="Pre-aggregated summary table refreshed by the harness.",
            actions=(
                VariantAction(
                    action_type=ActionType.CREATE_DERIVED_TABLE,
                    object_name="category_revenue_summary",
                    statement=f"CREATE TABLE category_revenue_summary AS {_REVENUE_SELECT}",
                    reverse_statement="DROP TABLE IF EXISTS category_revenue_summary",
                    refresh_statements=(
                        "TRUNCATE TABLE category_revenue_summary; "
                        f"INSERT INTO category_revenue_summary {_REVENUE_SELECT}",
                    ),
                    source_entities=_REVENUE_SOURCES,
                ),
            ),
        ),
    ]


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
