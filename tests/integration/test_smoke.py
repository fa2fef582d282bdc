"""
Integration tests for physbench against a real PostgreSQL instance.

These tests verify that:
1. The catalog schema can be created and populated deterministically
2. Variants apply, refresh and drop cleanly
3. Benchmark runs are recorded and comparable

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import pytest

from physbench.catalog import build_schema, build_specs, build_variants
from physbench.domain.models import VariantState
from physbench.errors import VariantConflict
from physbench.generation.generator import DataGenerator
from physbench.infrastructure.ddl import create_table_statements, drop_table_statements
from physbench.reporter import ComparisonReporter
from physbench.runner import BenchmarkRunner
from physbench.variants.manager import VariantManager

SCALE = 0.0001
SEED = 123
EXPECTED_CATEGORY_ROWS = 10
EXPECTED_ORDER_DETAIL_ROWS = 1000
PRODUCTS_QUERY = "products_per_category"
REVENUE_QUERY = "revenue_per_category"

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def populated_db(pg_backend, integration_settings):
    """
    Fresh catalog tables populated at a tiny scale.
    """
    schema = build_schema()
    for statement in drop_table_statements(schema) + create_table_statements(schema):
        pg_backend.execute(statement)
    generator = DataGenerator(schema, settings=integration_settings, batch_size=250)
    results = generator.generate_all(build_specs(scale=SCALE, seed=SEED), pg_backend, workers=2)
    yield results
    for statement in drop_table_statements(schema):
        pg_backend.execute(statement)


@pytest.fixture
def manager(pg_backend, integration_settings, populated_db):
    manager = VariantManager(pg_backend, settings=integration_settings)
    for variant in build_variants():
        manager.register(variant)
    yield manager
    for variant in build_variants():
        if manager.state(variant.variant_id) in (VariantState.APPLIED, VariantState.STALE):
            manager.drop(variant.variant_id)


class TestGeneration:
    """Populate the catalog schema."""

    def test_row_counts_match_specs(self, pg_backend, populated_db):
        """Verify every entity holds exactly the requested rows."""
        assert populated_db["category"].rows_written == EXPECTED_CATEGORY_ROWS
        count = pg_backend.execute("SELECT COUNT(*) FROM order_details").rows[0][0]
        assert count == EXPECTED_ORDER_DETAIL_ROWS

    def test_foreign_keys_resolve(self, pg_backend, populated_db):
        """Verify no product points at a missing category."""
        orphans = pg_backend.execute(
            "SELECT COUNT(*) FROM product p "
            "LEFT JOIN category c ON c.category_id = p.category_id "
            "WHERE c.category_id IS NULL"
        ).rows[0][0]
        assert orphans == 0


class TestVariantsAndRuns:
    """Apply variants and benchmark them."""

    def test_baseline_and_indexed_runs_are_comparable(
        self, pg_backend, manager, integration_settings
    ):
        """Verify each variant is measured alone and the runs are comparable."""
        runner = BenchmarkRunner(pg_backend, manager, settings=integration_settings)
        for variant_id in (f"{PRODUCTS_QUERY}_baseline", f"{PRODUCTS_QUERY}_indexed"):
            manager.apply(variant_id)
            try:
                runner.run_suite(PRODUCTS_QUERY, [variant_id], repetitions=2)
            finally:
                manager.drop(variant_id)
        assert not pg_backend.object_exists("idx_product_category_id")

        (report,) = ComparisonReporter(runner.run_log).compare_latest(
            PRODUCTS_QUERY, f"{PRODUCTS_QUERY}_baseline"
        )
        assert report.query_id == PRODUCTS_QUERY
        assert all(r.row_count == EXPECTED_CATEGORY_ROWS for r in runner.run_log.runs())

    def test_materialized_view_refresh_cycle(self, pg_backend, manager):
        """Verify a derived variant goes stale on base change and refreshes."""
        variant_id = f"{REVENUE_QUERY}_mv"
        manager.apply(variant_id)

        assert manager.notify_base_change("order_details") == [variant_id]
        assert manager.refresh(variant_id) is VariantState.APPLIED

        manager.drop(variant_id)
        assert not pg_backend.object_exists("mv_category_revenue")

    def test_pre_existing_object_conflicts(self, pg_backend, manager):
        """Verify applying over an existing object is rejected."""
        pg_backend.execute("CREATE INDEX idx_product_category_id ON product (category_id)")
        try:
            with pytest.raises(VariantConflict):
                manager.apply(f"{PRODUCTS_QUERY}_indexed")
            assert manager.state(f"{PRODUCTS_QUERY}_indexed") is VariantState.DEFINED
        finally:
            pg_backend.execute("DROP INDEX IF EXISTS idx_product_category_id")
