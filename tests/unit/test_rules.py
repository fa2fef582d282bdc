from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from physbench.domain.models import (
    CyclicForeignKey,
    FixedDate,
    NumericRange,
    RangeDate,
    SequentialId,
    TemplatedString,
)
from physbench.domain.schema import Column, ColumnCheck, ColumnType
from physbench.errors import ConstraintViolation
from physbench.generation.rules import check_value, compile_rule

SEED = 42
SAMPLE = 1000


def test_sequential_id_starts_at_one_by_default() -> None:
    fn = compile_rule(SequentialId(), seed=SEED, column="id")
    assert [fn(i) for i in range(3)] == [1, 2, 3]
    shifted = compile_rule(SequentialId(start=100), seed=SEED, column="id")
    assert shifted(0) == 100


def test_cyclic_foreign_key_cycles_over_parents() -> None:
    fn = compile_rule(CyclicForeignKey(parent_count=3), seed=SEED, column="parent_id")
    assert [fn(i) for i in range(7)] == [1, 2, 3, 1, 2, 3, 1]


def test_templated_string_uses_one_based_row_number() -> None:
    name = compile_rule(TemplatedString(prefix="Category "), seed=SEED, column="category_name")
    email = compile_rule(
        TemplatedString(prefix="customer", template="{prefix}{n}@example.com"),
        seed=SEED,
        column="email",
    )
    assert name(0) == "Category 1"
    assert email(9) == "customer10@example.com"


def test_malformed_template_is_rejected_up_front() -> None:
    with pytest.raises(ConstraintViolation, match="Invalid template"):
        compile_rule(TemplatedString(prefix="x", template="{missing}"), seed=SEED, column="c")


def test_numeric_range_stays_in_bounds_with_fixed_scale() -> None:
    rule = NumericRange(minimum=Decimal("1.00"), maximum=Decimal("1000.00"))
    fn = compile_rule(rule, seed=SEED, column="price")

    values = [fn(i) for i in range(SAMPLE)]

    assert all(Decimal("1.00") <= v <= Decimal("1000.00") for v in values)
    assert all(v.as_tuple().exponent == -2 for v in values)
    assert len(set(values)) > SAMPLE // 2


def test_numeric_range_with_zero_scale_yields_ints() -> None:
    fn = compile_rule(
        NumericRange(minimum=Decimal("1"), maximum=Decimal("10"), scale=0),
        seed=SEED,
        column="quantity",
    )
    values = {fn(i) for i in range(SAMPLE)}
    assert all(isinstance(v, int) for v in values)
    assert values == set(range(1, 11))


def test_numeric_range_without_representable_value_is_rejected() -> None:
    rule = NumericRange(minimum=Decimal("1.001"), maximum=Decimal("1.009"), scale=2)
    with pytest.raises(ConstraintViolation):
        compile_rule(rule, seed=SEED, column="price")


def test_draws_depend_only_on_seed_column_and_index() -> None:
    rule = NumericRange(minimum=Decimal("0"), maximum=Decimal("1000000"))
    first = compile_rule(rule, seed=SEED, column="price")
    again = compile_rule(rule, seed=SEED, column="price")
    other_seed = compile_rule(rule, seed=SEED + 1, column="price")
    other_column = compile_rule(rule, seed=SEED, column="unit_price")

    values = [first(i) for i in range(50)]
    assert values == [again(i) for i in range(50)]
    assert values != [other_seed(i) for i in range(50)]
    assert values != [other_column(i) for i in range(50)]
    # Random access: row 37 does not depend on rows before it.
    assert compile_rule(rule, seed=SEED, column="price")(37) == values[37]


def test_date_rules() -> None:
    fixed = compile_rule(FixedDate(value=date(2024, 1, 1)), seed=SEED, column="d")
    ranged = compile_rule(
        RangeDate(start=date(2023, 1, 1), end=date(2023, 1, 31)), seed=SEED, column="d"
    )
    assert fixed(123) == date(2024, 1, 1)
    assert all(date(2023, 1, 1) <= ranged(i) <= date(2023, 1, 31) for i in range(SAMPLE))


def test_check_value_rejects_values_below_minimum() -> None:
    price = Column(
        name="price", type=ColumnType.NUMERIC, check=ColumnCheck(minimum=Decimal("0"))
    )
    check_value("product", price, Decimal("0.00"), 0)
    with pytest.raises(ConstraintViolation, match="below minimum"):
        check_value("product", price, Decimal("-0.01"), 5)


def test_check_value_rejects_nulls_and_long_text() -> None:
    name = Column(name="name", type=ColumnType.TEXT, check=ColumnCheck(max_length=5))
    with pytest.raises(ConstraintViolation, match="non-nullable"):
        check_value("category", name, None, 0)
    with pytest.raises(ConstraintViolation, match="max_length"):
        check_value("category", name, "toolong", 0)
    nullable = Column(name="note", type=ColumnType.TEXT, nullable=True)
    check_value("category", nullable, None, 0)
