"""
PostgreSQL DDL rendering for a `Schema`.
"""

from __future__ import annotations

from typing import List

from physbench.domain.schema import Column, ColumnType, Entity, Schema, topological_order

_TYPE_NAMES = {
    ColumnType.INTEGER: "INTEGER",
    ColumnType.BIGINT: "BIGINT",
    ColumnType.TEXT: "TEXT",
    ColumnType.DATE: "DATE",
    ColumnType.TIMESTAMP: "TIMESTAMP",
}


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _column_sql(entity: Entity, column: Column) -> str:
    if column.type is ColumnType.NUMERIC:
        precision, scale = column.numeric_precision
        type_sql = f"NUMERIC({precision}, {scale})"
    elif column.type is ColumnType.TEXT and column.check and column.check.max_length:
        type_sql = f"VARCHAR({column.check.max_length})"
    else:
        type_sql = _TYPE_NAMES[column.type]
    parts = [_quote(column.name), type_sql]
    if not column.nullable:
        parts.append("NOT NULL")
    check = column.check
    if check is not None:
        if check.minimum is not None:
            parts.append(
                f"CONSTRAINT {_quote(f'ck_{entity.name}_{column.name}_min')} "
                f"CHECK ({_quote(column.name)} >= {check.minimum})"
            )
        if check.maximum is not None:
            parts.append(
                f"CONSTRAINT {_quote(f'ck_{entity.name}_{column.name}_max')} "
                f"CHECK ({_quote(column.name)} <= {check.maximum})"
            )
    return " ".join(parts)


def create_table_statement(entity: Entity) -> str:
    lines = [_column_sql(entity, c) for c in entity.columns]
    pk_cols = ", ".join(_quote(c) for c in entity.primary_key)
    lines.append(f"CONSTRAINT {_quote(f'pk_{entity.name}')} PRIMARY KEY ({pk_cols})")
    for fk in entity.foreign_keys:
        lines.append(
            f"CONSTRAINT {_quote(f'fk_{entity.name}_{fk.column}')} "
            f"FOREIGN KEY ({_quote(fk.column)}) "
            f"REFERENCES {_quote(fk.target_entity)} ({_quote(fk.target_column)}) "
            f"ON DELETE {fk.on_delete.value.upper()}"
        )
    body = ",\n    ".join(lines)
    return f"CREATE TABLE IF NOT EXISTS {_quote(entity.name)} (\n    {body}\n)"


def create_table_statements(schema: Schema) -> List[str]:
    return [create_table_statement(e) for e in topological_order(schema)]


def drop_table_statements(schema: Schema) -> List[str]:
    """
    Drop statements, referrers before their targets. CASCADE also removes
    views and derived objects left behind by applied variants.
    """
    return [
        f"DROP TABLE IF EXISTS {_quote(e.name)} CASCADE"
        for e in reversed(topological_order(schema))
    ]


def truncate_statements(schema: Schema) -> List[str]:
    """
    A single TRUNCATE over every table; foreign keys are satisfied because
    all referencing tables are truncated together.
    """
    names = ", ".join(_quote(e.name) for e in topological_order(schema))
    return [f"TRUNCATE TABLE {names}"] if names else []


__all__ = [
    "create_table_statement",
    "create_table_statements",
    "drop_table_statements",
    "truncate_statements",
]
