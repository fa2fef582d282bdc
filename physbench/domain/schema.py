"""
Schema model: entities, typed columns and foreign-key relationships.

Entities are registered on a `Schema` in declaration order. A foreign key may
only target an entity that is already defined, so the relationship graph stays
acyclic and `topological_order` always yields a valid generation sequence.
"""
from __future__ import annotations

import heapq
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, model_validator

from physbench.errors import SchemaError


class ColumnType(str, Enum):
    INTEGER = "integer"
    BIGINT = "bigint"
    NUMERIC = "numeric"
    TEXT = "text"
    DATE = "date"
    TIMESTAMP = "timestamp"


class OnDelete(str, Enum):
    RESTRICT = "restrict"
    CASCADE = "cascade"


class ColumnCheck(BaseModel):
    """
    Declared value constraint for a column.
    """

    minimum: Optional[Decimal] = Field(None, description="Inclusive lower bound.")
    maximum: Optional[Decimal] = Field(None, description="Inclusive upper bound.")
    max_length: Optional[int] = Field(None, ge=1, description="Maximum text length.")

    model_config = {"frozen": True}


class Column(BaseModel):
    name: str
    type: ColumnType
    nullable: bool = False
    check: Optional[ColumnCheck] = None
    numeric_precision: Tuple[int, int] = (12, 2)

    model_config = {"frozen": True}


class ForeignKey(BaseModel):
    column: str
    target_entity: str
    target_column: str
    on_delete: OnDelete = OnDelete.RESTRICT

    model_config = {"frozen": True}


class Entity(BaseModel):
    """
    A table: ordered columns, primary key and outgoing foreign keys.
    """

    name: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...]
    foreign_keys: Tuple[ForeignKey, ...] = ()

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_local_columns(self) -> "Entity":
        names = [c.name for c in self.columns]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate column names in '{self.name}'")
        if not self.primary_key:
            raise ValueError(f"entity '{self.name}' has no primary key")
        for pk in self.primary_key:
            if pk not in names:
                raise ValueError(f"primary key column '{pk}' not in '{self.name}'")
        for fk in self.foreign_keys:
            if fk.column not in names:
                raise ValueError(f"foreign key column '{fk.column}' not in '{self.name}'")
        return self

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        for col in self.columns:
            if col.name == name:
                return col
        raise SchemaError(f"Entity '{self.name}' has no column '{name}'")

    def foreign_key_for(self, column: str) -> Optional[ForeignKey]:
        for fk in self.foreign_keys:
            if fk.column == column:
                return fk
        return None

    @property
    def dependencies(self) -> List[str]:
        """Distinct target entities, in foreign-key declaration order."""
        seen: List[str] = []
        for fk in self.foreign_keys:
            if fk.target_entity not in seen:
                seen.append(fk.target_entity)
        return seen


def _build_entity(
    name: str,
    columns: Sequence[Column],
    primary_key: Sequence[str],
    foreign_keys: Sequence[ForeignKey],
) -> Entity:
    try:
        return Entity(
            name=name,
            columns=tuple(columns),
            primary_key=tuple(primary_key),
            foreign_keys=tuple(foreign_keys),
        )
    except ValueError as exc:
        raise SchemaError(str(exc)) from exc


class Schema:
    """
    Registry of entities in declaration order.
    """

    def __init__(self, name: str = "public") -> None:
        self.name = name
        self._entities: Dict[str, Entity] = {}

    def define_entity(
        self,
        name: str,
        columns: Sequence[Column],
        primary_key: Sequence[str],
        foreign_keys: Sequence[ForeignKey] = (),
    ) -> Entity:
        """
        Define and register an entity.

        Raises
        ------
        SchemaError
            On duplicate names, unknown referenced entities or columns, or a
            foreign key that would close a cycle (including self references).
        """
        if name in self._entities:
            raise SchemaError(f"Entity '{name}' is already defined")
        entity = _build_entity(name, columns, primary_key, foreign_keys)
        for fk in entity.foreign_keys:
            if fk.target_entity == name:
                raise SchemaError(f"Foreign key '{name}.{fk.column}' references its own entity")
            target = self._entities.get(fk.target_entity)
            if target is None:
                raise SchemaError(
                    f"Foreign key '{name}.{fk.column}' references undefined entity "
                    f"'{fk.target_entity}'"
                )
            if fk.target_column not in target.column_names:
                raise SchemaError(
                    f"Foreign key '{name}.{fk.column}' references undefined column "
                    f"'{fk.target_entity}.{fk.target_column}'"
                )
        self._entities[name] = entity
        return entity

    def entity(self, name: str) -> Entity:
        try:
            return self._entities[name]
        except KeyError:
            raise SchemaError(f"Unknown entity '{name}'") from None

    def dependents(self, name: str) -> List[Entity]:
        return [e for e in self._entities.values() if name in e.dependencies]

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self) -> Iterator[Entity]:
        return iter(list(self._entities.values()))

    def __len__(self) -> int:
        return len(self._entities)

    def generation_order(self) -> List[Entity]:
        return topological_order(self)


def topological_order(entities: Iterable[Entity]) -> List[Entity]:
    """
    Order entities so every foreign-key target precedes its referrers.

    Kahn's algorithm with a heap keyed on declaration index, so entities with
    no dependency between them keep their declaration order.
    """
    ordered = list(entities)
    index = {e.name: i for i, e in enumerate(ordered)}
    if len(index) != len(ordered):
        raise SchemaError("Duplicate entity names")

    pending: Dict[str, int] = {}
    children: Dict[str, List[str]] = {e.name: [] for e in ordered}
    for entity in ordered:
        deps = entity.dependencies
        for dep in deps:
            if dep not in index:
                raise SchemaError(f"Entity '{entity.name}' references unknown entity '{dep}'")
            children[dep].append(entity.name)
        pending[entity.name] = len(deps)

    ready = [index[name] for name, count in pending.items() if count == 0]
    heapq.heapify(ready)
    result: List[Entity] = []
    while ready:
        entity = ordered[heapq.heappop(ready)]
        result.append(entity)
        for child in children[entity.name]:
            pending[child] -= 1
            if pending[child] == 0:
                heapq.heappush(ready, index[child])

    if len(result) != len(ordered):
        stuck = sorted(name for name, count in pending.items() if count > 0)
        raise SchemaError(f"Foreign-key cycle among entities: {', '.join(stuck)}")
    return result


__all__ = [
    "Column",
    "ColumnCheck",
    "ColumnType",
    "Entity",
    "ForeignKey",
    "OnDelete",
    "Schema",
    "topological_order",
]
