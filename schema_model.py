"""In-memory representation of an introspected database schema."""

from __future__ import annotations

import dataclasses

TABLE = "table"
VIEW = "view"

PRIMARY_KEY = "primary_key"
FOREIGN_KEY = "foreign_key"
UNIQUE = "unique"

TABLE_KINDS = (TABLE, VIEW)
CONSTRAINT_KINDS = (PRIMARY_KEY, FOREIGN_KEY, UNIQUE)


@dataclasses.dataclass(frozen=True)
class Identity:
    start: int = 1
    increment: int = 1
    min_value: int = 1
    max_value: int = 2147483647
    cycle: bool = False
    cache: int = 1


@dataclasses.dataclass(frozen=True)
class Column:
    name: str
    position: int
    nullable: bool
    type_name: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    default: str | None = None
    is_identity: bool = False
    identity: Identity | None = None
    comment: str | None = None
    collation: str | None = None


@dataclasses.dataclass(frozen=True)
class ForeignKey:
    ref_schema: str
    ref_table: str
    ref_columns: tuple[str, ...]
    update_rule: str = "NO ACTION"
    delete_rule: str = "NO ACTION"


@dataclasses.dataclass(frozen=True)
class Constraint:
    name: str
    kind: str
    columns: tuple[str, ...]
    foreign_key: ForeignKey | None = None

    def is_primary_key(self) -> bool:
        return self.kind == PRIMARY_KEY

    def is_foreign_key(self) -> bool:
        return self.kind == FOREIGN_KEY

    def is_unique(self) -> bool:
        return self.kind == UNIQUE


@dataclasses.dataclass(frozen=True)
class Index:
    name: str
    unique: bool
    columns: tuple[str, ...]


@dataclasses.dataclass(frozen=True)
class Table:
    schema: str
    name: str
    kind: str = TABLE
    comment: str | None = None
    columns: tuple[Column, ...] = ()
    constraints: tuple[Constraint, ...] = ()
    indexes: tuple[Index, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.schema, self.name)

    def primary_key(self) -> Constraint | None:
        for constraint in self.constraints:
            if constraint.is_primary_key():
                return constraint
        return None

    def primary_key_columns(self) -> set[str]:
        pk = self.primary_key()
        return set(pk.columns) if pk else set()

    def foreign_keys(self) -> list[Constraint]:
        return [c for c in self.constraints if c.is_foreign_key() and c.foreign_key is not None]

    def unique_constraints(self) -> list[Constraint]:
        return [c for c in self.constraints if c.is_unique()]

    def single_column_foreign_key(self, column_name: str) -> Constraint | None:
        for constraint in self.foreign_keys():
            if constraint.columns == (column_name,):
                return constraint
        return None

    def has_single_column_unique(self, column_name: str) -> bool:
        return any(c.columns == (column_name,) for c in self.unique_constraints())


@dataclasses.dataclass(frozen=True)
class Schema:
    dialect: str
    tables: tuple[Table, ...] = ()


def index_backs_unique_constraint(index: Index, constraints: tuple[Constraint, ...]) -> bool:
    """An index whose column list equals a declared unique constraint's is redundant."""
    return any(c.is_unique() and c.columns == index.columns for c in constraints)
