"""Read and write YAML schema snapshots.

A snapshot is the serialized Schema the generators consume::

    dialect: postgresql
    tables:
      - schema: public
        name: users
        kind: table
        columns:
          - {name: id, position: 1, nullable: false, type: int4}
        constraints:
          - {name: users_pkey, kind: primary_key, columns: [id]}
        indexes: []
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

try:
    import yaml
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required. Install with: pip install pyyaml") from exc

from schema_model import (
    CONSTRAINT_KINDS,
    FOREIGN_KEY,
    TABLE,
    TABLE_KINDS,
    VIEW,
    Column,
    Constraint,
    ForeignKey,
    Identity,
    Index,
    Schema,
    Table,
)


def _optional_int(value) -> int | None:
    return None if value is None else int(value)


def _optional_str(value) -> str | None:
    return None if value is None else str(value)


def _name_list(value, where: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list):
        raise ValueError(f"{where}: expected a list of column names")
    return tuple(str(item) for item in value)


def parse_identity(raw: dict) -> Identity:
    defaults = Identity()
    return Identity(
        start=int(raw.get("start", defaults.start)),
        increment=int(raw.get("increment", defaults.increment)),
        min_value=int(raw.get("min", defaults.min_value)),
        max_value=int(raw.get("max", defaults.max_value)),
        cycle=bool(raw.get("cycle", defaults.cycle)),
        cache=int(raw.get("cache", defaults.cache)),
    )


def parse_column(raw: dict, table_name: str, default_position: int) -> Column:
    if "name" not in raw or "type" not in raw:
        raise ValueError(f"Column in table {table_name} needs 'name' and 'type'")
    identity = raw.get("identity")
    if identity is not None and not isinstance(identity, dict):
        raise ValueError(f"Column {raw['name']} in table {table_name}: identity must be a mapping")
    return Column(
        name=str(raw["name"]),
        position=int(raw.get("position", default_position)),
        nullable=bool(raw.get("nullable", True)),
        type_name=str(raw["type"]),
        length=_optional_int(raw.get("length")),
        precision=_optional_int(raw.get("precision")),
        scale=_optional_int(raw.get("scale")),
        default=_optional_str(raw.get("default")),
        is_identity=identity is not None,
        identity=parse_identity(identity) if identity is not None else None,
        comment=_optional_str(raw.get("comment")),
        collation=_optional_str(raw.get("collation")),
    )


def parse_constraint(raw: dict, table_name: str, table_schema: str) -> Constraint:
    name = str(raw.get("name", ""))
    kind = raw.get("kind")
    if kind not in CONSTRAINT_KINDS:
        raise ValueError(f"Constraint {name} in table {table_name}: unknown kind {kind!r}")

    columns = _name_list(raw.get("columns", []), f"Constraint {name} in table {table_name}")
    detail = raw.get("foreign_key")
    if (kind == FOREIGN_KEY) != (detail is not None):
        raise ValueError(f"Constraint {name} in table {table_name}: foreign_key detail must be given iff kind is foreign_key")

    foreign_key = None
    if detail is not None:
        ref_columns = _name_list(detail.get("columns", []), f"Constraint {name} in table {table_name}")
        if len(ref_columns) != len(columns):
            raise ValueError(f"Constraint {name} in table {table_name}: foreign key column count mismatch")
        foreign_key = ForeignKey(
            ref_schema=str(detail.get("schema", table_schema)),
            ref_table=str(detail["table"]),
            ref_columns=ref_columns,
            update_rule=str(detail.get("update_rule", "NO ACTION")),
            delete_rule=str(detail.get("delete_rule", "NO ACTION")),
        )
    return Constraint(name=name, kind=kind, columns=columns, foreign_key=foreign_key)


def parse_index(raw: dict, table_name: str) -> Index:
    name = str(raw.get("name", ""))
    return Index(
        name=name,
        unique=bool(raw.get("unique", False)),
        columns=_name_list(raw.get("columns", []), f"Index {name} in table {table_name}"),
    )


def parse_table(raw: dict) -> Table:
    if "name" not in raw:
        raise ValueError("Table entry without 'name'")
    name = str(raw["name"])
    kind = raw.get("kind", TABLE)
    if kind not in TABLE_KINDS:
        raise ValueError(f"Table {name}: unknown kind {kind!r}")

    schema = str(raw.get("schema", ""))
    # Columns without a position take their place in the list.
    columns = [parse_column(item, name, idx) for idx, item in enumerate(raw.get("columns") or [], 1)]
    positions = [column.position for column in columns]
    if len(set(positions)) != len(positions):
        raise ValueError(f"Table {name}: duplicate column positions")
    columns.sort(key=lambda column: column.position)

    constraints = [parse_constraint(item, name, schema) for item in raw.get("constraints") or []]
    if sum(1 for c in constraints if c.is_primary_key()) > 1:
        raise ValueError(f"Table {name}: more than one primary key")

    return Table(
        schema=schema,
        name=name,
        kind=kind,
        comment=_optional_str(raw.get("comment")),
        columns=tuple(columns),
        constraints=tuple(constraints),
        indexes=tuple(parse_index(item, name) for item in raw.get("indexes") or []),
    )


def select_tables(tables: Iterable[Table], names: Iterable[str] | None = None, noviews: bool = False) -> list[Table]:
    """Keep tables named in ``names`` (all when empty) and drop views when ``noviews``."""
    wanted = set(names or [])
    selected = []
    for table in tables:
        if wanted and table.name not in wanted:
            continue
        if noviews and table.kind == VIEW:
            continue
        selected.append(table)
    return selected


def schema_from_dict(data: dict, tables: Iterable[str] | None = None, noviews: bool = False) -> Schema:
    if not isinstance(data, dict):
        raise ValueError("Snapshot must be a mapping with 'dialect' and 'tables'")
    if "dialect" not in data:
        raise ValueError("Snapshot is missing 'dialect'")
    parsed = [parse_table(item) for item in data.get("tables") or []]
    return Schema(dialect=str(data["dialect"]), tables=tuple(select_tables(parsed, tables, noviews)))


def load_snapshot(path: Path, tables: Iterable[str] | None = None, noviews: bool = False) -> Schema:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return schema_from_dict(data, tables, noviews)


def column_to_dict(column: Column) -> dict:
    out: dict = {
        "name": column.name,
        "position": column.position,
        "nullable": column.nullable,
        "type": column.type_name,
    }
    for key in ("length", "precision", "scale", "default"):
        value = getattr(column, key)
        if value is not None:
            out[key] = value
    if column.identity is not None:
        ident = column.identity
        out["identity"] = {
            "start": ident.start,
            "increment": ident.increment,
            "min": ident.min_value,
            "max": ident.max_value,
            "cycle": ident.cycle,
            "cache": ident.cache,
        }
    if column.comment is not None:
        out["comment"] = column.comment
    if column.collation is not None:
        out["collation"] = column.collation
    return out


def constraint_to_dict(constraint: Constraint) -> dict:
    out: dict = {"name": constraint.name, "kind": constraint.kind, "columns": list(constraint.columns)}
    fk = constraint.foreign_key
    if fk is not None:
        out["foreign_key"] = {
            "schema": fk.ref_schema,
            "table": fk.ref_table,
            "columns": list(fk.ref_columns),
            "update_rule": fk.update_rule,
            "delete_rule": fk.delete_rule,
        }
    return out


def table_to_dict(table: Table) -> dict:
    out: dict = {"schema": table.schema, "name": table.name, "kind": table.kind}
    if table.comment is not None:
        out["comment"] = table.comment
    out["columns"] = [column_to_dict(column) for column in table.columns]
    out["constraints"] = [constraint_to_dict(constraint) for constraint in table.constraints]
    out["indexes"] = [
        {"name": index.name, "unique": index.unique, "columns": list(index.columns)} for index in table.indexes
    ]
    return out


def schema_to_dict(schema: Schema) -> dict:
    return {"dialect": schema.dialect, "tables": [table_to_dict(table) for table in schema.tables]}


def dump_snapshot(schema: Schema) -> str:
    return yaml.safe_dump(schema_to_dict(schema), sort_keys=False, allow_unicode=True, default_flow_style=False)
