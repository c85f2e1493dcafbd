"""Per-dialect behaviour gathered behind one descriptor consumed by the generators."""

from __future__ import annotations

import dataclasses
from typing import Callable

import defaults
import typemap
from schema_model import Column, Identity
from typemap import TypeDescriptor, TypeRule

POSTGRESQL = "postgresql"
MSSQL = "mssql"

POSTGRESQL_IDENTITY_ARGS = ("start", "increment", "minvalue", "maxvalue", "cycle", "cache")
MSSQL_IDENTITY_ARGS = ("start", "increment")


@dataclasses.dataclass(frozen=True)
class DialectDescriptor:
    name: str
    default_schema: str
    identity_args: tuple[str, ...]
    strip_default: Callable[[str], str]
    is_sequence_default: Callable[[str], bool]
    catalogue: dict[str, TypeRule]
    array_prefix: str | None = None

    def map_type(self, column: Column) -> TypeDescriptor:
        return typemap.map_column_type(column, self.catalogue, self.array_prefix)

    def normalize_default(self, expr: str) -> str | None:
        """Cleaned default text, or None when the default comes from a sequence."""
        if self.is_sequence_default(expr):
            return None
        return self.strip_default(expr)

    def render_identity(self, identity: Identity) -> str:
        values = {
            "start": identity.start,
            "increment": identity.increment,
            "minvalue": identity.min_value,
            "maxvalue": identity.max_value,
            "cycle": identity.cycle,
            "cache": identity.cache,
        }
        args = ", ".join(f"{arg}={values[arg]}" for arg in self.identity_args)
        return f"Identity({args})"


DIALECTS: dict[str, DialectDescriptor] = {
    POSTGRESQL: DialectDescriptor(
        name=POSTGRESQL,
        default_schema="public",
        identity_args=POSTGRESQL_IDENTITY_ARGS,
        strip_default=defaults.strip_typecast,
        is_sequence_default=defaults.is_sequence_call,
        catalogue=typemap.POSTGRESQL_CATALOGUE,
        array_prefix="_",
    ),
    MSSQL: DialectDescriptor(
        name=MSSQL,
        default_schema="dbo",
        identity_args=MSSQL_IDENTITY_ARGS,
        strip_default=defaults.strip_wrapping_parens,
        is_sequence_default=defaults.never,
        catalogue=typemap.MSSQL_CATALOGUE,
    ),
}

ALIASES = {
    "postgres": POSTGRESQL,
    "pg": POSTGRESQL,
    "sqlserver": MSSQL,
}


def get_dialect(name: str) -> DialectDescriptor:
    key = ALIASES.get(name.lower(), name.lower())
    try:
        return DIALECTS[key]
    except KeyError:
        raise ValueError(f"Unsupported dialect: {name}") from None
