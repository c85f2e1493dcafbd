"""Map native column types to SQLAlchemy type expressions and Python value types."""

from __future__ import annotations

import dataclasses
from typing import Callable

from schema_model import Column

SQLALCHEMY = "sqlalchemy"
POSTGRESQL_TYPES = "sqlalchemy.dialects.postgresql"
MSSQL_TYPES = "sqlalchemy.dialects.mssql"


@dataclasses.dataclass(frozen=True)
class TypeDescriptor:
    expression: str
    python_type: str
    module: str
    symbol: str
    element: TypeDescriptor | None = None


TypeRule = Callable[[Column], TypeDescriptor]


def fixed(symbol: str, python_type: str, module: str = SQLALCHEMY) -> TypeRule:
    descriptor = TypeDescriptor(symbol, python_type, module, symbol)

    def rule(column: Column) -> TypeDescriptor:
        return descriptor

    return rule


def with_expression(expression: str, symbol: str, python_type: str, module: str = SQLALCHEMY) -> TypeRule:
    descriptor = TypeDescriptor(expression, python_type, module, symbol)

    def rule(column: Column) -> TypeDescriptor:
        return descriptor

    return rule


def numeric(column: Column) -> TypeDescriptor:
    if column.precision is not None and column.scale is not None:
        expression = f"Numeric({column.precision}, {column.scale})"
    elif column.precision is not None:
        expression = f"Numeric({column.precision})"
    else:
        expression = "Numeric"
    return TypeDescriptor(expression, "decimal.Decimal", SQLALCHEMY, "Numeric")


def sized(symbol: str) -> TypeRule:
    def rule(column: Column) -> TypeDescriptor:
        expression = f"{symbol}({column.length})" if column.length is not None else symbol
        return TypeDescriptor(expression, "str", SQLALCHEMY, symbol)

    return rule


def collated(symbol: str) -> TypeRule:
    """String(50, 'collation') / String(collation='collation'), as sqlacodegen renders them."""

    def rule(column: Column) -> TypeDescriptor:
        length, collation = column.length, column.collation
        if length is not None and collation:
            expression = f"{symbol}({length}, '{collation}')"
        elif length is not None:
            expression = f"{symbol}({length})"
        elif collation:
            expression = f"{symbol}(collation='{collation}')"
        else:
            expression = symbol
        return TypeDescriptor(expression, "str", SQLALCHEMY, symbol)

    return rule


POSTGRESQL_CATALOGUE: dict[str, TypeRule] = {
    "bool": fixed("Boolean", "bool"),
    "int2": fixed("SmallInteger", "int"),
    "int4": fixed("Integer", "int"),
    "serial": fixed("Integer", "int"),
    "int8": fixed("BigInteger", "int"),
    "bigserial": fixed("BigInteger", "int"),
    "float4": fixed("Float", "float"),
    "float8": fixed("Double", "float"),
    "numeric": numeric,
    "text": fixed("Text", "str"),
    "varchar": sized("String"),
    "char": sized("String"),
    "bpchar": sized("String"),
    "bytea": fixed("LargeBinary", "bytes"),
    "timestamp": fixed("DateTime", "datetime.datetime"),
    "timestamptz": with_expression("DateTime(timezone=True)", "DateTime", "datetime.datetime"),
    "date": fixed("Date", "datetime.date"),
    "time": fixed("Time", "datetime.time"),
    "timetz": with_expression("Time(timezone=True)", "Time", "datetime.time"),
    "interval": fixed("Interval", "datetime.timedelta"),
    "uuid": fixed("UUID", "uuid.UUID", POSTGRESQL_TYPES),
    "json": fixed("JSON", "dict", POSTGRESQL_TYPES),
    "jsonb": fixed("JSONB", "dict", POSTGRESQL_TYPES),
    "inet": fixed("INET", "str", POSTGRESQL_TYPES),
    "cidr": fixed("CIDR", "str", POSTGRESQL_TYPES),
}

MSSQL_CATALOGUE: dict[str, TypeRule] = {
    "bit": fixed("Boolean", "bool"),
    "tinyint": fixed("TINYINT", "int", MSSQL_TYPES),
    "smallint": fixed("SmallInteger", "int"),
    "int": fixed("Integer", "int"),
    "bigint": fixed("BigInteger", "int"),
    "real": fixed("Float", "float"),
    "float": fixed("Double", "float"),
    "decimal": numeric,
    "numeric": numeric,
    "money": with_expression("Numeric(19, 4)", "Numeric", "decimal.Decimal"),
    "smallmoney": with_expression("Numeric(10, 4)", "Numeric", "decimal.Decimal"),
    "varchar": collated("String"),
    "char": collated("String"),
    "nvarchar": collated("Unicode"),
    "nchar": collated("Unicode"),
    "text": fixed("Text", "str"),
    "ntext": fixed("UnicodeText", "str"),
    "binary": fixed("LargeBinary", "bytes"),
    "varbinary": fixed("LargeBinary", "bytes"),
    "image": fixed("LargeBinary", "bytes"),
    "datetime": fixed("DateTime", "datetime.datetime"),
    "datetime2": fixed("DateTime", "datetime.datetime"),
    "smalldatetime": fixed("DateTime", "datetime.datetime"),
    "datetimeoffset": with_expression("DateTime(timezone=True)", "DateTime", "datetime.datetime"),
    "date": fixed("Date", "datetime.date"),
    "time": fixed("Time", "datetime.time"),
    "uniqueidentifier": fixed("UNIQUEIDENTIFIER", "str", MSSQL_TYPES),
}


def fallback(type_name: str) -> TypeDescriptor:
    symbol = type_name.upper()
    return TypeDescriptor(symbol, "str", SQLALCHEMY, symbol)


def map_scalar(type_name: str, column: Column, catalogue: dict[str, TypeRule]) -> TypeDescriptor:
    rule = catalogue.get(type_name)
    if rule is None:
        return fallback(type_name)
    return rule(column)


def map_column_type(
    column: Column,
    catalogue: dict[str, TypeRule],
    array_prefix: str | None = None,
) -> TypeDescriptor:
    type_name = column.type_name
    if array_prefix and type_name.startswith(array_prefix) and len(type_name) > len(array_prefix):
        element = map_scalar(type_name[len(array_prefix) :], column, catalogue)
        return TypeDescriptor(
            expression=f"ARRAY({element.expression})",
            python_type=f"list[{element.python_type}]",
            module=SQLALCHEMY,
            symbol="ARRAY",
            element=element,
        )
    return map_scalar(type_name, column, catalogue)


def catalogue_symbols(*catalogues: dict[str, TypeRule]) -> set[str]:
    """Every symbol a catalogue may import; used to keep generated names from shadowing them."""
    probe = Column(name="probe", position=1, nullable=False, type_name="probe")
    symbols = {"ARRAY"}
    for catalogue in catalogues:
        for rule in catalogue.values():
            symbols.add(rule(probe).symbol)
    return symbols
