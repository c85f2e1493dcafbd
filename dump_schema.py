#!/usr/bin/env python3
"""Dump a PostgreSQL schema to a YAML snapshot for generate_models.py.

Runs catalog queries through psql (COPY ... TO STDOUT as CSV), so the only
requirement on the machine is a PostgreSQL client.

Usage:
    python dump_schema.py --dbname app --schema public --out snapshot.yaml
    PGPASS_APP=... python dump_schema.py --dsn postgresql://app@db/app --password-env PGPASS_APP
"""

from __future__ import annotations

import argparse
import csv
import io
import os
import shutil
import subprocess
import sys
from collections import defaultdict
from pathlib import Path
from typing import Sequence

from dialects import POSTGRESQL
from schema_model import (
    FOREIGN_KEY,
    PRIMARY_KEY,
    TABLE,
    UNIQUE,
    VIEW,
    Column,
    Constraint,
    ForeignKey,
    Identity,
    Index,
    Schema,
    Table,
)
from schema_snapshot import dump_snapshot, select_tables

TableKey = tuple[str, str]

FK_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

CONSTRAINT_TYPES = {"p": PRIMARY_KEY, "u": UNIQUE, "f": FOREIGN_KEY}


def fail(message: str, code: int = 1) -> SystemExit:
    print(f"[dump] {message}", file=sys.stderr)
    return SystemExit(code)


def sql_string_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def csv_copy_sql(select_sql: str) -> str:
    return f"COPY (\n{select_sql}\n) TO STDOUT WITH (FORMAT csv, HEADER false)"


def schema_predicate(column: str, schemas: Sequence[str]) -> str:
    return f"{column} IN ({', '.join(sql_string_literal(s) for s in schemas)})"


def build_conn_args(dsn: str | None, host: str | None, port: int | None, dbname: str | None, user: str | None) -> list[str]:
    if dsn:
        return ["--dbname", dsn]
    args: list[str] = []
    if host:
        args += ["--host", host]
    if port:
        args += ["--port", str(port)]
    if dbname:
        args += ["--dbname", dbname]
    if user:
        args += ["--username", user]
    return args


def psql_env(password_env: str | None) -> dict[str, str]:
    """Environment for psql; the password is read from the named variable and never printed."""
    env = dict(os.environ)
    if password_env:
        if password_env not in os.environ:
            raise fail(f"--password-env names {password_env}, which is not set", 2)
        env["PGPASSWORD"] = os.environ[password_env]
    return env


class Psql:
    def __init__(self, conn_args: list[str], env: dict[str, str], executable: str = "psql") -> None:
        path = shutil.which(executable)
        if not path:
            raise fail(f"{executable} not found on PATH", 127)
        self.path = path
        self.conn_args = conn_args
        self.env = env

    def copy_rows(self, select_sql: str) -> list[list[str]]:
        cmd = [self.path, "-X", "-v", "ON_ERROR_STOP=1", "-q", *self.conn_args, "-c", csv_copy_sql(select_sql)]
        try:
            proc = subprocess.run(cmd, env=self.env, capture_output=True, text=True, encoding="utf-8", check=False)
        except OSError as exc:
            raise fail(f"failed to execute psql: {exc}", 127) from exc
        if proc.returncode != 0:
            raise fail(f"psql failed (exit {proc.returncode}): {proc.stderr.strip()}", proc.returncode)
        # Quoted fields may span lines.
        return list(csv.reader(io.StringIO(proc.stdout, newline="")))


def tables_sql(schemas: Sequence[str]) -> str:
    return f"""
        SELECT t.table_schema, t.table_name, t.table_type,
               COALESCE(obj_description((quote_ident(t.table_schema) || '.' || quote_ident(t.table_name))::regclass), '')
        FROM information_schema.tables t
        WHERE {schema_predicate('t.table_schema', schemas)}
          AND t.table_type IN ('BASE TABLE', 'VIEW')
        ORDER BY t.table_schema, t.table_name
    """


def columns_sql(schemas: Sequence[str]) -> str:
    return f"""
        SELECT c.table_schema, c.table_name, c.column_name, c.ordinal_position,
               CASE WHEN c.is_nullable = 'YES' THEN 't' ELSE 'f' END,
               c.udt_name, c.character_maximum_length, c.numeric_precision, c.numeric_scale,
               c.column_default,
               CASE WHEN c.is_identity = 'YES' THEN 't' ELSE 'f' END,
               col_description((quote_ident(c.table_schema) || '.' || quote_ident(c.table_name))::regclass,
                               c.ordinal_position),
               c.collation_name
        FROM information_schema.columns c
        WHERE {schema_predicate('c.table_schema', schemas)}
        ORDER BY c.table_schema, c.table_name, c.ordinal_position
    """


def identities_sql(schemas: Sequence[str]) -> str:
    return f"""
        SELECT ns.nspname, c.relname, a.attname,
               s.seqstart, s.seqincrement, s.seqmin, s.seqmax,
               CASE WHEN s.seqcycle THEN 't' ELSE 'f' END, s.seqcache
        FROM pg_attribute a
        JOIN pg_class c ON c.oid = a.attrelid
        JOIN pg_namespace ns ON ns.oid = c.relnamespace
        JOIN pg_sequence s
          ON s.seqrelid = pg_get_serial_sequence(quote_ident(ns.nspname) || '.' || quote_ident(c.relname),
                                                 a.attname)::regclass
        WHERE {schema_predicate('ns.nspname', schemas)}
          AND a.attidentity <> ''
          AND NOT a.attisdropped
        ORDER BY ns.nspname, c.relname, a.attnum
    """


def constraints_sql(schemas: Sequence[str]) -> str:
    return f"""
        WITH cons AS (
          SELECT con.oid, ns.nspname, c.relname, con.conname, con.contype,
                 con.conrelid, con.confrelid, con.conkey, con.confkey, con.confupdtype, con.confdeltype
          FROM pg_constraint con
          JOIN pg_class c ON c.oid = con.conrelid
          JOIN pg_namespace ns ON ns.oid = c.relnamespace
          WHERE {schema_predicate('ns.nspname', schemas)}
            AND con.contype IN ('p', 'u', 'f')
        )
        SELECT cons.nspname, cons.relname, cons.conname, cons.contype,
               (SELECT string_agg(a.attname, ',' ORDER BY k.ord)
                  FROM unnest(cons.conkey) WITH ORDINALITY AS k(attnum, ord)
                  JOIN pg_attribute a ON a.attrelid = cons.conrelid AND a.attnum = k.attnum),
               COALESCE(rns.nspname, ''), COALESCE(rc.relname, ''),
               COALESCE((SELECT string_agg(a.attname, ',' ORDER BY k.ord)
                  FROM unnest(cons.confkey) WITH ORDINALITY AS k(attnum, ord)
                  JOIN pg_attribute a ON a.attrelid = cons.confrelid AND a.attnum = k.attnum), ''),
               cons.confupdtype, cons.confdeltype
        FROM cons
        LEFT JOIN pg_class rc ON rc.oid = cons.confrelid
        LEFT JOIN pg_namespace rns ON rns.oid = rc.relnamespace
        ORDER BY cons.nspname, cons.relname, cons.conname
    """


def indexes_sql(schemas: Sequence[str]) -> str:
    return f"""
        SELECT ns.nspname, tbl.relname, ic.relname,
               CASE WHEN i.indisunique THEN 't' ELSE 'f' END,
               CASE WHEN i.indexprs IS NOT NULL THEN 't' ELSE 'f' END,
               (SELECT string_agg(a.attname, ',' ORDER BY k.ord)
                  FROM unnest(i.indkey) WITH ORDINALITY AS k(attnum, ord)
                  JOIN pg_attribute a ON a.attrelid = tbl.oid AND a.attnum = k.attnum)
        FROM pg_index i
        JOIN pg_class ic ON ic.oid = i.indexrelid
        JOIN pg_class tbl ON tbl.oid = i.indrelid
        JOIN pg_namespace ns ON ns.oid = tbl.relnamespace
        WHERE {schema_predicate('ns.nspname', schemas)}
          AND NOT i.indisprimary
        ORDER BY ns.nspname, tbl.relname, ic.relname
    """


def _pad(row: list[str], width: int) -> list[str]:
    return (row + [""] * width)[:width]


def _int_or_none(value: str) -> int | None:
    return int(value) if value else None


def _split_names(value: str) -> tuple[str, ...]:
    return tuple(name for name in value.split(",") if name)


def parse_identities(rows: list[list[str]]) -> dict[tuple[str, str, str], Identity]:
    identities = {}
    for row in rows:
        schema, table, column, start, increment, min_value, max_value, cycle, cache = _pad(row, 9)
        identities[(schema, table, column)] = Identity(
            start=int(start),
            increment=int(increment),
            min_value=int(min_value),
            max_value=int(max_value),
            cycle=cycle == "t",
            cache=int(cache),
        )
    return identities


def parse_columns(
    rows: list[list[str]], identities: dict[tuple[str, str, str], Identity]
) -> dict[TableKey, list[Column]]:
    by_table: dict[TableKey, list[Column]] = defaultdict(list)
    for row in rows:
        (schema, table, name, position, nullable, udt_name, length, precision, scale,
         default, is_identity, comment, collation) = _pad(row, 13)
        by_table[(schema, table)].append(
            Column(
                name=name,
                position=int(position),
                nullable=nullable == "t",
                type_name=udt_name,
                length=_int_or_none(length),
                precision=_int_or_none(precision),
                scale=_int_or_none(scale),
                default=default or None,
                is_identity=is_identity == "t",
                identity=identities.get((schema, table, name)),
                comment=comment or None,
                collation=collation or None,
            )
        )
    return by_table


def parse_constraints(rows: list[list[str]]) -> dict[TableKey, list[Constraint]]:
    by_table: dict[TableKey, list[Constraint]] = defaultdict(list)
    for row in rows:
        (schema, table, name, contype, columns, ref_schema, ref_table, ref_columns,
         update_code, delete_code) = _pad(row, 10)
        kind = CONSTRAINT_TYPES.get(contype)
        if kind is None:
            continue
        foreign_key = None
        if kind == FOREIGN_KEY:
            foreign_key = ForeignKey(
                ref_schema=ref_schema,
                ref_table=ref_table,
                ref_columns=_split_names(ref_columns),
                update_rule=FK_ACTIONS.get(update_code, "NO ACTION"),
                delete_rule=FK_ACTIONS.get(delete_code, "NO ACTION"),
            )
        by_table[(schema, table)].append(
            Constraint(name=name, kind=kind, columns=_split_names(columns), foreign_key=foreign_key)
        )
    return by_table


def parse_indexes(rows: list[list[str]]) -> dict[TableKey, list[Index]]:
    by_table: dict[TableKey, list[Index]] = defaultdict(list)
    for row in rows:
        schema, table, name, unique, has_expr, columns = _pad(row, 6)
        names = _split_names(columns)
        # Expression indexes have no plain column list to render.
        if has_expr == "t" or not names:
            continue
        by_table[(schema, table)].append(Index(name=name, unique=unique == "t", columns=names))
    return by_table


def build_schema(
    table_rows: list[list[str]],
    column_rows: list[list[str]],
    identity_rows: list[list[str]],
    constraint_rows: list[list[str]],
    index_rows: list[list[str]],
) -> Schema:
    columns = parse_columns(column_rows, parse_identities(identity_rows))
    constraints = parse_constraints(constraint_rows)
    indexes = parse_indexes(index_rows)

    tables = []
    for row in table_rows:
        schema, name, table_type, comment = _pad(row, 4)
        key = (schema, name)
        tables.append(
            Table(
                schema=schema,
                name=name,
                kind=VIEW if table_type == "VIEW" else TABLE,
                comment=comment or None,
                columns=tuple(sorted(columns.get(key, []), key=lambda c: c.position)),
                constraints=tuple(constraints.get(key, [])),
                indexes=tuple(indexes.get(key, [])),
            )
        )
    tables.sort(key=lambda t: (t.name, t.schema))
    return Schema(dialect=POSTGRESQL, tables=tuple(tables))


def introspect(psql: Psql, schemas: Sequence[str], verbose: bool = False) -> Schema:
    steps = [
        ("tables", tables_sql),
        ("columns", columns_sql),
        ("identities", identities_sql),
        ("constraints", constraints_sql),
        ("indexes", indexes_sql),
    ]
    results = []
    for i, (label, query) in enumerate(steps, 1):
        if verbose:
            print(f"[dump] [{i}/{len(steps)}] {label}", file=sys.stderr, flush=True)
        results.append(psql.copy_rows(query(schemas)))
    return build_schema(*results)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dump a PostgreSQL schema to a YAML snapshot")
    parser.add_argument("--dsn", help="Connection string passed to psql --dbname")
    parser.add_argument("--host", help="Database host")
    parser.add_argument("--port", type=int, help="Database port")
    parser.add_argument("--dbname", help="Database name")
    parser.add_argument("--user", help="Database user")
    parser.add_argument("--password-env", help="Name of the environment variable holding the password")
    parser.add_argument("--schema", action="append", dest="schemas", help="Schema to dump (repeatable, default: public)")
    parser.add_argument("--tables", help="Comma-delimited table names to keep")
    parser.add_argument("--noviews", action="store_true", help="Skip views")
    parser.add_argument("--out", default="-", help="Snapshot path (default: stdout)")
    parser.add_argument("--verbose", action="store_true", help="Print progress to stderr")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    schemas = args.schemas or ["public"]

    psql = Psql(build_conn_args(args.dsn, args.host, args.port, args.dbname, args.user), psql_env(args.password_env))
    schema = introspect(psql, schemas, verbose=args.verbose)

    names = [name.strip() for name in args.tables.split(",") if name.strip()] if args.tables else None
    schema = Schema(dialect=schema.dialect, tables=tuple(select_tables(schema.tables, names, args.noviews)))

    snapshot = dump_snapshot(schema)
    if args.out == "-":
        sys.stdout.write(snapshot)
    else:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(snapshot, encoding="utf-8")
        print(f"[dump] {len(schema.tables)} tables written to {out}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
