"""Render a Schema as SQLAlchemy model source code.

Two strategies are available:

* ``declarative`` renders one ``DeclarativeBase`` subclass per table with a
  primary key and falls back to a ``Table`` bound to ``Base.metadata`` for
  tables without one.
* ``tables`` renders every table as a ``Table`` bound to a shared ``MetaData``.

Generation is a pure function of the Schema and the options; all mutable
state (collected imports, names taken so far) lives in a ``Run`` created by
``generate()`` and dropped when it returns.
"""

from __future__ import annotations

import dataclasses
from abc import ABCMeta, abstractmethod

import naming
import typemap
from dialects import DialectDescriptor, get_dialect
from import_collector import ImportCollector
from naming import py_str, py_str_list
from schema_model import Column, Constraint, Index, Schema, Table, index_backs_unique_constraint
from toposort import sort_tables
from typemap import SQLALCHEMY, TypeDescriptor

ORM = "sqlalchemy.orm"
INDENT = "    "

VALID_OPTIONS = ("noindexes", "noconstraints", "nocomments")

CONSTRUCT_SYMBOLS = {
    "Base",
    "Column",
    "DeclarativeBase",
    "ForeignKey",
    "ForeignKeyConstraint",
    "Identity",
    "Index",
    "Mapped",
    "MetaData",
    "Optional",
    "PrimaryKeyConstraint",
    "Table",
    "UniqueConstraint",
    "datetime",
    "decimal",
    "mapped_column",
    "metadata",
    "text",
    "uuid",
}


@dataclasses.dataclass(frozen=True)
class GeneratorOptions:
    noindexes: bool = False
    noconstraints: bool = False
    nocomments: bool = False


@dataclasses.dataclass(frozen=True)
class Strategy:
    name: str
    # Single-column foreign key / unique constraints become column arguments
    # instead of table-level constraint objects.
    inline_single_column_constraints: bool


@dataclasses.dataclass
class Run:
    dialect: DialectDescriptor
    options: GeneratorOptions
    metadata_ref: str
    imports: ImportCollector = dataclasses.field(default_factory=ImportCollector)
    global_names: set[str] = dataclasses.field(default_factory=set)


def value_type_modules(descriptor: TypeDescriptor) -> set[str]:
    scalar = descriptor.element or descriptor
    if "." in scalar.python_type:
        return {scalar.python_type.split(".", 1)[0]}
    return set()


def add_type_imports(run: Run, descriptor: TypeDescriptor) -> None:
    run.imports.add(descriptor.module, descriptor.symbol)
    if descriptor.element is not None:
        run.imports.add(descriptor.element.module, descriptor.element.symbol)


def reserved_names(schema: Schema, dialect: DialectDescriptor) -> set[str]:
    """Names generated models must not shadow: anything the module may import or declare."""
    names = set(CONSTRUCT_SYMBOLS) | typemap.catalogue_symbols(dialect.catalogue)
    for table in schema.tables:
        for column in table.columns:
            descriptor = dialect.map_type(column)
            names.add(descriptor.symbol)
            if descriptor.element is not None:
                names.add(descriptor.element.symbol)
    return names


def join_args(args: list[str]) -> str:
    return ", ".join(args)


def render_block(opening: str, items: list[str], closing: str, indentation: str) -> str:
    body = ",\n".join(indentation + item for item in items)
    return f"{opening}\n{body}\n{closing}"


class CodeGenerator(metaclass=ABCMeta):
    strategy: Strategy

    @abstractmethod
    def generate(self, schema: Schema, options: GeneratorOptions | None = None) -> str:
        pass


class TablesGenerator(CodeGenerator):
    strategy = Strategy(name="tables", inline_single_column_constraints=False)

    def generate(self, schema: Schema, options: GeneratorOptions | None = None) -> str:
        run = Run(
            dialect=get_dialect(schema.dialect),
            options=options or GeneratorOptions(),
            metadata_ref="metadata",
        )
        run.global_names = reserved_names(schema, run.dialect)
        run.imports.add(SQLALCHEMY, "MetaData")

        blocks = [self.render_table(run, table) for table in sort_tables(schema.tables)]
        return self.assemble(run, "metadata = MetaData()", blocks, "\n\n")

    def assemble(self, run: Run, declaration: str, blocks: list[str], separator: str) -> str:
        output = run.imports.render() + "\n\n" + declaration
        if blocks:
            output += "\n\n\n" + separator.join(blocks)
        return output + "\n"

    # Columns

    def render_column_args(self, run: Run, table: Table, column: Column) -> list[str]:
        dialect, options = run.dialect, run.options
        inline = self.strategy.inline_single_column_constraints

        descriptor = dialect.map_type(column)
        add_type_imports(run, descriptor)

        is_pk = column.name in table.primary_key_columns()
        args = [descriptor.expression]

        if inline and not options.noconstraints:
            constraint = table.single_column_foreign_key(column.name)
            if constraint is not None:
                run.imports.add(SQLALCHEMY, "ForeignKey")
                args.append(self.render_foreign_key(run, constraint))

        if column.identity is not None:
            run.imports.add(SQLALCHEMY, "Identity")
            args.append(dialect.render_identity(column.identity))

        if not column.nullable and not is_pk:
            args.append("nullable=False")

        if is_pk:
            args.append("primary_key=True")

        if inline and not options.noconstraints and table.has_single_column_unique(column.name):
            args.append("unique=True")

        if column.default:
            cleaned = dialect.normalize_default(column.default)
            if cleaned is not None:
                run.imports.add(SQLALCHEMY, "text")
                args.append(f"server_default=text({py_str(cleaned)})")

        if column.comment and not options.nocomments:
            args.append(f"comment={py_str(column.comment)}")

        return args

    # Constraints

    def referenced_column(self, run: Run, schema: str, table: str, column: str) -> str:
        if schema and schema != run.dialect.default_schema:
            return f"{schema}.{table}.{column}"
        return f"{table}.{column}"

    def fk_rule_kwargs(self, constraint: Constraint) -> list[str]:
        fk = constraint.foreign_key
        kwargs = []
        if fk.delete_rule and fk.delete_rule.upper() != "NO ACTION":
            kwargs.append(f"ondelete={py_str(fk.delete_rule.upper())}")
        if fk.update_rule and fk.update_rule.upper() != "NO ACTION":
            kwargs.append(f"onupdate={py_str(fk.update_rule.upper())}")
        return kwargs

    def render_foreign_key(self, run: Run, constraint: Constraint) -> str:
        fk = constraint.foreign_key
        target = self.referenced_column(run, fk.ref_schema, fk.ref_table, fk.ref_columns[0])
        return f"ForeignKey({join_args([py_str(target)] + self.fk_rule_kwargs(constraint))})"

    def render_foreign_key_constraint(self, run: Run, constraint: Constraint) -> str:
        fk = constraint.foreign_key
        targets = [self.referenced_column(run, fk.ref_schema, fk.ref_table, col) for col in fk.ref_columns]
        args = [py_str_list(constraint.columns), py_str_list(targets)]
        args.extend(self.fk_rule_kwargs(constraint))
        args.append(f"name={py_str(constraint.name)}")
        return f"ForeignKeyConstraint({join_args(args)})"

    def render_index(self, index: Index) -> str:
        args = [py_str(index.name)] + [py_str(col) for col in index.columns]
        if index.unique:
            args.append("unique=True")
        return f"Index({join_args(args)})"

    def render_table_level_args(self, run: Run, table: Table) -> list[str]:
        """Primary key, foreign keys, unique constraints, then indexes."""
        inline = self.strategy.inline_single_column_constraints
        args: list[str] = []

        if not run.options.noconstraints:
            pk = table.primary_key()
            if pk is not None:
                run.imports.add(SQLALCHEMY, "PrimaryKeyConstraint")
                columns = [py_str(col) for col in pk.columns]
                args.append(f"PrimaryKeyConstraint({join_args(columns + [f'name={py_str(pk.name)}'])})")

            for constraint in sorted(table.foreign_keys(), key=lambda c: c.name):
                if inline and len(constraint.columns) == 1:
                    continue
                run.imports.add(SQLALCHEMY, "ForeignKeyConstraint")
                args.append(self.render_foreign_key_constraint(run, constraint))

            for constraint in sorted(table.unique_constraints(), key=lambda c: c.name):
                if inline and len(constraint.columns) == 1:
                    continue
                run.imports.add(SQLALCHEMY, "UniqueConstraint")
                args.append(f"UniqueConstraint({join_args([py_str(col) for col in constraint.columns])})")

        if not run.options.noindexes:
            for index in sorted(table.indexes, key=lambda i: i.name):
                if index_backs_unique_constraint(index, table.constraints):
                    continue
                run.imports.add(SQLALCHEMY, "Index")
                args.append(self.render_index(index))

        return args

    def table_options(self, run: Run, table: Table) -> list[tuple[str, str]]:
        """(key, literal) pairs for the table comment and a non-default schema."""
        entries = []
        if table.comment and not run.options.nocomments:
            entries.append(("comment", py_str(table.comment)))
        if table.schema and table.schema != run.dialect.default_schema:
            entries.append(("schema", py_str(table.schema)))
        return entries

    # Tables

    def render_table(self, run: Run, table: Table) -> str:
        run.imports.add(SQLALCHEMY, "Table")
        run.imports.add(SQLALCHEMY, "Column")

        name = naming.find_free_name(naming.table_variable_name(table.name), run.global_names)
        run.global_names.add(name)

        items = [f"{py_str(table.name)}, {run.metadata_ref}"]
        for column in table.columns:
            args = [py_str(column.name)] + self.render_column_args(run, table, column)
            items.append(f"Column({join_args(args)})")
        items.extend(self.render_table_level_args(run, table))
        items.extend(f"{key}={value}" for key, value in self.table_options(run, table))

        return render_block(f"{name} = Table(", items, ")", INDENT)


class DeclarativeGenerator(TablesGenerator):
    strategy = Strategy(name="declarative", inline_single_column_constraints=True)
    base_class_name = "Base"

    def generate(self, schema: Schema, options: GeneratorOptions | None = None) -> str:
        dialect = get_dialect(schema.dialect)
        has_classes = any(table.primary_key() is not None for table in schema.tables)

        run = Run(
            dialect=dialect,
            options=options or GeneratorOptions(),
            metadata_ref=f"{self.base_class_name}.metadata" if has_classes else "metadata",
        )
        run.global_names = reserved_names(schema, dialect)

        if has_classes:
            run.imports.add(ORM, "DeclarativeBase")
            run.imports.add(ORM, "Mapped")
            run.imports.add(ORM, "mapped_column")
            declaration = f"class {self.base_class_name}(DeclarativeBase):\n{INDENT}pass"
        else:
            run.imports.add(SQLALCHEMY, "MetaData")
            declaration = "metadata = MetaData()"

        blocks = []
        for table in sort_tables(schema.tables):
            if table.primary_key() is not None:
                blocks.append(self.render_class(run, table))
            else:
                blocks.append(self.render_table(run, table))

        return self.assemble(run, declaration, blocks, "\n\n\n")

    def render_table_args(self, run: Run, table: Table) -> str | None:
        args = self.render_table_level_args(run, table)
        entries = self.table_options(run, table)
        if entries:
            args.append("{" + ", ".join(f"{py_str(key)}: {value}" for key, value in entries) + "}")
        if not args:
            return None

        rendered = ",\n".join(INDENT * 2 + arg for arg in args)
        if len(args) == 1:
            rendered += ","
        return f"__table_args__ = (\n{rendered}\n{INDENT})"

    def render_annotation(self, run: Run, table: Table, column: Column) -> str:
        descriptor = run.dialect.map_type(column)
        for module in value_type_modules(descriptor):
            run.imports.add_bare(module)

        annotation = descriptor.python_type
        if column.nullable and column.name not in table.primary_key_columns():
            run.imports.add("typing", "Optional")
            annotation = f"Optional[{annotation}]"
        return annotation

    def ordered_columns(self, table: Table) -> list[Column]:
        """Primary key columns, then required columns, then nullable ones; ordinal order within each."""
        pk_columns = table.primary_key_columns()
        primary = [c for c in table.columns if c.name in pk_columns]
        required = [c for c in table.columns if c.name not in pk_columns and not c.nullable]
        optional = [c for c in table.columns if c.name not in pk_columns and c.nullable]
        return primary + required + optional

    def render_class(self, run: Run, table: Table) -> str:
        name = naming.find_free_name(naming.class_name(table.name), run.global_names)
        run.global_names.add(name)

        lines = [f"class {name}({self.base_class_name}):", f"{INDENT}__tablename__ = {py_str(table.name)}"]
        table_args = self.render_table_args(run, table)
        if table_args:
            lines.append(INDENT + table_args)
        lines.append("")

        local_names: set[str] = set()
        for column in self.ordered_columns(table):
            attr = naming.find_free_name(column.name, run.global_names, local_names)
            local_names.add(attr)

            args = self.render_column_args(run, table, column)
            if attr != column.name:
                args.insert(0, py_str(column.name))
            annotation = self.render_annotation(run, table, column)
            lines.append(f"{INDENT}{attr}: Mapped[{annotation}] = mapped_column({join_args(args)})")

        return "\n".join(lines)


GENERATORS: dict[str, type[CodeGenerator]] = {
    "declarative": DeclarativeGenerator,
    "tables": TablesGenerator,
}


def get_generator(name: str) -> CodeGenerator:
    try:
        return GENERATORS[name]()
    except KeyError:
        raise ValueError(f"Unknown generator: {name}") from None


def generate(schema: Schema, generator: str = "declarative", options: GeneratorOptions | None = None) -> str:
    return get_generator(generator).generate(schema, options)
