import os
import subprocess
import unittest
from unittest import mock

from dump_schema import Psql, build_conn_args, build_schema, csv_copy_sql, psql_env, sql_string_literal
from schema_model import FOREIGN_KEY, PRIMARY_KEY, UNIQUE, Identity

TABLE_ROWS = [
    ["public", "users", "BASE TABLE", "People"],
    ["public", "posts", "BASE TABLE", ""],
    ["public", "active_users", "VIEW", ""],
]

COLUMN_ROWS = [
    ["public", "users", "email", "2", "f", "varchar", "255", "", "", "", "f", "", ""],
    ["public", "users", "id", "1", "f", "int4", "", "32", "0", "", "t", "Surrogate key", ""],
    ["public", "posts", "id", "1", "f", "int8", "", "64", "0", "nextval('posts_id_seq'::regclass)", "f", "", ""],
    ["public", "posts", "user_id", "2", "t", "int4", "", "32", "0", "", "f", "", ""],
    ["public", "active_users", "id", "1", "t", "int4", "", "32", "0", "", "f", "", ""],
]

IDENTITY_ROWS = [
    ["public", "users", "id", "1", "1", "1", "2147483647", "f", "1"],
]

CONSTRAINT_ROWS = [
    ["public", "posts", "posts_pkey", "p", "id", "", "", "", "a", "a"],
    ["public", "posts", "posts_user_id_fkey", "f", "user_id", "public", "users", "id", "a", "c"],
    ["public", "users", "users_email_key", "u", "email", "", "", "", "a", "a"],
    ["public", "users", "users_pkey", "p", "id", "", "", "", "a", "a"],
]

INDEX_ROWS = [
    ["public", "users", "users_email_key", "t", "f", "email"],
    ["public", "users", "ix_users_lower_email", "f", "t", ""],
]


class TestBuildSchema(unittest.TestCase):
    def setUp(self) -> None:
        self.schema = build_schema(TABLE_ROWS, COLUMN_ROWS, IDENTITY_ROWS, CONSTRAINT_ROWS, INDEX_ROWS)
        self.tables = {t.name: t for t in self.schema.tables}

    def test_tables_sorted_by_name(self) -> None:
        self.assertEqual(self.schema.dialect, "postgresql")
        self.assertEqual([t.name for t in self.schema.tables], ["active_users", "posts", "users"])
        self.assertEqual(self.tables["active_users"].kind, "view")
        self.assertEqual(self.tables["users"].comment, "People")
        self.assertIsNone(self.tables["posts"].comment)

    def test_columns(self) -> None:
        users = self.tables["users"]
        self.assertEqual([c.name for c in users.columns], ["id", "email"])
        ident = users.columns[0]
        self.assertTrue(ident.is_identity)
        self.assertEqual(ident.identity, Identity())
        self.assertEqual(ident.comment, "Surrogate key")
        self.assertEqual(users.columns[1].length, 255)
        self.assertIsNone(users.columns[1].precision)

        posts = self.tables["posts"]
        self.assertEqual(posts.columns[0].default, "nextval('posts_id_seq'::regclass)")
        self.assertTrue(posts.columns[1].nullable)
        self.assertIsNone(posts.columns[1].identity)

    def test_constraints(self) -> None:
        kinds = {c.name: c.kind for c in self.tables["users"].constraints}
        self.assertEqual(kinds, {"users_email_key": UNIQUE, "users_pkey": PRIMARY_KEY})

        fk = next(c for c in self.tables["posts"].constraints if c.kind == FOREIGN_KEY)
        self.assertEqual(fk.columns, ("user_id",))
        self.assertEqual((fk.foreign_key.ref_schema, fk.foreign_key.ref_table), ("public", "users"))
        self.assertEqual(fk.foreign_key.ref_columns, ("id",))
        self.assertEqual(fk.foreign_key.delete_rule, "CASCADE")
        self.assertEqual(fk.foreign_key.update_rule, "NO ACTION")

    def test_expression_indexes_are_skipped(self) -> None:
        self.assertEqual([i.name for i in self.tables["users"].indexes], ["users_email_key"])
        self.assertTrue(self.tables["users"].indexes[0].unique)


class TestPsqlCopy(unittest.TestCase):
    def test_multiline_fields_keep_newlines(self) -> None:
        output = 'public,notes,BASE TABLE,"line one\nline two"\npublic,tags,BASE TABLE,\n'
        done = subprocess.CompletedProcess(args=[], returncode=0, stdout=output, stderr="")
        with mock.patch("dump_schema.shutil.which", return_value="/usr/bin/psql"):
            psql = Psql(["--dbname", "app"], {})
        with mock.patch("dump_schema.subprocess.run", return_value=done) as run:
            rows = psql.copy_rows("SELECT 1")

        self.assertEqual(rows, [["public", "notes", "BASE TABLE", "line one\nline two"], ["public", "tags", "BASE TABLE", ""]])
        self.assertIn("COPY (\nSELECT 1\n)", run.call_args.args[0][-1])

        schema = build_schema(rows, [], [], [], [])
        self.assertEqual(schema.tables[0].comment, "line one\nline two")
        self.assertIsNone(schema.tables[1].comment)


class TestPsqlHelpers(unittest.TestCase):
    def test_sql_string_literal(self) -> None:
        self.assertEqual(sql_string_literal("o'neil"), "'o''neil'")

    def test_csv_copy_sql(self) -> None:
        self.assertEqual(csv_copy_sql("SELECT 1"), "COPY (\nSELECT 1\n) TO STDOUT WITH (FORMAT csv, HEADER false)")

    def test_conn_args(self) -> None:
        self.assertEqual(build_conn_args("postgresql://db/app", "ignored", 5432, None, None), ["--dbname", "postgresql://db/app"])
        self.assertEqual(
            build_conn_args(None, "db", 5433, "app", "reader"),
            ["--host", "db", "--port", "5433", "--dbname", "app", "--username", "reader"],
        )

    def test_password_env(self) -> None:
        with mock.patch.dict(os.environ, {"APP_DB_PASSWORD": "secret"}):
            self.assertEqual(psql_env("APP_DB_PASSWORD")["PGPASSWORD"], "secret")

    def test_missing_password_env(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            with mock.patch("sys.stderr"):
                with self.assertRaises(SystemExit) as ctx:
                    psql_env("APP_DB_PASSWORD")
        self.assertEqual(ctx.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
