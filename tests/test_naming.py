import unittest

from naming import class_name, find_free_name, py_str, py_str_list, sanitize_identifier, table_variable_name


class TestLiterals(unittest.TestCase):
    def test_escapes(self) -> None:
        self.assertEqual(py_str("it's"), "'it\\'s'")
        self.assertEqual(py_str("a\\b"), "'a\\\\b'")
        self.assertEqual(py_str("line\nnext\tcol\r"), "'line\\nnext\\tcol\\r'")

    def test_list(self) -> None:
        self.assertEqual(py_str_list(("a", "b")), "['a', 'b']")


class TestNames(unittest.TestCase):
    def test_class_name(self) -> None:
        self.assertEqual(class_name("user_accounts"), "UserAccounts")
        self.assertEqual(class_name("order-items"), "OrderItems")
        self.assertEqual(class_name("Customers"), "Customers")

    def test_table_variable_name(self) -> None:
        self.assertEqual(table_variable_name("audit_log"), "t_audit_log")

    def test_sanitize(self) -> None:
        self.assertEqual(sanitize_identifier("1st"), "_1st")
        self.assertEqual(sanitize_identifier("first name"), "first_name")
        self.assertEqual(sanitize_identifier("from"), "from_")
        self.assertEqual(sanitize_identifier("metadata"), "metadata_")

    def test_find_free_name(self) -> None:
        self.assertEqual(find_free_name("Users", set()), "Users")
        self.assertEqual(find_free_name("Integer", {"Integer"}), "Integer_")
        self.assertEqual(find_free_name("Integer", {"Integer", "Integer_"}), "Integer1")
        self.assertEqual(find_free_name("id", set(), {"id"}), "id_")


if __name__ == "__main__":
    unittest.main()
