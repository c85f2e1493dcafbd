"""Python identifiers and literals for generated code."""

from __future__ import annotations

import re
from itertools import count
from keyword import iskeyword

_re_invalid_identifier = re.compile(r"(?u)\W")

_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def py_str(value: str) -> str:
    """Single-quoted Python string literal."""
    return "'" + "".join(_ESCAPES.get(ch, ch) for ch in value) + "'"


def py_str_list(values: tuple[str, ...] | list[str]) -> str:
    return "[" + ", ".join(py_str(v) for v in values) + "]"


def sanitize_identifier(name: str) -> str:
    name = _re_invalid_identifier.sub("_", name.strip()) or "_"
    if name[0].isdigit():
        name = "_" + name
    elif iskeyword(name) or name == "metadata":
        name += "_"
    return name


def find_free_name(name: str, global_names: set[str], local_names: set[str] | None = None) -> str:
    local_names = local_names or set()
    name = sanitize_identifier(name)
    original = name
    for i in count():
        if name not in global_names and name not in local_names:
            break
        name = original + (str(i) if i else "_")
    return name


def class_name(table_name: str) -> str:
    preferred = _re_invalid_identifier.sub("_", table_name)
    return "".join(part[:1].upper() + part[1:] for part in preferred.split("_"))


def table_variable_name(table_name: str) -> str:
    return f"t_{table_name}"
