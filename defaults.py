"""Normalize raw server default expressions read from the catalog."""

from __future__ import annotations

SEQUENCE_CALL_PREFIX = "nextval("


def find_typecast(expr: str) -> int | None:
    """Position of the last top-level ``::`` outside string literals, if any."""
    in_quotes = False
    depth = 0
    last_cast: int | None = None
    idx = 0
    while idx < len(expr):
        ch = expr[idx]
        if ch == "'":
            in_quotes = not in_quotes
        elif ch == "(" and not in_quotes:
            depth += 1
        elif ch == ")" and not in_quotes:
            depth = max(0, depth - 1)
        elif ch == ":" and not in_quotes and depth == 0 and expr.startswith("::", idx):
            last_cast = idx
            idx += 1
        idx += 1
    return last_cast


def strip_typecast(expr: str) -> str:
    """'hello'::character varying -> 'hello', 0::integer -> 0"""
    pos = find_typecast(expr)
    if pos is None:
        return expr.strip()
    return expr[:pos].strip()


def is_balanced(text: str) -> bool:
    """Parentheses outside string literals pair up."""
    in_quotes = False
    depth = 0
    for ch in text:
        if ch == "'":
            in_quotes = not in_quotes
        elif in_quotes:
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0 and not in_quotes


def strip_wrapping_parens(expr: str) -> str:
    """((0)) -> 0, (N'hello') -> 'hello'"""
    text = expr.strip()
    while text.startswith("(") and text.endswith(")") and is_balanced(text[1:-1]):
        text = text[1:-1]
    if text.startswith("N'") or text.startswith('N"'):
        text = text[1:]
    return text.strip()


def is_sequence_call(expr: str) -> bool:
    return expr.startswith(SEQUENCE_CALL_PREFIX)


def never(expr: str) -> bool:
    return False
