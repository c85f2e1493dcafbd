"""Collect the imports a generated module needs and render them as one header."""

from __future__ import annotations

from collections import defaultdict

TYPING = "typing"

# Grouped-module imports render in this order, after typing and bare imports.
IMPORT_GROUPS: tuple[tuple[str, str], ...] = (
    ("framework", "sqlalchemy"),
    ("dialect", "sqlalchemy.dialects"),
    ("orm", "sqlalchemy.orm"),
)


def import_group(module: str) -> int:
    """Index of the group a module belongs to; unknown modules sort after every known group."""
    if module == IMPORT_GROUPS[0][1]:
        return 0
    for idx, (_, prefix) in enumerate(IMPORT_GROUPS[1:], start=1):
        if module == prefix or module.startswith(prefix + "."):
            return idx
    return len(IMPORT_GROUPS)


class ImportCollector:
    def __init__(self) -> None:
        self.imports: dict[str, set[str]] = defaultdict(set)
        self.bare: set[str] = set()

    def add(self, module: str, symbol: str) -> None:
        self.imports[module].add(symbol)

    def add_bare(self, module: str) -> None:
        self.bare.add(module)

    def render(self) -> str:
        lines: list[str] = []

        typing_names = self.imports.get(TYPING)
        if typing_names:
            lines.append(f"from {TYPING} import {', '.join(sorted(typing_names))}")

        for module in sorted(self.bare):
            lines.append(f"import {module}")

        grouped = sorted(
            (import_group(module), module)
            for module, names in self.imports.items()
            if module != TYPING and names
        )
        if lines and grouped:
            lines.append("")

        for _, module in grouped:
            lines.append(f"from {module} import {', '.join(sorted(self.imports[module]))}")

        return "\n".join(lines)
