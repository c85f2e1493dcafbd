"""Order tables so that foreign key targets come before the tables referring to them."""

from __future__ import annotations

import heapq
from collections import defaultdict

from schema_model import Table


def sort_key(table: Table) -> tuple[str, str]:
    return (table.name, table.schema)


def dependency_map(tables: list[Table]) -> dict[tuple[str, str], set[tuple[str, str]]]:
    """Referrer key -> keys of the tables it references (within the given list only)."""
    known = {t.key for t in tables}
    deps: dict[tuple[str, str], set[tuple[str, str]]] = {t.key: set() for t in tables}
    for table in tables:
        for constraint in table.foreign_keys():
            fk = constraint.foreign_key
            target = (fk.ref_schema, fk.ref_table)
            if target == table.key or target not in known:
                continue
            deps[table.key].add(target)
    return deps


def sort_tables(tables: list[Table] | tuple[Table, ...]) -> list[Table]:
    """Kahn's algorithm, ties broken by case-sensitive table name.

    When only tables on a reference cycle remain, the one with the smallest
    name is emitted next and its unresolved references are ignored.
    """
    tables = list(tables)
    by_key = {t.key: t for t in tables}
    deps = dependency_map(tables)

    referrers: dict[tuple[str, str], list[tuple[str, str]]] = defaultdict(list)
    pending: dict[tuple[str, str], int] = {}
    for key, targets in deps.items():
        pending[key] = len(targets)
        for target in targets:
            referrers[target].append(key)

    ready = [sort_key(by_key[key]) for key, count in pending.items() if count == 0]
    heapq.heapify(ready)
    blocked = {sort_key(by_key[key]) for key, count in pending.items() if count > 0}

    ordered: list[Table] = []
    emitted: set[tuple[str, str]] = set()
    while len(ordered) < len(by_key):
        if not ready:
            # Cycle: release the smallest remaining table.
            candidate = min(blocked)
            blocked.discard(candidate)
            heapq.heappush(ready, candidate)

        name, schema = heapq.heappop(ready)
        key = (schema, name)
        if key in emitted:
            continue
        emitted.add(key)
        ordered.append(by_key[key])

        for referrer in referrers[key]:
            if referrer in emitted:
                continue
            pending[referrer] -= 1
            if pending[referrer] == 0:
                referrer_key = sort_key(by_key[referrer])
                blocked.discard(referrer_key)
                heapq.heappush(ready, referrer_key)

    return ordered
