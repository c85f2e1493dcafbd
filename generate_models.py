#!/usr/bin/env python3
"""Generate SQLAlchemy model source from a YAML schema snapshot.

Usage:
    python generate_models.py snapshot.yaml --generator declarative --outfile models.py
    python generate_models.py snapshot.yaml --outfile models.py --check
    python dump_schema.py --dbname app | python generate_models.py - --generator tables
"""

from __future__ import annotations

import argparse
import difflib
import sys
from pathlib import Path
from typing import Sequence

try:
    import yaml
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required. Install with: pip install pyyaml") from exc

from generators import GENERATORS, VALID_OPTIONS, GeneratorOptions, generate
from schema_model import Schema
from schema_snapshot import load_snapshot, schema_from_dict

DEFAULT_CONFIG = "uvgen.yaml"
DEFAULT_GENERATOR = "declarative"
CONFIG_KEYS = ("generator", "options", "tables", "noviews", "outfile")


def split_names(value) -> list[str]:
    """Accept a comma-delimited string or a YAML list."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return [item.strip() for item in items if item.strip()]


def parse_options(value) -> GeneratorOptions:
    names = split_names(value)
    for name in names:
        if name not in VALID_OPTIONS:
            print(f"[config] unknown option ignored: {name}", file=sys.stderr)
    return GeneratorOptions(**{name: name in names for name in VALID_OPTIONS})


def load_config(path: Path | None) -> dict:
    if path is None:
        default = Path(DEFAULT_CONFIG)
        if not default.exists():
            return {}
        path = default
    elif not path.exists():
        print(f"[config] missing file: {path}", file=sys.stderr)
        raise SystemExit(2)

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        print(f"[config] expected a mapping in {path}", file=sys.stderr)
        raise SystemExit(2)
    for key in data:
        if key not in CONFIG_KEYS:
            print(f"[config] unknown key ignored: {key}", file=sys.stderr)
    return data


def merge_settings(args: argparse.Namespace, config: dict) -> dict:
    """Command-line values win over config values."""

    def pick(name: str, default=None):
        value = getattr(args, name)
        if value is not None:
            return value
        return config.get(name, default)

    return {
        "generator": pick("generator", DEFAULT_GENERATOR),
        "options": pick("options"),
        "tables": pick("tables"),
        "noviews": bool(args.noviews or config.get("noviews", False)),
        "outfile": pick("outfile"),
    }


def read_schema(snapshot: str, tables: list[str], noviews: bool) -> Schema:
    if snapshot == "-":
        return schema_from_dict(yaml.safe_load(sys.stdin.read()), tables, noviews)
    return load_snapshot(Path(snapshot), tables, noviews)


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def check_equal(path: Path, generated: str) -> bool:
    if not path.exists():
        print(f"[check] missing file: {path}", file=sys.stderr)
        return False

    existing = path.read_text(encoding="utf-8")
    if existing == generated:
        return True

    print(f"[check] drift detected: {path}", file=sys.stderr)
    diff = difflib.unified_diff(
        existing.splitlines(),
        generated.splitlines(),
        fromfile=str(path),
        tofile=f"generated:{path}",
        lineterm="",
    )
    for idx, line in enumerate(diff):
        if idx > 200:
            print("... (diff truncated)", file=sys.stderr)
            break
        print(line, file=sys.stderr)
    return False


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate SQLAlchemy models from a schema snapshot")
    parser.add_argument("snapshot", help="YAML schema snapshot (- for stdin)")
    parser.add_argument("--generator", choices=sorted(GENERATORS), help="Output style (default: declarative)")
    parser.add_argument("--options", help=f"Comma-delimited: {', '.join(VALID_OPTIONS)}")
    parser.add_argument("--tables", help="Comma-delimited table names to include")
    parser.add_argument("--noviews", action="store_true", default=None, help="Skip views")
    parser.add_argument("--outfile", help="Write output here instead of stdout")
    parser.add_argument("--check", action="store_true", help="Verify --outfile is up-to-date without writing")
    parser.add_argument("--config", type=Path, help=f"YAML config (default: {DEFAULT_CONFIG} when present)")
    parser.add_argument("--verbose", action="store_true", help="Print progress to stderr")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = merge_settings(args, load_config(args.config))

    generator = settings["generator"]
    if generator not in GENERATORS:
        print(f"[config] unknown generator: {generator} (expected one of {', '.join(sorted(GENERATORS))})", file=sys.stderr)
        return 2
    if args.check and not settings["outfile"]:
        print("[check] --check needs --outfile", file=sys.stderr)
        return 2

    try:
        schema = read_schema(args.snapshot, split_names(settings["tables"]), settings["noviews"])
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"[generate] cannot load snapshot {args.snapshot}: {exc}", file=sys.stderr)
        return 1

    if args.verbose:
        print(f"[generate] {len(schema.tables)} tables, dialect {schema.dialect}, generator {generator}", file=sys.stderr)

    try:
        output = generate(schema, generator, parse_options(settings["options"]))
    except ValueError as exc:
        print(f"[generate] {exc}", file=sys.stderr)
        return 1

    if not settings["outfile"]:
        sys.stdout.write(output)
        return 0

    outfile = Path(settings["outfile"])
    if args.check:
        return 0 if check_equal(outfile, output) else 1

    write_text(outfile, output)
    if args.verbose:
        print(f"[generate] wrote {outfile}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
