#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import yaml

# Ensure project root is on sys.path when running from scripts/
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dropiq.main import app  # noqa: E402


def generate_schema_dict(tags: list[str] | None = None) -> dict:
    """Return the OpenAPI schema, optionally keeping only operations with one of the given tags."""
    schema = app.openapi()
    if not tags:
        return schema
    wanted = set(tags)
    paths = {}
    for path, operations in schema.get("paths", {}).items():
        kept = {method: op for method, op in operations.items() if wanted & set(op.get("tags", []))}
        if kept:
            paths[path] = kept
    return {**schema, "paths": paths}


def write_output(schema: dict, out_path: Path, fmt: str) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "yaml":
        text = yaml.safe_dump(schema, sort_keys=False, allow_unicode=True)
    else:
        text = json.dumps(schema, indent=2, ensure_ascii=False)
    out_path.write_text(text, encoding="utf-8")


def main() -> None:
    parser = argparse.ArgumentParser(description="Write the DROPIQ OpenAPI schema to a file.")
    parser.add_argument("--out", type=Path, default=Path("openapi.yaml"), help="Output file path (default: openapi.yaml)")
    parser.add_argument("--format", choices=["yaml", "json"], default="yaml", help="Output format (default: yaml)")
    parser.add_argument("--tag", action="append", dest="tags", help="Only include operations with this tag (repeatable)")
    args = parser.parse_args()

    schema = generate_schema_dict(args.tags)
    write_output(schema, args.out, args.format)
    print(f"OpenAPI schema with {len(schema['paths'])} paths written to {args.out} ({args.format})")


if __name__ == "__main__":
    main()
