#!/usr/bin/env python3
"""Validation script for store bundle definition files.

Validates every `<store_id>.json` under the bundles directory (BUNDLES_DIR,
or the first argument) against the packaged bundle schema.
Exits with error code if any invalid files are found.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

from bundle_offers.adapters.files.bundle_file_repository import load_schema, validate_document


def validate_file(file_path: Path, schema: dict) -> str | None:
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        return f"Invalid JSON: {e}"
    try:
        validate_document(data, schema)
    except ValueError as e:
        return str(e)
    return None


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    bundles_dir = Path(argv[0] if argv else os.getenv("BUNDLES_DIR", "./bundles"))
    if not bundles_dir.is_dir():
        print(f"ERROR: Bundles directory not found: {bundles_dir}", file=sys.stderr)
        return 1

    schema = load_schema()
    errors: list[str] = []
    for bundle_file in sorted(bundles_dir.glob("*.json")):
        error = validate_file(bundle_file, schema)
        if error:
            errors.append(f"{bundle_file}: {error}")
        else:
            print(f"✓ {bundle_file}")

    if errors:
        print("\nValidation errors:", file=sys.stderr)
        for error in errors:
            print(f"  {error}", file=sys.stderr)
        return 1

    print("\nAll files validated successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
