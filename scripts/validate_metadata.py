"""CLI wrapper to validate metadata YAML files in bulk."""

from __future__ import annotations

import argparse
from pathlib import Path

from ephys_metadata import import_document


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate one or more session metadata YAML files")
    parser.add_argument("documents", type=Path, nargs="+", help="Metadata YAML files")
    args = parser.parse_args()

    failures = 0
    for path in args.documents:
        result = import_document(path.read_bytes())
        if result.accepted:
            print(f"{path}: valid")
            continue
        failures += 1
        if result.decode_error:
            print(f"{path}: {result.decode_error}")
        else:
            print(f"{path}: {len(result.validation.blocking)} blocking issue(s)")
    if failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
