"""CLI wrapper to export every Day of an animal from a workspace file."""

from __future__ import annotations

import argparse
from pathlib import Path

from ephys_metadata import ExportRejected, export_day
from ephys_metadata.workspace import get_animal_days, load_workspace, save_workspace


def main() -> None:
    parser = argparse.ArgumentParser(description="Export all Days of an animal as metadata YAML")
    parser.add_argument("workspace", type=Path, help="Workspace JSON")
    parser.add_argument("animal_id", help="Animal whose Days are exported")
    parser.add_argument("output_dir", type=Path, help="Destination directory for YAML files")
    args = parser.parse_args()

    workspace = load_workspace(args.workspace)
    for day in get_animal_days(workspace, args.animal_id):
        try:
            exported = export_day(workspace, day.id, output_dir=args.output_dir)
        except ExportRejected as exc:
            print(f"Skipped {day.id}: {exc}")
            continue
        workspace = exported.workspace
        print(f"Wrote {exported.path}")
    save_workspace(workspace, args.workspace)


if __name__ == "__main__":
    main()
