"""Command line interface for ephys metadata workspaces."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Sequence

from . import __version__
from . import channel_maps as cm
from .config import load_settings
from .device_types import load_device_registry
from .errors import MetadataError
from .logging_utils import configure_logging
from .pipeline import commit_import, export_day, import_document, normalize
from .registry import list_runs, record_run
from .service import create_app
from .workspace import Workspace, get_animal, load_workspace, replace_channel_maps, save_workspace


def _print_result(result: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, indent=2, default=str))
    else:
        print(result)


def _load_or_new(path: Path) -> Workspace:
    return load_workspace(path) if path.exists() else Workspace()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ephys-meta",
        description="Validate, normalize, import and export electrophysiology session metadata.",
    )
    parser.add_argument("--registry", type=Path, help="Path to run registry database (optional)")
    parser.add_argument("--settings", type=Path, help="Settings file (YAML or JSON)")
    parser.add_argument("--device-types", type=Path, help="Extra device-type table (YAML or JSON)")
    parser.add_argument("--log-level", help="Logging level (default: the settings file, else INFO)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Decode and validate a metadata YAML file")
    validate.add_argument("document", type=Path, help="Path to metadata YAML")
    validate.add_argument("--json", action="store_true", help="Emit validation result as JSON")
    validate.add_argument("--strict", action="store_true", help="Exit non-zero when the document is not valid")

    norm = subparsers.add_parser("normalize", help="Re-encode a metadata YAML file canonically")
    norm.add_argument("document", type=Path, help="Path to metadata YAML")
    norm.add_argument("--output", type=Path, help="Optional path for the normalized YAML")

    types = subparsers.add_parser("device-types", help="List known device types")
    types.add_argument("--json", action="store_true", help="Emit device types as JSON")

    gen = subparsers.add_parser("generate-map", help="Generate default channel maps for a device type")
    gen.add_argument("device_type", help="Device type key")
    gen.add_argument("--group-id", type=int, default=0, help="Electrode group id")
    gen.add_argument("--start-ntrode", type=int, default=0, help="First ntrode id to assign")
    gen.add_argument("--json", action="store_true", help="Emit maps as JSON")

    imp = subparsers.add_parser("import", help="Import a metadata YAML file into a workspace")
    imp.add_argument("document", type=Path, help="Path to metadata YAML")
    imp.add_argument("--workspace", type=Path, required=True, help="Workspace JSON (created if missing)")
    imp.add_argument("--animal-id", help="Animal id (defaults to subject_id)")
    imp.add_argument("--date", help="Session date YYYY-MM-DD (defaults to the session_id suffix)")
    imp.add_argument("--json", action="store_true", help="Emit import result as JSON")

    exp = subparsers.add_parser("export", help="Export a Day from a workspace as metadata YAML")
    exp.add_argument("day_id", help="Day id, e.g. remy-2023-06-22")
    exp.add_argument("--workspace", type=Path, required=True, help="Workspace JSON")
    exp.add_argument("--output-dir", type=Path, default=Path("."), help="Directory for the YAML file")
    exp.add_argument("--json", action="store_true", help="Emit export result as JSON")

    export_maps = subparsers.add_parser("export-maps", help="Write an animal's channel maps as CSV")
    export_maps.add_argument("animal_id", help="Animal id")
    export_maps.add_argument("--workspace", type=Path, required=True, help="Workspace JSON")
    export_maps.add_argument("--output", type=Path, help="Optional CSV path (stdout otherwise)")

    import_maps = subparsers.add_parser("import-maps", help="Replace an animal's channel maps from CSV")
    import_maps.add_argument("animal_id", help="Animal id")
    import_maps.add_argument("csv", type=Path, help="CSV produced by export-maps")
    import_maps.add_argument("--workspace", type=Path, required=True, help="Workspace JSON")

    serve = subparsers.add_parser("serve", help="Run FastAPI service")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    runs = subparsers.add_parser("runs", help="List recent runs from the registry")
    runs.add_argument("--limit", type=int, default=20)
    runs.add_argument("--json", action="store_true", help="Emit runs as JSON")

    subparsers.add_parser("version", help="Display the installed version")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = load_settings(args.settings)
    configure_logging(level=args.log_level or settings.log_level, json_logs=args.json_logs or settings.json_logs)
    devices = settings.device_registry()
    if args.device_types:
        devices = load_device_registry(args.device_types, base=devices)

    try:
        _dispatch(args, settings, devices)
    except (MetadataError, ValueError, FileNotFoundError) as exc:
        raise SystemExit(f"error: {exc}")


def _dispatch(args: argparse.Namespace, settings: Any, devices: Any) -> None:
    if args.command == "validate":
        result = import_document(args.document.read_bytes(), registry=devices)
        if args.registry:
            issues = len(result.validation.errors) if result.validation else 1
            status = "accepted" if result.accepted else "rejected"
            record_run(args.registry, "validate", str(args.document), status, "unknown", issues)
        if args.json:
            _print_result(result.as_dict(), as_json=True)
        elif result.decode_error:
            print(f"Could not decode {args.document}: {result.decode_error}")
        else:
            print(f"{args.document}: {'valid' if result.accepted else 'invalid'}")
            for issue in result.validation.errors:
                print(f"  [{issue.severity.label}] {issue.path or '<root>'}: {issue.message}")
        if args.strict and not result.accepted:
            raise SystemExit(1)
    elif args.command == "normalize":
        text = normalize(args.document.read_bytes())
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(text, encoding="utf-8", newline="\n")
            print(f"Wrote normalized metadata to {args.output}")
        else:
            print(text, end="")
    elif args.command == "device-types":
        if args.json:
            _print_result(devices.as_dict(), as_json=True)
        else:
            for name, spec in devices.items():
                print(f"{name}: {spec.shank_count} shank(s) x {spec.channels_per_shank} channel(s)")
    elif args.command == "generate-map":
        maps = cm.generate(args.device_type, args.group_id, [], registry=devices, floor=args.start_ntrode)
        payload = [m.model_dump() for m in maps]
        if args.json:
            _print_result(payload, as_json=True)
        else:
            for channel_map in maps:
                print(f"ntrode {channel_map.ntrode_id}: {dict(channel_map.map)}")
    elif args.command == "import":
        result = import_document(args.document.read_bytes(), registry=devices)
        if not result.accepted:
            if args.registry:
                record_run(args.registry, "import", str(args.document), "rejected", args.animal_id or "unknown", 1)
            _print_result(result.as_dict(), as_json=True)
            raise SystemExit(1)
        workspace = commit_import(
            _load_or_new(args.workspace),
            result,
            animal_id=args.animal_id,
            date=args.date,
            settings=settings,
        )
        save_workspace(workspace, args.workspace)
        animal_id = args.animal_id or result.document["subject"]["subject_id"]
        if args.registry:
            record_run(args.registry, "import", str(args.document), "imported", animal_id, len(result.validation.errors))
        if args.json:
            _print_result({**result.as_dict(), "animal_id": animal_id, "revision": workspace.revision}, as_json=True)
        else:
            print(f"Imported {args.document} into {args.workspace} (animal={animal_id})")
    elif args.command == "export":
        workspace = load_workspace(args.workspace)
        exported = export_day(
            workspace,
            args.day_id,
            registry=devices,
            output_dir=args.output_dir,
            registry_path=args.registry,
        )
        save_workspace(exported.workspace, args.workspace)
        if args.json:
            _print_result(exported.as_dict(), as_json=True)
        else:
            print(f"Wrote {exported.path}")
    elif args.command == "export-maps":
        animal = get_animal(load_workspace(args.workspace), args.animal_id)
        text = cm.export_channel_maps_csv(animal.devices.channel_maps, animal.devices.electrode_groups)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(text, encoding="utf-8", newline="\n")
            print(f"Wrote {len(animal.devices.channel_maps)} channel map(s) to {args.output}")
        else:
            print(text, end="")
    elif args.command == "import-maps":
        maps = cm.import_channel_maps_csv(args.csv.read_text(encoding="utf-8"))
        workspace = replace_channel_maps(load_workspace(args.workspace), args.animal_id, maps)
        save_workspace(workspace, args.workspace)
        print(f"Replaced channel maps of {args.animal_id} ({len(maps)} ntrode(s))")
    elif args.command == "serve":
        app = create_app(registry_path=args.registry, device_registry=devices)
        try:
            import uvicorn
        except ModuleNotFoundError:
            raise SystemExit("uvicorn is required to run the service. Install with `pip install uvicorn`.")
        uvicorn.run(app, host=args.host, port=args.port)
    elif args.command == "runs":
        if not args.registry:
            raise SystemExit("Specify --registry to read runs.")
        runs = [r.as_dict() for r in list_runs(args.registry, limit=args.limit)]
        _print_result({"runs": runs}, as_json=args.json)
    elif args.command == "version":
        print(__version__)


if __name__ == "__main__":
    main()
