"""Import and export boundaries between wire text and the workspace.

Import decodes and validates before anything reaches the workspace, so a
malformed or invalid document never changes stored state. Export resolves a
Day, validates the merged document and only encodes it when it is valid.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from . import workspace as ws
from .config import Settings
from .device_types import DeviceTypeRegistry
from .errors import DecodeError, ExportRejected, ImportRejected
from .logging_utils import log_event
from .merge import resolve_day
from .models import DayState, Optogenetics
from .registry import record_run
from .serialization import decode, encode, export_filename
from .validation import ErrorKind, ValidationError, ValidationResult, validate_day, validate_imported
from .validation.paths import join
from .validation.rules import CHANNEL_MAPS

logger = logging.getLogger(__name__)

_SESSION_DATE = re.compile(r"(\d{8})$")
_OPTOGENETICS_KEYS = ("opto_excitation_source", "optical_fiber", "virus_injection", "optogenetic_stimulation_software")
_INHERITED_KEYS = ("experimenter_name", "lab", "institution", "subject", "device")
_INHERITED_LISTS = ("data_acq_device", "cameras", "electrode_groups", CHANNEL_MAPS, "behavioral_events")
_MISSING = object()


@dataclass
class ImportResult:
    document: Optional[Dict[str, Any]] = None
    decode_error: Optional[DecodeError] = None
    validation: Optional[ValidationResult] = None

    @property
    def accepted(self) -> bool:
        return self.decode_error is None and self.validation is not None and self.validation.is_valid

    def as_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "decode_error": self.decode_error.as_dict() if self.decode_error else None,
            "validation": self.validation.as_dict() if self.validation else None,
        }


def import_document(text: str | bytes, *, registry: DeviceTypeRegistry | None = None) -> ImportResult:
    """Decode then validate wire text without touching any workspace."""

    decoded = decode(text)
    if not decoded.ok:
        log_event(logger, "import_decode_failed", error=decoded.error.message, line=decoded.error.line)
        return ImportResult(decode_error=decoded.error)
    return ImportResult(document=decoded.document, validation=validate_imported(decoded.document, registry=registry))


def normalize(text: str | bytes) -> str:
    """Re-encode wire text canonically. Raises ``DecodeError`` on malformed input."""
    return encode(decode(text).unwrap())


def _session_date(document: Mapping[str, Any]) -> dt.date:
    match = _SESSION_DATE.search(str(document.get("session_id", "")))
    if not match:
        raise ValueError("Cannot infer the session date from session_id; pass date explicitly")
    return dt.datetime.strptime(match.group(1), "%Y%m%d").date()


def _animal_fields(document: Mapping[str, Any]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "cameras": document.get("cameras", []),
        "data_acq_device": document.get("data_acq_device", []),
        "device_names": document.get("device", {}).get("name", []),
        "behavioral_events": document.get("behavioral_events", []),
    }
    if any(document.get(key) for key in _OPTOGENETICS_KEYS):
        fields["optogenetics"] = Optogenetics.model_validate(
            {key: document[key] for key in _OPTOGENETICS_KEYS if document.get(key) is not None}
        )
    return fields


def _day_overrides(animal_maps: List[Any], document_maps: List[Mapping[str, Any]]) -> Dict[int, List[int]]:
    """Bad channels that differ from the Animal's defaults, regrouped by electrode group."""

    defaults = {m.ntrode_id: set(m.bad_channels) for m in animal_maps}
    by_group: Dict[int, set] = {}
    differs: set = set()
    for entry in document_maps:
        group_id = entry["electrode_group_id"]
        bad = set(entry.get("bad_channels", []))
        by_group.setdefault(group_id, set()).update(bad)
        if bad != defaults.get(entry["ntrode_id"], set()):
            differs.add(group_id)
    return {group: sorted(by_group[group]) for group in sorted(differs)}


def _differences(path: str, imported: Any, stored: Any) -> Iterator[str]:
    """Paths where two wire values differ, including int/float drift."""

    if isinstance(imported, Mapping) and isinstance(stored, Mapping):
        for key in sorted(set(imported) | set(stored), key=str):
            yield from _differences(join(path, key), imported.get(key, _MISSING), stored.get(key, _MISSING))
    elif isinstance(imported, list) and isinstance(stored, list) and len(imported) == len(stored):
        for index, (left, right) in enumerate(zip(imported, stored)):
            yield from _differences(join(path, index), left, right)
    elif type(imported) is not type(stored) or imported != stored:
        yield path


def _inherited_sections(document: Mapping[str, Any]) -> Dict[str, Any]:
    sections: Dict[str, Any] = {key: document.get(key) for key in _INHERITED_KEYS}
    sections.update({key: document.get(key, []) for key in _INHERITED_LISTS})
    sections.update({key: document.get(key) for key in _OPTOGENETICS_KEYS})
    sections[CHANNEL_MAPS] = [
        {**entry, "bad_channels": sorted(set(entry.get("bad_channels", [])))} for entry in sections[CHANNEL_MAPS]
    ]
    return sections


def _animal_conflicts(
    animal_id: str, document: Mapping[str, Any], resolved: Mapping[str, Any]
) -> List[ValidationError]:
    """Inherited sections of an imported document that the stored Animal would not reproduce."""

    paths = _differences("", _inherited_sections(document), _inherited_sections(resolved))
    return [
        ValidationError(
            path=path,
            message=f"Differs from the stored configuration of animal {animal_id!r}",
            kind=ErrorKind.REFERENTIAL,
            code="conflicts_with_animal",
        )
        for path in paths
    ]


def commit_import(
    workspace: ws.Workspace,
    result: ImportResult,
    *,
    animal_id: str | None = None,
    date: dt.date | str | None = None,
    settings: Settings | None = None,
) -> ws.Workspace:
    """Merge an accepted import into ``workspace`` as a new Day (and Animal if needed).

    Raises ``ImportRejected`` for a document that failed decoding or
    validation, and for a document whose inherited sections (subject,
    hardware and channel maps) disagree with an Animal already in the
    workspace. The input workspace is never modified.
    """

    if not result.accepted:
        raise ImportRejected("Import rejected", result.validation or ValidationResult())
    document = result.document or {}
    subject = dict(document["subject"])
    animal_id = animal_id or subject["subject_id"]
    day_date = date or _session_date(document)

    updated = workspace
    existing = animal_id in workspace.animals
    if not existing:
        updated = ws.create_animal(
            updated,
            animal_id,
            subject,
            experimenters={
                "experimenter_name": document["experimenter_name"],
                "lab": document["lab"],
                "institution": document["institution"],
            },
            electrode_groups=document.get("electrode_groups", []),
            channel_maps=document.get("ntrode_electrode_group_channel_map", []),
            settings=settings,
            **_animal_fields(document),
        )
    animal = updated.animals[animal_id]

    session: Dict[str, Any] = {
        "session_id": document["session_id"],
        "session_description": document["session_description"],
        "experiment_description": document["experiment_description"],
        "keywords": document.get("keywords", []),
    }
    if any(_differences("weight", subject.get("weight"), animal.subject.weight)):
        session["weight"] = subject.get("weight")

    overrides = _day_overrides(
        list(animal.devices.channel_maps), document.get("ntrode_electrode_group_channel_map", [])
    )
    updated = ws.create_day(
        updated,
        animal_id,
        day_date,
        session,
        settings=settings,
        tasks=document.get("tasks", []),
        associated_files=document.get("associated_files", []),
        associated_video_files=document.get("associated_video_files", []),
        fs_gui_yamls=document.get("fs_gui_yamls") or [],
        technical={
            "times_period_multiplier": document["times_period_multiplier"],
            "raw_data_to_volts": document["raw_data_to_volts"],
            "default_header_file_path": document["default_header_file_path"],
            "units": document.get("units", {}),
        },
        overrides={"bad_channels": overrides},
    )
    if existing:
        day_id = updated.animals[animal_id].days[-1]
        resolved = resolve_day(updated.animals[animal_id], updated.days[day_id]).to_document()
        conflicts = _animal_conflicts(animal_id, document, resolved)
        if conflicts:
            log_event(logger, "import_conflict", animal_id=animal_id, conflicts=len(conflicts))
            raise ImportRejected(
                f"Document disagrees with stored animal {animal_id!r}", ValidationResult.from_issues(conflicts)
            )
    log_event(logger, "import_committed", animal_id=animal_id, revision=updated.revision)
    return updated


@dataclass
class ExportResult:
    day_id: str
    filename: str
    text: str
    validation: ValidationResult
    workspace: ws.Workspace
    path: Optional[Path] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "day_id": self.day_id,
            "filename": self.filename,
            "path": str(self.path) if self.path else None,
            "validation": self.validation.as_dict(),
        }


def export_day(
    workspace: ws.Workspace,
    day_id: str,
    *,
    registry: DeviceTypeRegistry | None = None,
    output_dir: str | Path | None = None,
    registry_path: str | Path | None = None,
    mark_exported: bool = True,
) -> ExportResult:
    """Resolve, validate and encode one Day.

    Raises ``ExportRejected`` (carrying the validation result) when the merged
    document has any ERROR-severity issue. On success the returned workspace
    has the Day marked exported.
    """

    day = ws.get_day(workspace, day_id)
    animal = ws.get_animal(workspace, day.animal_id)
    validation = validate_day(animal, day, registry=registry)
    filename = export_filename(day.date, animal.id)

    if not validation.is_valid:
        log_event(logger, "export_rejected", day_id=day_id, errors=len(validation.blocking))
        if registry_path:
            record_run(registry_path, "export", filename, "rejected", animal.id, len(validation.blocking))
        raise ExportRejected(f"Day {day_id!r} is not valid for export", validation)

    text = encode(resolve_day(animal, day))
    path = None
    if output_dir is not None:
        path = Path(output_dir) / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8", newline="\n")

    updated = ws.set_day_state(workspace, day_id, DayState.EXPORTED) if mark_exported else workspace
    log_event(logger, "export_complete", day_id=day_id, filename=filename, warnings=len(validation.warnings))
    if registry_path:
        record_run(registry_path, "export", str(path or filename), "exported", animal.id, len(validation.errors))
    return ExportResult(
        day_id=day_id,
        filename=filename,
        text=text,
        validation=validation,
        workspace=updated,
        path=path,
    )


__all__ = [
    "ExportResult",
    "ImportResult",
    "commit_import",
    "export_day",
    "import_document",
    "normalize",
]
