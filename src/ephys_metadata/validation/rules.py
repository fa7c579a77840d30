"""Stage B: cross-reference, uniqueness and channel-map completeness rules.

Each rule is a pure function of the document and tolerates any shape:
malformed sections are skipped here because Stage A already reports them.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Sequence

from ..device_types import DEFAULT_REGISTRY, DeviceTypeRegistry
from .issues import ErrorKind, Severity, ValidationError
from .paths import join

CHANNEL_MAPS = "ntrode_electrode_group_channel_map"
OPTOGENETICS_FIELDS = ("opto_excitation_source", "optical_fiber", "virus_injection")


def _items(document: Any, key: str) -> List[Mapping[str, Any]]:
    if not isinstance(document, Mapping):
        return []
    value = document.get(key)
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, Mapping) else {} for item in value]


def _int(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _int_list(value: Any) -> List[int]:
    if not isinstance(value, list):
        return []
    return [v for v in (_int(item) for item in value) if v is not None]


def _int_map(value: Any) -> Dict[int, int]:
    if not isinstance(value, Mapping):
        return {}
    result: Dict[int, int] = {}
    for key, hardware in value.items():
        logical, hw = _int(key), _int(hardware)
        if logical is not None and hw is not None:
            result[logical] = hw
    return result


def _error(path: str, message: str, kind: ErrorKind, code: str, severity: Severity = Severity.ERROR) -> ValidationError:
    return ValidationError(path=path, message=message, severity=severity, kind=kind, code=code)


# -- referential integrity ---------------------------------------------------


def check_camera_references(document: Any) -> List[ValidationError]:
    camera_ids = {_int(c.get("id")) for c in _items(document, "cameras")} - {None}
    issues: List[ValidationError] = []

    for index, task in enumerate(_items(document, "tasks")):
        refs = _int_list(task.get("camera_id"))
        if not refs:
            continue
        label = task.get("task_name") or f"#{index}"
        if not camera_ids:
            issues.append(
                _error(
                    join("tasks", index, "camera_id"),
                    f"Task '{label}' references camera(s) {refs} but no cameras are defined",
                    ErrorKind.REFERENTIAL,
                    "missing_camera",
                )
            )
            continue
        for position, ref in enumerate(refs):
            if ref not in camera_ids:
                issues.append(
                    _error(
                        join("tasks", index, "camera_id", position),
                        f"Task '{label}' references unknown camera {ref}",
                        ErrorKind.REFERENTIAL,
                        "unknown_camera",
                    )
                )

    for index, video in enumerate(_items(document, "associated_video_files")):
        ref = _int(video.get("camera_id"))
        if ref is None or ref in camera_ids:
            continue
        code = "missing_camera" if not camera_ids else "unknown_camera"
        detail = "but no cameras are defined" if not camera_ids else "which is not defined"
        issues.append(
            _error(
                join("associated_video_files", index, "camera_id"),
                f"Video file '{video.get('name', index)}' references camera {ref} {detail}",
                ErrorKind.REFERENTIAL,
                code,
            )
        )
    return issues


def check_electrode_group_references(document: Any, registry: DeviceTypeRegistry) -> List[ValidationError]:
    issues: List[ValidationError] = []
    group_ids = {_int(g.get("id")) for g in _items(document, "electrode_groups")} - {None}

    for index, group in enumerate(_items(document, "electrode_groups")):
        device_type = group.get("device_type")
        if isinstance(device_type, str) and device_type.strip() and device_type not in registry:
            issues.append(
                _error(
                    join("electrode_groups", index, "device_type"),
                    f"Unknown device type '{device_type}'",
                    ErrorKind.REFERENTIAL,
                    "unknown_device_type",
                )
            )

    for index, channel_map in enumerate(_items(document, CHANNEL_MAPS)):
        group_id = _int(channel_map.get("electrode_group_id"))
        if group_id is not None and group_id not in group_ids:
            issues.append(
                _error(
                    join(CHANNEL_MAPS, index, "electrode_group_id"),
                    f"Ntrode {channel_map.get('ntrode_id')} references unknown electrode group {group_id}",
                    ErrorKind.REFERENTIAL,
                    "unknown_electrode_group",
                )
            )
    return issues


# -- uniqueness --------------------------------------------------------------


def _duplicate_ids(document: Any, collection: str, key: str) -> List[ValidationError]:
    positions: Dict[int, List[int]] = defaultdict(list)
    for index, item in enumerate(_items(document, collection)):
        value = _int(item.get(key))
        if value is not None:
            positions[value].append(index)
    return [
        _error(
            collection,
            f"Duplicate {key} {value} in {collection} at positions {', '.join(str(p) for p in where)}",
            ErrorKind.UNIQUENESS,
            "duplicate_id",
        )
        for value, where in sorted(positions.items())
        if len(where) > 1
    ]


def check_unique_ids(document: Any) -> List[ValidationError]:
    return [
        *_duplicate_ids(document, "electrode_groups", "id"),
        *_duplicate_ids(document, "cameras", "id"),
        *_duplicate_ids(document, CHANNEL_MAPS, "ntrode_id"),
    ]


def check_duplicate_channels(document: Any) -> List[ValidationError]:
    """One error per channel map that wires a hardware channel more than once."""

    issues: List[ValidationError] = []
    for index, channel_map in enumerate(_items(document, CHANNEL_MAPS)):
        wired: Dict[int, List[int]] = defaultdict(list)
        for logical, hardware in sorted(_int_map(channel_map.get("map")).items()):
            if hardware != -1:
                wired[hardware].append(logical)
        duplicates = {hw: logicals for hw, logicals in sorted(wired.items()) if len(logicals) > 1}
        if not duplicates:
            continue
        detail = "; ".join(
            f"hardware channel {hw} used by logical channels {', '.join(str(c) for c in logicals)}"
            for hw, logicals in duplicates.items()
        )
        issues.append(
            _error(
                join(CHANNEL_MAPS, index, "map"),
                f"Ntrode {channel_map.get('ntrode_id')}: {detail}",
                ErrorKind.UNIQUENESS,
                "duplicate_channels",
            )
        )
    return issues


# -- completeness ------------------------------------------------------------


def check_channel_completeness(document: Any, registry: DeviceTypeRegistry) -> List[ValidationError]:
    """Every hardware channel of a map's shank must be wired exactly once.

    A map's shank is its rank among its group's maps ordered by ntrode id;
    shank ``s`` of a probe with ``c`` channels per shank owns ``c*s .. c*s+c-1``.
    """

    issues: List[ValidationError] = []
    groups: Dict[int, Mapping[str, Any]] = {}
    for group in _items(document, "electrode_groups"):
        group_id = _int(group.get("id"))
        if group_id is not None:
            groups.setdefault(group_id, group)

    maps = _items(document, CHANNEL_MAPS)
    by_group: Dict[int, List[int]] = defaultdict(list)
    for index, channel_map in enumerate(maps):
        group_id = _int(channel_map.get("electrode_group_id"))
        if group_id is not None:
            by_group[group_id].append(index)

    for position, group in enumerate(_items(document, "electrode_groups")):
        group_id = _int(group.get("id"))
        device_type = group.get("device_type")
        if group_id is None or not isinstance(device_type, str) or device_type not in registry:
            continue
        if groups.get(group_id) is not group:
            continue
        spec = registry[device_type]
        indices = by_group.get(group_id, [])
        if len(indices) != spec.shank_count:
            issues.append(
                _error(
                    join("electrode_groups", position),
                    f"Electrode group {group_id} ({device_type}) expects {spec.shank_count} "
                    f"channel map(s), found {len(indices)}",
                    ErrorKind.COMPLETION,
                    "shank_count_mismatch",
                )
            )

        ranked = sorted(indices, key=lambda i: (_int(maps[i].get("ntrode_id")) or 0, i))
        for shank, index in enumerate(ranked[: spec.shank_count]):
            channel_map = maps[index]
            expected = set(spec.shank_range(shank))
            wired = {hw for hw in _int_map(channel_map.get("map")).values() if hw != -1}
            missing = sorted(expected - wired)
            extra = sorted(wired - expected)
            path = join(CHANNEL_MAPS, index, "map")
            ntrode = channel_map.get("ntrode_id")
            if missing:
                issues.append(
                    _error(
                        path,
                        f"Ntrode {ntrode}: hardware channel(s) {missing} of shank {shank} are not assigned",
                        ErrorKind.COMPLETION,
                        "missing_channels",
                    )
                )
            if extra:
                issues.append(
                    _error(
                        path,
                        f"Ntrode {ntrode}: hardware channel(s) {extra} are outside shank {shank} "
                        f"({min(expected)}-{max(expected)})",
                        ErrorKind.COMPLETION,
                        "out_of_range_channels",
                    )
                )
    return issues


def check_optogenetics(document: Any) -> List[ValidationError]:
    """Optogenetics sections are all-or-nothing."""

    if not isinstance(document, Mapping):
        return []
    present = {key: isinstance(document.get(key), list) and bool(document.get(key)) for key in OPTOGENETICS_FIELDS}
    if not any(present.values()) or all(present.values()):
        return []
    configured = ", ".join(k for k, v in present.items() if v)
    return [
        _error(
            key,
            f"Partial optogenetics configuration: {key} is required when {configured} is set",
            ErrorKind.COMPLETION,
            "partial_optogenetics",
        )
        for key, is_set in present.items()
        if not is_set
    ]


# -- non-blocking cross references ------------------------------------------


def check_bad_channels(document: Any) -> List[ValidationError]:
    issues: List[ValidationError] = []
    for index, channel_map in enumerate(_items(document, CHANNEL_MAPS)):
        wired = set(_int_map(channel_map.get("map")).values())
        stray = sorted(set(_int_list(channel_map.get("bad_channels"))) - wired)
        if stray:
            issues.append(
                _error(
                    join(CHANNEL_MAPS, index, "bad_channels"),
                    f"Ntrode {channel_map.get('ntrode_id')}: bad channel(s) {stray} are not in the map",
                    ErrorKind.REFERENTIAL,
                    "bad_channel_not_mapped",
                    Severity.WARNING,
                )
            )
    return issues


def check_epochs(document: Any) -> List[ValidationError]:
    issues: List[ValidationError] = []
    owners: Dict[int, List[int]] = defaultdict(list)
    for index, task in enumerate(_items(document, "tasks")):
        for epoch in sorted(set(_int_list(task.get("task_epochs")))):
            owners[epoch].append(index)
    for epoch, tasks in sorted(owners.items()):
        if len(tasks) > 1:
            for index in tasks:
                issues.append(
                    _error(
                        join("tasks", index, "task_epochs"),
                        f"Epoch {epoch} is claimed by tasks {', '.join(str(t) for t in tasks)}",
                        ErrorKind.UNIQUENESS,
                        "duplicate_epoch",
                        Severity.WARNING,
                    )
                )

    known = set(owners)
    for collection in ("associated_files", "associated_video_files"):
        for index, item in enumerate(_items(document, collection)):
            unknown = sorted(set(_int_list(item.get("task_epochs"))) - known)
            if unknown:
                issues.append(
                    _error(
                        join(collection, index, "task_epochs"),
                        f"Epoch(s) {unknown} do not belong to any task",
                        ErrorKind.REFERENTIAL,
                        "unknown_epoch",
                        Severity.WARNING,
                    )
                )
    return issues


Rule = Callable[[Any, DeviceTypeRegistry], List[ValidationError]]

RULES: Sequence[Rule] = (
    lambda doc, _: check_camera_references(doc),
    check_electrode_group_references,
    lambda doc, _: check_unique_ids(doc),
    lambda doc, _: check_duplicate_channels(doc),
    check_channel_completeness,
    lambda doc, _: check_optogenetics(doc),
    lambda doc, _: check_bad_channels(doc),
    lambda doc, _: check_epochs(doc),
)


def rule_errors(document: Any, *, registry: DeviceTypeRegistry | None = None) -> List[ValidationError]:
    registry = registry or DEFAULT_REGISTRY
    issues: List[ValidationError] = []
    for rule in RULES:
        issues.extend(rule(document, registry))
    return issues
