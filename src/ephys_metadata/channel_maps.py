"""Channel-map generation, editing and conflict detection.

Maps are generated with an offset layout: shank ``s`` of a probe with ``c``
channels per shank owns hardware channels ``c*s .. c*s + c - 1`` and logical
channel ``i`` starts out wired to ``c*s + i``. Edits never enforce uniqueness;
duplicate and missing assignments are reported by the validator so that
intermediate states (for example half of a swap) stay representable.
"""

from __future__ import annotations

import io
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

import pandas as pd

from .device_types import DEFAULT_REGISTRY, DeviceSpec, DeviceTypeRegistry
from .models import ElectrodeGroup, NtrodeChannelMap
from .models.mappings import read_only

UNASSIGNED = -1


def next_ntrode_id(existing_maps: Iterable[NtrodeChannelMap], floor: int | None = None) -> int:
    """First ntrode id after every id in ``existing_maps`` (and at least ``floor``)."""
    candidate = max((m.ntrode_id for m in existing_maps), default=-1) + 1
    if floor is not None:
        candidate = max(candidate, floor)
    return candidate


def maps_for_group(channel_maps: Iterable[NtrodeChannelMap], group_id: int) -> List[NtrodeChannelMap]:
    return [m for m in channel_maps if m.electrode_group_id == group_id]


def generate(
    device_type: str,
    electrode_group_id: int,
    existing_maps: Sequence[NtrodeChannelMap],
    *,
    registry: DeviceTypeRegistry | None = None,
    floor: int | None = None,
) -> List[NtrodeChannelMap]:
    """Create one channel map per shank of ``device_type``.

    Raises ``UnknownDeviceType`` when the registry has no entry for the key.
    """

    spec = (registry or DEFAULT_REGISTRY).lookup(device_type)
    base = next_ntrode_id(existing_maps, floor)
    return [
        NtrodeChannelMap(
            ntrode_id=base + shank,
            electrode_group_id=electrode_group_id,
            map={i: spec.channels_per_shank * shank + i for i in range(spec.channels_per_shank)},
            bad_channels=(),
        )
        for shank in range(spec.shank_count)
    ]


def generate_all(
    electrode_groups: Sequence[ElectrodeGroup],
    *,
    registry: DeviceTypeRegistry | None = None,
) -> List[NtrodeChannelMap]:
    """Regenerate maps for every group in order, numbering ntrodes from zero."""
    maps: List[NtrodeChannelMap] = []
    for group in electrode_groups:
        maps.extend(generate(group.device_type, group.id, maps, registry=registry))
    return maps


def reassign(channel_map: NtrodeChannelMap, logical_channel: int, new_hardware_channel: int) -> NtrodeChannelMap:
    """Return a copy of ``channel_map`` with one logical channel rewired (``-1`` unassigns)."""

    if logical_channel not in channel_map.map:
        raise KeyError(f"ntrode {channel_map.ntrode_id} has no logical channel {logical_channel}")
    if new_hardware_channel < UNASSIGNED:
        raise ValueError(f"hardware channel must be >= {UNASSIGNED}, got {new_hardware_channel}")
    updated = dict(channel_map.map)
    updated[logical_channel] = new_hardware_channel
    return channel_map.model_copy(update={"map": read_only(updated)})


@dataclass(frozen=True)
class DuplicatedGroup:
    group: ElectrodeGroup
    channel_maps: List[NtrodeChannelMap] = field(default_factory=list)


def duplicate(
    electrode_group: ElectrodeGroup,
    channel_maps_for_group: Sequence[NtrodeChannelMap],
    all_existing_maps: Sequence[NtrodeChannelMap],
    *,
    electrode_groups: Sequence[ElectrodeGroup] | None = None,
    floor: int | None = None,
) -> DuplicatedGroup:
    """Clone a group and its maps with fresh ids; hardware wiring is copied verbatim.

    The new group id is one past the highest id in ``electrode_groups``.
    Without ``electrode_groups`` only the ids referenced by
    ``all_existing_maps`` are known, so a group that has no maps can collide
    with the clone. Callers holding the full Animal must pass its groups.
    """

    if electrode_groups is not None:
        group_ids = [g.id for g in electrode_groups]
    else:
        group_ids = [m.electrode_group_id for m in all_existing_maps]
    new_group_id = max([electrode_group.id, *group_ids]) + 1
    clone = electrode_group.model_copy(update={"id": new_group_id})

    base = next_ntrode_id([*all_existing_maps, *channel_maps_for_group], floor)
    ordered = sorted(channel_maps_for_group, key=lambda m: m.ntrode_id)
    cloned_maps = [
        NtrodeChannelMap(
            ntrode_id=base + offset,
            electrode_group_id=new_group_id,
            map=dict(source.map),
            bad_channels=source.bad_channels,
        )
        for offset, source in enumerate(ordered)
    ]
    return DuplicatedGroup(group=clone, channel_maps=cloned_maps)


def available_options(
    channel_map: NtrodeChannelMap,
    logical_channel: int,
    all_hardware_channels: Iterable[int],
) -> List[int]:
    """Candidate values for ``logical_channel``: unassigned, unused, or its current value."""

    current = channel_map.map.get(logical_channel, UNASSIGNED)
    used = {hw for logical, hw in channel_map.map.items() if logical != logical_channel and hw != UNASSIGNED}
    options = {UNASSIGNED, current}
    options.update(hw for hw in all_hardware_channels if hw not in used)
    return sorted(options)


def duplicate_assignments(channel_map: NtrodeChannelMap) -> Dict[int, List[int]]:
    """Hardware channels wired to more than one logical channel -> those logical channels."""
    wired: Dict[int, List[int]] = defaultdict(list)
    for logical, hardware in channel_map.map.items():
        if hardware != UNASSIGNED:
            wired[hardware].append(logical)
    return {hw: logicals for hw, logicals in sorted(wired.items()) if len(logicals) > 1}


def missing_assignments(channel_map: NtrodeChannelMap, expected: Iterable[int]) -> List[int]:
    present = set(channel_map.assigned())
    return sorted(hw for hw in expected if hw not in present)


def shank_index(channel_map: NtrodeChannelMap, group_maps: Sequence[NtrodeChannelMap]) -> int:
    """Shank a map describes: its rank among the group's maps ordered by ntrode id."""
    ordered = sorted(m.ntrode_id for m in group_maps)
    return ordered.index(channel_map.ntrode_id)


def expected_channels(spec: DeviceSpec, shank: int) -> range:
    return spec.shank_range(shank)


CSV_KEY_COLUMNS = ["electrode_group_id", "device_type", "location", "ntrode_id", "bad_channels"]


def export_channel_maps_csv(
    channel_maps: Sequence[NtrodeChannelMap],
    electrode_groups: Sequence[ElectrodeGroup] = (),
) -> str:
    """Flatten maps to CSV (one row per ntrode, ``channel_<i>`` columns) for spreadsheet editing."""

    if not channel_maps:
        return ""
    groups = {g.id: g for g in electrode_groups}
    width = max((max(m.map, default=-1) + 1 for m in channel_maps), default=0)
    rows = []
    for channel_map in channel_maps:
        group = groups.get(channel_map.electrode_group_id)
        row: Dict[str, object] = {
            "electrode_group_id": channel_map.electrode_group_id,
            "device_type": group.device_type if group else "",
            "location": group.location if group else "",
            "ntrode_id": channel_map.ntrode_id,
            "bad_channels": ",".join(str(c) for c in channel_map.bad_channels),
        }
        for logical in range(width):
            row[f"channel_{logical}"] = channel_map.map.get(logical, "")
        rows.append(row)
    columns = CSV_KEY_COLUMNS + [f"channel_{i}" for i in range(width)]
    frame = pd.DataFrame(rows, columns=columns)
    return frame.to_csv(index=False, lineterminator="\n")


def _parse_int(value: str, column: str, row: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ValueError(f"Invalid numeric value for {column} at row {row}: {value!r}") from None


def import_channel_maps_csv(text: str) -> List[NtrodeChannelMap]:
    """Parse CSV produced by :func:`export_channel_maps_csv` back into channel maps."""

    if not text.strip():
        raise ValueError("CSV must contain a header and at least one data row")
    frame = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    if frame.empty:
        raise ValueError("CSV must contain a header and at least one data row")

    missing = [c for c in ("electrode_group_id", "ntrode_id", "bad_channels") if c not in frame.columns]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")
    channel_columns = sorted(
        (c for c in frame.columns if c.startswith("channel_")),
        key=lambda c: int(c.split("_", 1)[1]),
    )
    if not channel_columns:
        raise ValueError("Missing required columns: no channel_<n> columns found")

    maps: List[NtrodeChannelMap] = []
    for position, record in enumerate(frame.to_dict(orient="records"), start=2):
        bad = [
            _parse_int(v, "bad_channels", position)
            for v in record["bad_channels"].split(",")
            if v.strip()
        ]
        mapping = {
            int(column.split("_", 1)[1]): _parse_int(record[column], column, position)
            for column in channel_columns
            if record[column].strip()
        }
        maps.append(
            NtrodeChannelMap(
                ntrode_id=_parse_int(record["ntrode_id"], "ntrode_id", position),
                electrode_group_id=_parse_int(record["electrode_group_id"], "electrode_group_id", position),
                map=mapping,
                bad_channels=tuple(bad),
            )
        )
    return maps


__all__ = [
    "UNASSIGNED",
    "DuplicatedGroup",
    "available_options",
    "duplicate",
    "duplicate_assignments",
    "expected_channels",
    "export_channel_maps_csv",
    "generate",
    "generate_all",
    "import_channel_maps_csv",
    "maps_for_group",
    "missing_assignments",
    "next_ntrode_id",
    "reassign",
    "shank_index",
]
