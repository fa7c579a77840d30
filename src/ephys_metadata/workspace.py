"""Immutable Animal/Day workspace and the pure actions that transform it.

Every action takes the current :class:`Workspace` and returns a new one. A
failing action raises and leaves its input untouched, so a holder can keep
the previous root as a valid historical view.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import channel_maps as cm
from .config import Settings
from .device_types import DeviceTypeRegistry
from .errors import (
    AnimalInUse,
    DuplicateEntity,
    UnknownAnimal,
    UnknownChannelMap,
    UnknownDay,
    UnknownElectrodeGroup,
)
from .models import (
    Animal,
    ConfigurationSnapshot,
    Day,
    DayOverrides,
    DayState,
    Devices,
    ElectrodeGroup,
    Experimenters,
    NtrodeChannelMap,
    Session,
    Subject,
    Technical,
    make_day_id,
)
from .models.animal import utc_now
from .models.mappings import AS_DICT, read_only

WORKSPACE_VERSION = "1.0.0"
INITIAL_SNAPSHOT_DESCRIPTION = "Initial configuration"

logger = logging.getLogger(__name__)


class Workspace(BaseModel):
    """Root of the entity graph. Animals and Days are keyed by their ids.

    Both collections are read-only mappings, so a root stays a valid view
    after later actions have produced newer roots.
    """

    model_config = ConfigDict(frozen=True)

    version: str = WORKSPACE_VERSION
    animals: Annotated[Mapping[str, Animal], AS_DICT] = Field(default_factory=dict, validate_default=True)
    days: Annotated[Mapping[str, Day], AS_DICT] = Field(default_factory=dict, validate_default=True)
    revision: int = 0

    @field_validator("animals", "days")
    @classmethod
    def _read_only(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return read_only(value)


def _commit(
    workspace: Workspace,
    *,
    animals: Mapping[str, Animal] | None = None,
    days: Mapping[str, Day] | None = None,
) -> Workspace:
    update: Dict[str, Any] = {"revision": workspace.revision + 1}
    if animals is not None:
        update["animals"] = read_only(animals)
    if days is not None:
        update["days"] = read_only(days)
    return workspace.model_copy(update=update)


def _replace_animal(workspace: Workspace, animal: Animal) -> Workspace:
    animals = dict(workspace.animals)
    animals[animal.id] = animal.model_copy(update={"last_modified": utc_now()})
    return _commit(workspace, animals=animals)


def _replace_day(workspace: Workspace, day: Day) -> Workspace:
    days = dict(workspace.days)
    days[day.id] = day.model_copy(update={"last_modified": utc_now()})
    return _commit(workspace, days=days)


def _as_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _deep_merge(base: Mapping[str, Any], changes: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        value = _as_plain(value)
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _parse_date(value: dt.date | str) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(value)


# -- selectors ---------------------------------------------------------------


def get_animal(workspace: Workspace, animal_id: str) -> Animal:
    try:
        return workspace.animals[animal_id]
    except KeyError:
        raise UnknownAnimal(animal_id) from None


def get_day(workspace: Workspace, day_id: str) -> Day:
    try:
        return workspace.days[day_id]
    except KeyError:
        raise UnknownDay(day_id) from None


def list_animals(workspace: Workspace) -> List[Animal]:
    return [workspace.animals[key] for key in sorted(workspace.animals)]


def get_animal_days(workspace: Workspace, animal_id: str) -> List[Day]:
    """Days of ``animal_id`` ordered by recording date."""
    animal = get_animal(workspace, animal_id)
    days = [workspace.days[day_id] for day_id in animal.days if day_id in workspace.days]
    return sorted(days, key=lambda d: (d.date, d.id))


def _get_group(animal: Animal, group_id: int) -> ElectrodeGroup:
    group = animal.devices.group(group_id)
    if group is None:
        raise UnknownElectrodeGroup(animal.id, group_id)
    return group


# -- animals -----------------------------------------------------------------


def create_animal(
    workspace: Workspace,
    animal_id: str,
    subject: Subject | Mapping[str, Any],
    *,
    experimenters: Experimenters | Mapping[str, Any] | None = None,
    electrode_groups: Sequence[ElectrodeGroup | Mapping[str, Any]] = (),
    channel_maps: Sequence[NtrodeChannelMap | Mapping[str, Any]] | None = None,
    registry: DeviceTypeRegistry | None = None,
    settings: Settings | None = None,
    today: dt.date | None = None,
    **fields: Any,
) -> Workspace:
    """Add a new Animal with an initial configuration snapshot (version 1).

    When ``channel_maps`` is omitted, maps are generated for every electrode
    group from its device type.
    """

    if not animal_id or not animal_id.strip():
        raise ValueError("animal_id must be a non-empty string")
    if animal_id in workspace.animals:
        raise DuplicateEntity("Animal", animal_id)

    settings = settings or Settings()
    if experimenters is None:
        experimenters = Experimenters(
            experimenter_name=settings.experimenter_name,
            lab=settings.lab,
            institution=settings.institution,
        )
    groups = tuple(ElectrodeGroup.model_validate(_as_plain(g)) for g in electrode_groups)
    if channel_maps is None:
        maps = tuple(cm.generate_all(groups, registry=registry or settings.device_registry()))
    else:
        maps = tuple(NtrodeChannelMap.model_validate(_as_plain(m)) for m in channel_maps)
    devices = Devices(electrode_groups=groups, channel_maps=maps)

    snapshot = ConfigurationSnapshot(
        version=1,
        date=(today or dt.date.today()).isoformat(),
        description=INITIAL_SNAPSHOT_DESCRIPTION,
        devices=devices,
    )
    payload = {key: _as_plain(value) for key, value in fields.items()}
    animal = Animal.model_validate(
        {
            **payload,
            "id": animal_id,
            "subject": _as_plain(subject),
            "experimenters": _as_plain(experimenters),
            "devices": devices,
            "configuration_history": (snapshot,),
            "next_ntrode_id": cm.next_ntrode_id(maps),
        }
    )
    animals = dict(workspace.animals)
    animals[animal_id] = animal
    return _commit(workspace, animals=animals)


_ANIMAL_IMMUTABLE = {"id", "days", "configuration_history", "created"}


def update_animal(workspace: Workspace, animal_id: str, changes: Mapping[str, Any]) -> Workspace:
    """Partially update an Animal; nested mappings are merged rather than replaced."""

    animal = get_animal(workspace, animal_id)
    blocked = _ANIMAL_IMMUTABLE.intersection(changes)
    if blocked:
        raise ValueError(f"Cannot update animal field(s): {', '.join(sorted(blocked))}")
    merged = _deep_merge(animal.model_dump(), changes)
    updated = Animal.model_validate(merged)
    updated = updated.model_copy(
        update={"next_ntrode_id": max(animal.ntrode_floor(), updated.ntrode_floor())}
    )
    return _replace_animal(workspace, updated)


def delete_animal(workspace: Workspace, animal_id: str, *, cascade: bool = False) -> Workspace:
    """Remove an Animal. Refuses while Days reference it unless ``cascade`` is set."""

    animal = get_animal(workspace, animal_id)
    day_ids = tuple(d for d in animal.days if d in workspace.days)
    if day_ids and not cascade:
        raise AnimalInUse(animal_id, day_ids)
    animals = {k: v for k, v in workspace.animals.items() if k != animal_id}
    days = {k: v for k, v in workspace.days.items() if v.animal_id != animal_id}
    return _commit(workspace, animals=animals, days=days)


def add_configuration_snapshot(
    workspace: Workspace,
    animal_id: str,
    description: str = "",
    *,
    today: dt.date | None = None,
) -> Workspace:
    """Record the Animal's current devices as the next configuration version."""

    animal = get_animal(workspace, animal_id)
    version = (animal.latest_version or 0) + 1
    snapshot = ConfigurationSnapshot(
        version=version,
        date=(today or dt.date.today()).isoformat(),
        description=description or f"Configuration {version}",
        devices=animal.devices,
    )
    updated = animal.model_copy(
        update={"configuration_history": animal.configuration_history + (snapshot,)}
    )
    return _replace_animal(workspace, updated)


# -- days --------------------------------------------------------------------


def derive_session_id(animal_id: str, date: dt.date, separator: str = "_") -> str:
    return f"{animal_id}{separator}{date.strftime('%Y%m%d')}"


def create_day(
    workspace: Workspace,
    animal_id: str,
    date: dt.date | str,
    session: Session | Mapping[str, Any] | None = None,
    *,
    settings: Settings | None = None,
    **fields: Any,
) -> Workspace:
    """Create a draft Day for ``animal_id`` on ``date``.

    ``session_id`` is derived from the animal id and date unless the seed
    supplies a non-blank one. The Day points at the Animal's latest
    configuration version.
    """

    animal = get_animal(workspace, animal_id)
    date = _parse_date(date)
    day_id = make_day_id(animal_id, date)
    if day_id in workspace.days:
        raise DuplicateEntity("Day", day_id)

    settings = settings or Settings()
    seed = dict(_as_plain(session) or {})
    if not str(seed.get("session_id") or "").strip():
        seed["session_id"] = derive_session_id(animal_id, date, settings.session_id_separator)

    payload = {key: _as_plain(value) for key, value in fields.items()}
    payload.setdefault(
        "technical",
        Technical(
            times_period_multiplier=settings.times_period_multiplier,
            raw_data_to_volts=settings.raw_data_to_volts,
            default_header_file_path=settings.default_header_file_path,
        ),
    )
    day = Day.model_validate(
        {
            **payload,
            "id": day_id,
            "animal_id": animal_id,
            "date": date,
            "session": seed,
            "state": DayState.DRAFT,
            "configuration_snapshot_ref": animal.latest_version,
        }
    )

    animals = dict(workspace.animals)
    animals[animal_id] = animal.model_copy(
        update={"days": animal.days + (day_id,), "last_modified": utc_now()}
    )
    days = dict(workspace.days)
    days[day_id] = day
    return _commit(workspace, animals=animals, days=days)


_DAY_IMMUTABLE = {"id", "animal_id", "date", "created"}


def update_day(workspace: Workspace, day_id: str, changes: Mapping[str, Any]) -> Workspace:
    day = get_day(workspace, day_id)
    blocked = _DAY_IMMUTABLE.intersection(changes)
    if blocked:
        raise ValueError(f"Cannot update day field(s): {', '.join(sorted(blocked))}")
    merged = _deep_merge(day.model_dump(), changes)
    return _replace_day(workspace, Day.model_validate(merged))


def delete_day(workspace: Workspace, day_id: str) -> Workspace:
    day = get_day(workspace, day_id)
    days = {k: v for k, v in workspace.days.items() if k != day_id}
    animals = dict(workspace.animals)
    owner = animals.get(day.animal_id)
    if owner is not None:
        animals[owner.id] = owner.model_copy(
            update={"days": tuple(d for d in owner.days if d != day_id), "last_modified": utc_now()}
        )
    return _commit(workspace, animals=animals, days=days)


def set_day_state(workspace: Workspace, day_id: str, state: DayState | str) -> Workspace:
    day = get_day(workspace, day_id)
    return _replace_day(workspace, day.model_copy(update={"state": DayState(state)}))


def set_bad_channels(
    workspace: Workspace,
    day_id: str,
    group_id: int,
    channels: Iterable[int] | None,
) -> Workspace:
    """Set (or with ``None`` clear) a Day's bad-channel override for one electrode group."""

    day = get_day(workspace, day_id)
    animal = get_animal(workspace, day.animal_id)
    _get_group(animal, group_id)
    overrides = dict(day.overrides.bad_channels)
    if channels is None:
        overrides.pop(group_id, None)
    else:
        wanted = set(channels)
        wired = {hw for m in animal.devices.maps_for_group(group_id) for hw in m.assigned()}
        unknown = sorted(wanted - wired)
        if unknown:
            raise ValueError(
                f"Channel(s) {unknown} are not wired in electrode group {group_id} of animal {animal.id!r}"
            )
        overrides[group_id] = tuple(sorted(wanted))
    updated = day.model_copy(update={"overrides": day.overrides.model_copy(update={"bad_channels": overrides})})
    # model_copy skips validators; rebuild so override keys stay ordered.
    return _replace_day(workspace, Day.model_validate(updated.model_dump()))


# -- electrode groups and channel maps ---------------------------------------


def _with_devices(animal: Animal, groups: Sequence[ElectrodeGroup], maps: Sequence[NtrodeChannelMap]) -> Animal:
    devices = Devices(electrode_groups=tuple(groups), channel_maps=tuple(maps))
    floor = max(animal.ntrode_floor(), cm.next_ntrode_id(maps))
    return animal.model_copy(update={"devices": devices, "next_ntrode_id": floor})


def add_electrode_group(
    workspace: Workspace,
    animal_id: str,
    group: ElectrodeGroup | Mapping[str, Any],
    *,
    registry: DeviceTypeRegistry | None = None,
) -> Workspace:
    """Append an electrode group and generate its maps when a device type is set.

    A mapping without ``id`` gets the next free group id.
    """

    animal = get_animal(workspace, animal_id)
    raw = dict(_as_plain(group))
    existing = [g.id for g in animal.devices.electrode_groups]
    if raw.get("id") is None:
        raw["id"] = max(existing, default=-1) + 1
    new_group = ElectrodeGroup.model_validate(raw)
    if new_group.id in existing:
        raise DuplicateEntity("Electrode group", new_group.id)

    maps = list(animal.devices.channel_maps)
    if new_group.device_type:
        maps.extend(
            cm.generate(
                new_group.device_type,
                new_group.id,
                animal.devices.channel_maps,
                registry=registry,
                floor=animal.ntrode_floor(),
            )
        )
    groups = [*animal.devices.electrode_groups, new_group]
    return _replace_animal(workspace, _with_devices(animal, groups, maps))


def set_device_type(
    workspace: Workspace,
    animal_id: str,
    group_id: int,
    device_type: str,
    *,
    registry: DeviceTypeRegistry | None = None,
) -> Workspace:
    """Change a group's probe type and regenerate its maps with fresh ntrode ids."""

    animal = get_animal(workspace, animal_id)
    group = _get_group(animal, group_id)
    kept = [m for m in animal.devices.channel_maps if m.electrode_group_id != group_id]
    fresh = cm.generate(device_type, group_id, kept, registry=registry, floor=animal.ntrode_floor())
    groups = [
        g.model_copy(update={"device_type": device_type}) if g.id == group.id else g
        for g in animal.devices.electrode_groups
    ]
    return _replace_animal(workspace, _with_devices(animal, groups, kept + fresh))


def delete_electrode_group(workspace: Workspace, animal_id: str, group_id: int) -> Workspace:
    """Remove a group together with its channel maps and any Day overrides for it."""

    animal = get_animal(workspace, animal_id)
    _get_group(animal, group_id)
    groups = [g for g in animal.devices.electrode_groups if g.id != group_id]
    maps = [m for m in animal.devices.channel_maps if m.electrode_group_id != group_id]
    updated = _with_devices(animal, groups, maps).model_copy(update={"last_modified": utc_now()})

    animals = dict(workspace.animals)
    animals[animal_id] = updated
    days = dict(workspace.days)
    for day_id in animal.days:
        day = days.get(day_id)
        if day is None or group_id not in day.overrides.bad_channels:
            continue
        remaining = {k: v for k, v in day.overrides.bad_channels.items() if k != group_id}
        days[day_id] = day.model_copy(update={"overrides": DayOverrides(bad_channels=remaining)})
    return _commit(workspace, animals=animals, days=days)


def duplicate_electrode_group(workspace: Workspace, animal_id: str, group_id: int) -> Workspace:
    """Clone a group next to the original; clone maps follow the original's maps."""

    animal = get_animal(workspace, animal_id)
    group = _get_group(animal, group_id)
    source_maps = animal.devices.maps_for_group(group_id)
    result = cm.duplicate(
        group,
        source_maps,
        animal.devices.channel_maps,
        electrode_groups=animal.devices.electrode_groups,
        floor=animal.ntrode_floor(),
    )

    groups: List[ElectrodeGroup] = []
    for existing in animal.devices.electrode_groups:
        groups.append(existing)
        if existing.id == group_id:
            groups.append(result.group)

    maps = list(animal.devices.channel_maps)
    last_index = max((i for i, m in enumerate(maps) if m.electrode_group_id == group_id), default=len(maps) - 1)
    maps[last_index + 1:last_index + 1] = result.channel_maps
    return _replace_animal(workspace, _with_devices(animal, groups, maps))


def reassign_channel(
    workspace: Workspace,
    animal_id: str,
    ntrode_id: int,
    logical_channel: int,
    hardware_channel: int,
) -> Workspace:
    animal = get_animal(workspace, animal_id)
    target = animal.devices.channel_map(ntrode_id)
    if target is None:
        raise UnknownChannelMap(animal_id, ntrode_id)
    rewired = cm.reassign(target, logical_channel, hardware_channel)
    maps = [rewired if m.ntrode_id == ntrode_id else m for m in animal.devices.channel_maps]
    return _replace_animal(workspace, _with_devices(animal, animal.devices.electrode_groups, maps))


def replace_channel_maps(
    workspace: Workspace,
    animal_id: str,
    channel_maps: Sequence[NtrodeChannelMap],
) -> Workspace:
    """Swap in a full set of maps (e.g. from CSV); every map must reference a known group."""

    animal = get_animal(workspace, animal_id)
    for channel_map in channel_maps:
        _get_group(animal, channel_map.electrode_group_id)
    ids = [m.ntrode_id for m in channel_maps]
    if len(ids) != len(set(ids)):
        duplicated = sorted({i for i in ids if ids.count(i) > 1})
        raise DuplicateEntity("Ntrode", duplicated[0])
    return _replace_animal(workspace, _with_devices(animal, animal.devices.electrode_groups, channel_maps))


# -- configuration history ---------------------------------------------------


@dataclass
class ConfigurationDiff:
    added_groups: List[int] = field(default_factory=list)
    removed_groups: List[int] = field(default_factory=list)
    changed_groups: List[int] = field(default_factory=list)
    added_maps: List[int] = field(default_factory=list)
    removed_maps: List[int] = field(default_factory=list)
    changed_maps: List[int] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(
            (
                self.added_groups,
                self.removed_groups,
                self.changed_groups,
                self.added_maps,
                self.removed_maps,
                self.changed_maps,
            )
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "added_groups": self.added_groups,
            "removed_groups": self.removed_groups,
            "changed_groups": self.changed_groups,
            "added_maps": self.added_maps,
            "removed_maps": self.removed_maps,
            "changed_maps": self.changed_maps,
            "has_changes": self.has_changes,
        }


def diff_configurations(previous: Devices, current: Devices) -> ConfigurationDiff:
    """Compare two device configurations by group id and ntrode id."""

    before_groups = {g.id: g for g in previous.electrode_groups}
    after_groups = {g.id: g for g in current.electrode_groups}
    before_maps = {m.ntrode_id: m for m in previous.channel_maps}
    after_maps = {m.ntrode_id: m for m in current.channel_maps}
    return ConfigurationDiff(
        added_groups=sorted(after_groups.keys() - before_groups.keys()),
        removed_groups=sorted(before_groups.keys() - after_groups.keys()),
        changed_groups=sorted(k for k in before_groups.keys() & after_groups.keys() if before_groups[k] != after_groups[k]),
        added_maps=sorted(after_maps.keys() - before_maps.keys()),
        removed_maps=sorted(before_maps.keys() - after_maps.keys()),
        changed_maps=sorted(k for k in before_maps.keys() & after_maps.keys() if before_maps[k] != after_maps[k]),
    )


def configuration_drift(animal: Animal, day: Day) -> Optional[ConfigurationDiff]:
    """Diff between the snapshot a Day was created against and the Animal's current devices."""

    snapshot = animal.snapshot(day.configuration_snapshot_ref)
    if snapshot is None:
        return None
    return diff_configurations(snapshot.devices, animal.devices)


# -- persistence -------------------------------------------------------------


def save_workspace(workspace: Workspace, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(workspace.model_dump_json(indent=2), encoding="utf-8")
    return path


def load_workspace(path: str | Path) -> Workspace:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    return Workspace.model_validate_json(path.read_text(encoding="utf-8"))


__all__ = [
    "WORKSPACE_VERSION",
    "ConfigurationDiff",
    "Workspace",
    "add_configuration_snapshot",
    "add_electrode_group",
    "configuration_drift",
    "create_animal",
    "create_day",
    "delete_animal",
    "delete_day",
    "delete_electrode_group",
    "derive_session_id",
    "diff_configurations",
    "duplicate_electrode_group",
    "get_animal",
    "get_animal_days",
    "get_day",
    "list_animals",
    "load_workspace",
    "reassign_channel",
    "replace_channel_maps",
    "save_workspace",
    "set_bad_channels",
    "set_day_state",
    "set_device_type",
    "update_animal",
    "update_day",
]
