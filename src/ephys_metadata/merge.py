"""Effective Day resolution: Animal template + Day deltas -> exportable document."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .errors import UnknownSnapshot
from .models import (
    Animal,
    AssociatedFile,
    AssociatedVideoFile,
    BehavioralEvent,
    Camera,
    DataAcqDevice,
    Day,
    ElectrodeGroup,
    Experimenters,
    NtrodeChannelMap,
    Optogenetics,
    Session,
    Subject,
    Task,
    Technical,
)


class EffectiveDay(BaseModel):
    """Merged, read-only configuration for one session. Not storable as a Day."""

    model_config = ConfigDict(frozen=True)

    day_id: str
    animal_id: str
    date: dt.date
    experimenters: Experimenters
    session: Session
    subject: Subject
    data_acq_device: Tuple[DataAcqDevice, ...]
    device_names: Tuple[str, ...]
    cameras: Tuple[Camera, ...]
    electrode_groups: Tuple[ElectrodeGroup, ...]
    channel_maps: Tuple[NtrodeChannelMap, ...]
    tasks: Tuple[Task, ...]
    behavioral_events: Tuple[BehavioralEvent, ...]
    associated_files: Tuple[AssociatedFile, ...]
    associated_video_files: Tuple[AssociatedVideoFile, ...]
    fs_gui_yamls: Tuple[Dict[str, Any], ...] = ()
    technical: Technical
    optogenetics: Optional[Optogenetics] = None

    @property
    def experiment_date(self) -> str:
        return self.date.strftime("%m%d%Y")

    def to_document(self) -> Dict[str, Any]:
        """Wire-shaped document (plain dicts and lists) in export field order."""

        document: Dict[str, Any] = {
            "experimenter_name": list(self.experimenters.experimenter_name),
            "lab": self.experimenters.lab,
            "institution": self.experimenters.institution,
            "experiment_description": self.session.experiment_description,
            "session_description": self.session.session_description,
            "session_id": self.session.session_id,
            "keywords": list(self.session.keywords),
            "subject": _plain(self.subject),
            "data_acq_device": [_plain(d) for d in self.data_acq_device],
            "device": {"name": list(self.device_names)},
            "cameras": [_plain(c) for c in self.cameras],
            "electrode_groups": [_plain(g) for g in self.electrode_groups],
            "ntrode_electrode_group_channel_map": [_channel_map_document(m) for m in self.channel_maps],
            "tasks": [_plain(t) for t in self.tasks],
            "behavioral_events": [_plain(e) for e in self.behavioral_events],
            "associated_files": [_plain(f) for f in self.associated_files],
            "associated_video_files": [_plain(f) for f in self.associated_video_files],
            "times_period_multiplier": self.technical.times_period_multiplier,
            "raw_data_to_volts": self.technical.raw_data_to_volts,
            "default_header_file_path": self.technical.default_header_file_path,
            "units": _plain(self.technical.units),
        }
        if self.optogenetics is not None and self.optogenetics.configured:
            document.update(_plain(self.optogenetics))
        if self.fs_gui_yamls:
            document["fs_gui_yamls"] = _listify(self.fs_gui_yamls)
        return document


def _listify(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _listify(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_listify(item) for item in value]
    return value


def _plain(model: BaseModel) -> Dict[str, Any]:
    return _listify(model.model_dump())


def _channel_map_document(channel_map: NtrodeChannelMap) -> Dict[str, Any]:
    return {
        "ntrode_id": channel_map.ntrode_id,
        "electrode_group_id": channel_map.electrode_group_id,
        "bad_channels": list(channel_map.bad_channels),
        "map": dict(channel_map.map),
    }


def apply_bad_channel_override(
    channel_map: NtrodeChannelMap,
    override: Iterable[int] | None,
) -> NtrodeChannelMap:
    """Replace a map's bad channels with the Day override for its group, if any.

    Overrides are keyed by electrode group, so on multi-shank probes each map
    keeps only the override channels it actually wires.
    """

    if override is None:
        return channel_map
    wired = set(channel_map.assigned())
    bad = tuple(sorted({channel for channel in override if channel in wired}))
    return channel_map.model_copy(update={"bad_channels": bad})


def resolve_day(animal: Animal, day: Day, *, use_snapshot: bool = False) -> EffectiveDay:
    """Merge ``day`` onto ``animal``.

    Subject, experimenters, hardware and behavioral events are inherited from
    the Animal; session, tasks, files and technical parameters come from the
    Day. A Day-level ``session.weight`` overrides the subject weight. With
    ``use_snapshot`` the devices come from the configuration version the Day
    was created against instead of the Animal's current devices.
    """

    if day.animal_id != animal.id:
        raise ValueError(f"Day {day.id!r} belongs to {day.animal_id!r}, not {animal.id!r}")

    devices = animal.devices
    if use_snapshot:
        snapshot = animal.snapshot(day.configuration_snapshot_ref)
        if snapshot is None:
            raise UnknownSnapshot(animal.id, day.configuration_snapshot_ref or 0)
        devices = snapshot.devices

    subject = animal.subject
    if day.session.weight is not None:
        subject = subject.model_copy(update={"weight": day.session.weight})

    overrides = day.overrides.bad_channels
    channel_maps = tuple(
        apply_bad_channel_override(m, overrides.get(m.electrode_group_id)) for m in devices.channel_maps
    )

    return EffectiveDay(
        day_id=day.id,
        animal_id=animal.id,
        date=day.date,
        experimenters=animal.experimenters,
        session=day.session,
        subject=subject,
        data_acq_device=animal.data_acq_device,
        device_names=animal.device_names,
        cameras=animal.cameras,
        electrode_groups=devices.electrode_groups,
        channel_maps=channel_maps,
        tasks=day.tasks,
        behavioral_events=animal.behavioral_events,
        associated_files=day.associated_files,
        associated_video_files=day.associated_video_files,
        fs_gui_yamls=day.fs_gui_yamls,
        technical=day.technical,
        optogenetics=animal.optogenetics,
    )


__all__ = ["EffectiveDay", "apply_bad_channel_override", "resolve_day"]
