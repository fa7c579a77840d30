"""Animal template and its configuration history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .devices import Camera, DataAcqDevice, Devices
from .mappings import Number


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Subject(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject_id: str
    species: str = ""
    sex: Literal["M", "F", "U", "O"] = "U"
    genotype: str = ""
    date_of_birth: str = ""
    description: str = ""
    weight: Number = 0.0


class Experimenters(BaseModel):
    model_config = ConfigDict(frozen=True)

    experimenter_name: Tuple[str, ...] = ()
    lab: str = ""
    institution: str = ""


class BehavioralEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    name: str


class Optogenetics(BaseModel):
    """Optogenetic hardware carried by the Animal; exported only when configured."""

    model_config = ConfigDict(frozen=True)

    opto_excitation_source: Tuple[Dict[str, Any], ...] = ()
    optical_fiber: Tuple[Dict[str, Any], ...] = ()
    virus_injection: Tuple[Dict[str, Any], ...] = ()
    optogenetic_stimulation_software: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.opto_excitation_source or self.optical_fiber or self.virus_injection)


class ConfigurationSnapshot(BaseModel):
    """Immutable copy of an Animal's devices at a point in time."""

    model_config = ConfigDict(frozen=True)

    version: int = Field(ge=1)
    date: str
    description: str = ""
    devices: Devices = Field(default_factory=Devices)


class Animal(BaseModel):
    """Reusable per-subject hardware and identity template."""

    model_config = ConfigDict(frozen=True)

    id: str
    subject: Subject
    experimenters: Experimenters = Field(default_factory=Experimenters)
    devices: Devices = Field(default_factory=Devices)
    cameras: Tuple[Camera, ...] = ()
    data_acq_device: Tuple[DataAcqDevice, ...] = ()
    device_names: Tuple[str, ...] = ()
    behavioral_events: Tuple[BehavioralEvent, ...] = ()
    optogenetics: Optional[Optogenetics] = None
    days: Tuple[str, ...] = ()
    configuration_history: Tuple[ConfigurationSnapshot, ...] = ()
    next_ntrode_id: int = Field(default=0, ge=0)
    created: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)

    @property
    def latest_version(self) -> int | None:
        if not self.configuration_history:
            return None
        return max(s.version for s in self.configuration_history)

    def snapshot(self, version: int | None) -> ConfigurationSnapshot | None:
        return next((s for s in self.configuration_history if s.version == version), None)

    def ntrode_floor(self) -> int:
        """Smallest ntrode id that has never been handed out on this Animal."""
        current = max((m.ntrode_id for m in self.devices.channel_maps), default=-1) + 1
        return max(current, self.next_ntrode_id)
