"""Hardware models: electrode groups, channel maps, cameras and acquisition devices."""

from __future__ import annotations

from typing import Annotated, Mapping, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .mappings import AS_DICT, Number, read_only


class ElectrodeGroup(BaseModel):
    """A co-located set of recording channels backed by one probe type."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    location: str = ""
    device_type: str = ""
    description: str = ""
    targeted_location: str = ""
    targeted_x: Number = 0.0
    targeted_y: Number = 0.0
    targeted_z: Number = 0.0
    units: str = "mm"


class NtrodeChannelMap(BaseModel):
    """Logical -> hardware channel assignment for one shank.

    ``map`` values of ``-1`` mean "unassigned". ``map`` is read-only with keys
    in ascending logical order, and ``bad_channels`` is kept sorted and
    de-duplicated so equal maps compare and serialize identically.
    """

    model_config = ConfigDict(frozen=True)

    ntrode_id: int = Field(ge=0)
    electrode_group_id: int = Field(ge=0)
    map: Annotated[Mapping[int, int], AS_DICT] = Field(default_factory=dict, validate_default=True)
    bad_channels: Tuple[int, ...] = ()

    @field_validator("map")
    @classmethod
    def _ordered_map(cls, value: Mapping[int, int]) -> Mapping[int, int]:
        for logical, hardware in value.items():
            if logical < 0:
                raise ValueError(f"logical channel {logical} must be >= 0")
            if hardware < -1:
                raise ValueError(f"hardware channel {hardware} must be >= -1")
        return read_only(sorted(value.items()))

    @field_validator("bad_channels")
    @classmethod
    def _sorted_unique(cls, value: Tuple[int, ...]) -> Tuple[int, ...]:
        return tuple(sorted(set(value)))

    def assigned(self) -> list[int]:
        """Non-sentinel hardware channels in logical order."""
        return [hw for hw in self.map.values() if hw != -1]


class Camera(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    meters_per_pixel: Number = 0.001
    manufacturer: str = ""
    model: str = ""
    lens: str = ""
    camera_name: str = ""


class DataAcqDevice(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    system: str = ""
    amplifier: str = ""
    adc_circuit: str = ""


class Devices(BaseModel):
    """Electrode topology of an Animal, stored by stable integer ids."""

    model_config = ConfigDict(frozen=True)

    electrode_groups: Tuple[ElectrodeGroup, ...] = ()
    channel_maps: Tuple[NtrodeChannelMap, ...] = ()

    def group(self, group_id: int) -> ElectrodeGroup | None:
        return next((g for g in self.electrode_groups if g.id == group_id), None)

    def maps_for_group(self, group_id: int) -> Tuple[NtrodeChannelMap, ...]:
        return tuple(m for m in self.channel_maps if m.electrode_group_id == group_id)

    def channel_map(self, ntrode_id: int) -> NtrodeChannelMap | None:
        return next((m for m in self.channel_maps if m.ntrode_id == ntrode_id), None)
