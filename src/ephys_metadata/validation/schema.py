"""Strict structural schema of the exported metadata document.

Field declaration order here is the canonical key order of the wire format;
:mod:`ephys_metadata.serialization` reads it back when encoding.
"""

from __future__ import annotations

import typing
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Type

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def _non_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty or whitespace-only")
    return value


def _iso_datetime(value: str) -> str:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValueError("must be an ISO 8601 date or datetime") from None
    return value


NonEmptyStr = Annotated[str, AfterValidator(_non_blank)]
IsoDateTimeStr = Annotated[str, AfterValidator(_iso_datetime)]
NonNegativeInt = Annotated[int, Field(ge=0)]
HardwareChannel = Annotated[int, Field(ge=-1)]
PositiveFloat = Annotated[float, Field(gt=0, allow_inf_nan=False)]
FiniteFloat = Annotated[float, Field(allow_inf_nan=False)]


class _Strict(BaseModel):
    model_config = ConfigDict(strict=True, extra="forbid")


class SubjectDocument(_Strict):
    description: NonEmptyStr
    genotype: NonEmptyStr
    sex: Literal["M", "F", "U", "O"]
    species: NonEmptyStr
    subject_id: NonEmptyStr
    date_of_birth: IsoDateTimeStr
    weight: PositiveFloat


class DataAcqDeviceDocument(_Strict):
    name: NonEmptyStr
    system: NonEmptyStr
    amplifier: NonEmptyStr
    adc_circuit: NonEmptyStr


class DeviceDocument(_Strict):
    name: List[NonEmptyStr] = Field(min_length=1)


class CameraDocument(_Strict):
    id: NonNegativeInt
    meters_per_pixel: PositiveFloat
    manufacturer: NonEmptyStr
    model: NonEmptyStr
    lens: NonEmptyStr
    camera_name: NonEmptyStr


class ElectrodeGroupDocument(_Strict):
    id: NonNegativeInt
    location: NonEmptyStr
    device_type: NonEmptyStr
    description: NonEmptyStr
    targeted_location: NonEmptyStr
    targeted_x: FiniteFloat
    targeted_y: FiniteFloat
    targeted_z: FiniteFloat
    units: NonEmptyStr


class ChannelMapDocument(_Strict):
    ntrode_id: NonNegativeInt
    electrode_group_id: NonNegativeInt
    bad_channels: List[NonNegativeInt] = Field(default_factory=list)
    map: Dict[NonNegativeInt, HardwareChannel] = Field(min_length=1)


class TaskDocument(_Strict):
    task_name: NonEmptyStr
    task_description: NonEmptyStr
    task_environment: NonEmptyStr
    camera_id: List[NonNegativeInt] = Field(default_factory=list)
    task_epochs: List[NonNegativeInt] = Field(min_length=1)


class BehavioralEventDocument(_Strict):
    description: NonEmptyStr
    name: NonEmptyStr


class AssociatedFileDocument(_Strict):
    name: NonEmptyStr
    description: NonEmptyStr
    path: NonEmptyStr
    task_epochs: List[NonNegativeInt] = Field(default_factory=list)


class AssociatedVideoFileDocument(_Strict):
    name: NonEmptyStr
    camera_id: NonNegativeInt
    task_epochs: List[NonNegativeInt] = Field(default_factory=list)


class UnitsDocument(_Strict):
    analog: str = ""
    behavioral_events: str = ""


class MetadataDocument(_Strict):
    """One session's exported metadata."""

    experimenter_name: List[NonEmptyStr] = Field(min_length=1)
    lab: NonEmptyStr
    institution: NonEmptyStr
    experiment_description: NonEmptyStr
    session_description: NonEmptyStr
    session_id: NonEmptyStr
    keywords: List[NonEmptyStr] = Field(default_factory=list)
    subject: SubjectDocument
    data_acq_device: List[DataAcqDeviceDocument] = Field(min_length=1)
    device: DeviceDocument
    cameras: List[CameraDocument] = Field(default_factory=list)
    electrode_groups: List[ElectrodeGroupDocument] = Field(default_factory=list)
    ntrode_electrode_group_channel_map: List[ChannelMapDocument] = Field(default_factory=list)
    tasks: List[TaskDocument] = Field(default_factory=list)
    behavioral_events: List[BehavioralEventDocument] = Field(default_factory=list)
    associated_files: List[AssociatedFileDocument] = Field(default_factory=list)
    associated_video_files: List[AssociatedVideoFileDocument] = Field(default_factory=list)
    times_period_multiplier: PositiveFloat
    raw_data_to_volts: PositiveFloat
    default_header_file_path: str
    units: UnitsDocument = Field(default_factory=UnitsDocument)
    opto_excitation_source: Optional[List[Dict[str, Any]]] = None
    optical_fiber: Optional[List[Dict[str, Any]]] = None
    virus_injection: Optional[List[Dict[str, Any]]] = None
    optogenetic_stimulation_software: Optional[str] = None
    fs_gui_yamls: Optional[List[Dict[str, Any]]] = None


def field_order(model: Type[BaseModel]) -> List[str]:
    return list(model.model_fields)


def _find_model(annotation: Any) -> Optional[Type[BaseModel]]:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in typing.get_args(annotation):
        found = _find_model(arg)
        if found is not None:
            return found
    return None


def nested_model(model: Type[BaseModel], key: str) -> Optional[Type[BaseModel]]:
    """Schema model describing the value (or list items) stored under ``key``."""
    info = model.model_fields.get(key)
    if info is None:
        return None
    return _find_model(info.annotation)


__all__ = [
    "MetadataDocument",
    "SubjectDocument",
    "CameraDocument",
    "ElectrodeGroupDocument",
    "ChannelMapDocument",
    "TaskDocument",
    "field_order",
    "nested_model",
]
