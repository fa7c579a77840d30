"""Per-session Day records. A Day stores only what differs from its Animal."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Annotated, Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .animal import utc_now
from .mappings import AS_DICT, Number, read_only


class DayState(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    EXPORTED = "exported"


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str
    session_description: str = ""
    experiment_description: str = ""
    keywords: Tuple[str, ...] = ()
    weight: Optional[Number] = None


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_name: str
    task_description: str = ""
    task_environment: str = ""
    camera_id: Tuple[int, ...] = ()
    task_epochs: Tuple[int, ...] = ()


class AssociatedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    path: str = ""
    task_epochs: Tuple[int, ...] = ()


class AssociatedVideoFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    camera_id: int = Field(ge=0)
    task_epochs: Tuple[int, ...] = ()


class Units(BaseModel):
    model_config = ConfigDict(frozen=True)

    analog: str = ""
    behavioral_events: str = ""


class Technical(BaseModel):
    model_config = ConfigDict(frozen=True)

    times_period_multiplier: Number = 1.5
    raw_data_to_volts: Number = 0.195
    default_header_file_path: str = ""
    units: Units = Field(default_factory=Units)


class DayOverrides(BaseModel):
    """Session-only deltas. ``bad_channels`` is keyed by electrode-group id and read-only."""

    model_config = ConfigDict(frozen=True)

    bad_channels: Annotated[Mapping[int, Tuple[int, ...]], AS_DICT] = Field(
        default_factory=dict, validate_default=True
    )

    @field_validator("bad_channels")
    @classmethod
    def _normalize(cls, value: Mapping[int, Tuple[int, ...]]) -> Mapping[int, Tuple[int, ...]]:
        return read_only({group: tuple(sorted(set(channels))) for group, channels in sorted(value.items())})


class Day(BaseModel):
    """One recording session belonging to exactly one Animal."""

    model_config = ConfigDict(frozen=True)

    id: str
    animal_id: str
    date: dt.date
    session: Session
    tasks: Tuple[Task, ...] = ()
    associated_files: Tuple[AssociatedFile, ...] = ()
    associated_video_files: Tuple[AssociatedVideoFile, ...] = ()
    fs_gui_yamls: Tuple[Dict[str, Any], ...] = ()
    technical: Technical = Field(default_factory=Technical)
    overrides: DayOverrides = Field(default_factory=DayOverrides)
    state: DayState = DayState.DRAFT
    configuration_snapshot_ref: Optional[int] = None
    created: dt.datetime = Field(default_factory=utc_now)
    last_modified: dt.datetime = Field(default_factory=utc_now)

    @property
    def experiment_date(self) -> str:
        """Date formatted ``mmddYYYY`` for export filenames."""
        return self.date.strftime("%m%d%Y")


def make_day_id(animal_id: str, date: dt.date) -> str:
    return f"{animal_id}-{date.isoformat()}"
