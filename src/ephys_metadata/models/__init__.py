"""Pydantic models for the Animal/Day entity graph."""

from .animal import (
    Animal,
    BehavioralEvent,
    ConfigurationSnapshot,
    Experimenters,
    Optogenetics,
    Subject,
)
from .day import (
    AssociatedFile,
    AssociatedVideoFile,
    Day,
    DayOverrides,
    DayState,
    Session,
    Task,
    Technical,
    Units,
    make_day_id,
)
from .devices import Camera, DataAcqDevice, Devices, ElectrodeGroup, NtrodeChannelMap

__all__ = [
    "Animal",
    "AssociatedFile",
    "AssociatedVideoFile",
    "BehavioralEvent",
    "Camera",
    "ConfigurationSnapshot",
    "DataAcqDevice",
    "Day",
    "DayOverrides",
    "DayState",
    "Devices",
    "ElectrodeGroup",
    "Experimenters",
    "NtrodeChannelMap",
    "Optogenetics",
    "Session",
    "Subject",
    "Task",
    "Technical",
    "Units",
    "make_day_id",
]
