"""Probe geometry lookup: device-type name -> shank layout."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping

import yaml

from .errors import UnknownDeviceType


@dataclass(frozen=True)
class DeviceSpec:
    shank_count: int
    channels_per_shank: int

    def __post_init__(self) -> None:
        if self.shank_count < 1 or self.channels_per_shank < 1:
            raise ValueError("shank_count and channels_per_shank must be positive")

    @property
    def total_channels(self) -> int:
        return self.shank_count * self.channels_per_shank

    def shank_range(self, shank: int) -> range:
        """Hardware channels owned by ``shank`` in the default layout."""
        if not 0 <= shank < self.shank_count:
            raise IndexError(f"shank {shank} out of range for {self.shank_count} shank(s)")
        start = self.channels_per_shank * shank
        return range(start, start + self.channels_per_shank)

    def as_dict(self) -> Dict[str, int]:
        return {"shank_count": self.shank_count, "channels_per_shank": self.channels_per_shank}


DEFAULT_DEVICE_TYPES: Dict[str, DeviceSpec] = {
    "tetrode": DeviceSpec(1, 4),
    "tetrode_12.5": DeviceSpec(1, 4),
    "A1x32-6mm-50-177-H32_21mm": DeviceSpec(1, 32),
    "128c-4s8mm6cm-20um-40um-sl": DeviceSpec(4, 32),
    "128c-4s6mm6cm-15um-26um-sl": DeviceSpec(4, 32),
    "128c-4s8mm6cm-15um-26um-sl": DeviceSpec(4, 32),
    "128c-4s6mm6cm-20um-40um-sl": DeviceSpec(4, 32),
    "128c-4s4mm6cm-20um-40um-sl": DeviceSpec(4, 32),
    "128c-4s4mm6cm-15um-26um-sl": DeviceSpec(4, 32),
    "32c-2s8mm6cm-20um-40um-dl": DeviceSpec(2, 16),
    "64c-4s6mm6cm-20um-40um-dl": DeviceSpec(4, 16),
    "64c-3s6mm6cm-20um-40um-sl": DeviceSpec(3, 20),
    "NET-EBL-128ch-single-shank": DeviceSpec(1, 128),
}


class DeviceTypeRegistry(Mapping[str, DeviceSpec]):
    """Read-only table of known probe types."""

    def __init__(self, specs: Mapping[str, DeviceSpec] | None = None) -> None:
        self._specs: Dict[str, DeviceSpec] = dict(DEFAULT_DEVICE_TYPES if specs is None else specs)

    def __getitem__(self, device_type: str) -> DeviceSpec:
        return self._specs[device_type]

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._specs))

    def __len__(self) -> int:
        return len(self._specs)

    def lookup(self, device_type: str) -> DeviceSpec:
        try:
            return self._specs[device_type]
        except KeyError:
            raise UnknownDeviceType(device_type) from None

    def names(self) -> list[str]:
        return sorted(self._specs)

    def hardware_channels(self, device_type: str) -> list[int]:
        return list(range(self.lookup(device_type).total_channels))

    def shank_channels(self, device_type: str, shank: int) -> list[int]:
        return list(self.lookup(device_type).shank_range(shank))

    def extend(self, extra: Mapping[str, Any]) -> "DeviceTypeRegistry":
        """Return a new registry with ``extra`` entries layered over this one."""
        merged = dict(self._specs)
        merged.update(_coerce_specs(extra))
        return DeviceTypeRegistry(merged)

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        return {name: self._specs[name].as_dict() for name in self.names()}


def _coerce_specs(raw: Mapping[str, Any]) -> Dict[str, DeviceSpec]:
    specs: Dict[str, DeviceSpec] = {}
    for name, value in raw.items():
        if isinstance(value, DeviceSpec):
            specs[str(name)] = value
        elif isinstance(value, Mapping):
            specs[str(name)] = DeviceSpec(
                shank_count=int(value["shank_count"]),
                channels_per_shank=int(value["channels_per_shank"]),
            )
        else:
            raise ValueError(f"Device type {name!r} must map to shank_count/channels_per_shank")
    return specs


DEFAULT_REGISTRY = DeviceTypeRegistry()


def load_device_registry(path: str | Path, *, base: DeviceTypeRegistry | None = None) -> DeviceTypeRegistry:
    """Load a YAML or JSON device table and layer it over ``base`` (defaults if omitted)."""

    raw = Path(path)
    if not raw.exists():
        raise FileNotFoundError(raw)
    text = raw.read_text(encoding="utf-8")
    table = yaml.safe_load(text) if raw.suffix.lower() in {".yml", ".yaml"} else json.loads(text)
    if not isinstance(table, Mapping):
        raise ValueError("Device table must contain a mapping/object at the top level")
    return (base or DEFAULT_REGISTRY).extend(table)


__all__ = [
    "DeviceSpec",
    "DeviceTypeRegistry",
    "DEFAULT_DEVICE_TYPES",
    "DEFAULT_REGISTRY",
    "load_device_registry",
]
