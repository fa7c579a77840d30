"""Workspace settings loaded from YAML or JSON."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .device_types import DEFAULT_REGISTRY, DeviceTypeRegistry

SETTINGS_ENV = "EPHYS_METADATA_SETTINGS"


@dataclass(frozen=True)
class Settings:
    """Defaults applied when new Animals and Days are created."""

    lab: str = ""
    institution: str = ""
    experimenter_name: tuple[str, ...] = ()
    session_id_separator: str = "_"
    times_period_multiplier: float = 1.5
    raw_data_to_volts: float = 0.195
    default_header_file_path: str = ""
    device_types: Dict[str, Dict[str, int]] = field(default_factory=dict)
    log_level: str = "INFO"
    json_logs: bool = False

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in cfg.items() if k in known}
        if "experimenter_name" in kwargs:
            names = kwargs["experimenter_name"]
            kwargs["experimenter_name"] = (names,) if isinstance(names, str) else tuple(names)
        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str | Path) -> "Settings":
        raw = Path(path)
        if not raw.exists():
            raise FileNotFoundError(raw)
        text = raw.read_text(encoding="utf-8")
        cfg = yaml.safe_load(text) if raw.suffix.lower() in {".yml", ".yaml"} else json.loads(text)
        if cfg is None:
            cfg = {}
        if not isinstance(cfg, Mapping):
            raise ValueError("Settings file must contain a mapping/object at the top level")
        return cls.from_mapping(cfg)

    def device_registry(self, base: DeviceTypeRegistry | None = None) -> DeviceTypeRegistry:
        base = base or DEFAULT_REGISTRY
        return base.extend(self.device_types) if self.device_types else base

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["experimenter_name"] = list(self.experimenter_name)
        return payload


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from ``path``, the EPHYS_METADATA_SETTINGS env var, or defaults."""

    path = path or os.getenv(SETTINGS_ENV)
    if not path:
        return Settings()
    return Settings.from_file(path)


__all__ = ["Settings", "SETTINGS_ENV", "load_settings"]
