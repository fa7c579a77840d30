"""FastAPI service exposing validation, normalization and channel-map generation."""

from __future__ import annotations

from importlib import metadata
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException
from pydantic import ValidationError

from . import channel_maps as cm
from .device_types import DEFAULT_REGISTRY, DeviceTypeRegistry
from .errors import DecodeError, UnknownDeviceType
from .models import NtrodeChannelMap
from .pipeline import import_document, normalize as normalize_text
from .registry import list_runs, record_run
from .validation import validate

try:
    __version__ = metadata.version("ephys-metadata")
except metadata.PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"


def _channel_key(key: Any) -> Any:
    if isinstance(key, str) and key.lstrip("-").isdigit():
        return int(key)
    return key


def _restore_channel_keys(document: Dict[str, Any]) -> Dict[str, Any]:
    """JSON object keys arrive as strings; logical channel numbers are integers."""
    maps = document.get("ntrode_electrode_group_channel_map")
    if not isinstance(maps, list):
        return document
    restored = [
        {**entry, "map": {_channel_key(k): v for k, v in entry["map"].items()}}
        if isinstance(entry, dict) and isinstance(entry.get("map"), dict)
        else entry
        for entry in maps
    ]
    return {**document, "ntrode_electrode_group_channel_map": restored}


def create_app(
    registry_path: str | Path | None = None,
    device_registry: DeviceTypeRegistry | None = None,
) -> FastAPI:
    devices = device_registry or DEFAULT_REGISTRY
    app = FastAPI(title="Ephys Metadata API", version=__version__)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/version")
    def version() -> Dict[str, str]:
        return {"version": __version__}

    @app.get("/device-types")
    def device_types() -> Dict[str, Any]:
        return {"device_types": devices.as_dict()}

    @app.post("/validate")
    def validate_text(text: str = Body(..., embed=True)) -> Dict[str, Any]:
        result = import_document(text, registry=devices)
        if registry_path:
            issues = len(result.validation.errors) if result.validation else 1
            record_run(registry_path, "validate", "api", "accepted" if result.accepted else "rejected", "unknown", issues)
        return result.as_dict()

    @app.post("/validate/document")
    def validate_document(document: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        return validate(_restore_channel_keys(document), registry=devices).as_dict()

    @app.post("/normalize")
    def normalize(text: str = Body(..., embed=True)) -> Dict[str, str]:
        try:
            return {"text": normalize_text(text)}
        except DecodeError as exc:
            raise HTTPException(status_code=400, detail=exc.as_dict())

    @app.post("/channel-maps")
    def generate_maps(
        device_type: str = Body(...),
        electrode_group_id: int = Body(0),
        existing_maps: Optional[List[Dict[str, Any]]] = Body(None),
    ) -> Dict[str, Any]:
        try:
            existing = [NtrodeChannelMap.model_validate(m) for m in existing_maps or []]
        except ValidationError as exc:
            detail = [{"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()]
            raise HTTPException(status_code=422, detail=detail)
        try:
            maps = cm.generate(device_type, electrode_group_id, existing, registry=devices)
        except UnknownDeviceType as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return {"channel_maps": [m.model_dump() for m in maps]}

    @app.get("/runs")
    def runs(limit: int = 50) -> Dict[str, Any]:
        if not registry_path:
            raise HTTPException(status_code=400, detail="Registry path not configured")
        return {"runs": [r.as_dict() for r in list_runs(registry_path, limit=limit)]}

    return app
