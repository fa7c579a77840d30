"""Electrophysiology session metadata: Animal/Day model, validation and YAML export."""

from importlib import metadata

try:
    __version__ = metadata.version("ephys-metadata")
except metadata.PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.1.0"

from .channel_maps import available_options, duplicate, generate, reassign
from .config import Settings, load_settings
from .device_types import DEFAULT_REGISTRY, DeviceSpec, DeviceTypeRegistry, load_device_registry
from .errors import (
    AnimalInUse,
    DecodeError,
    DuplicateEntity,
    ExportRejected,
    ImportRejected,
    UnknownAnimal,
    UnknownDay,
    UnknownDeviceType,
)
from .merge import EffectiveDay, apply_bad_channel_override, resolve_day
from .pipeline import commit_import, export_day, import_document
from .registry import init_registry, list_runs, purge_runs, record_run
from .serialization import DecodeResult, decode, encode, export_filename
from .service import create_app
from .store import WorkspaceStore
from .validation import (
    ErrorKind,
    Severity,
    ValidationError,
    ValidationResult,
    ValidationSequencer,
    validate,
    validate_field,
    validate_imported,
)
from .workspace import Workspace

__all__ = [
    "AnimalInUse",
    "DEFAULT_REGISTRY",
    "DecodeError",
    "DecodeResult",
    "DeviceSpec",
    "DeviceTypeRegistry",
    "DuplicateEntity",
    "EffectiveDay",
    "ErrorKind",
    "ExportRejected",
    "ImportRejected",
    "Settings",
    "Severity",
    "UnknownAnimal",
    "UnknownDay",
    "UnknownDeviceType",
    "ValidationError",
    "ValidationResult",
    "ValidationSequencer",
    "Workspace",
    "WorkspaceStore",
    "apply_bad_channel_override",
    "available_options",
    "commit_import",
    "create_app",
    "decode",
    "duplicate",
    "encode",
    "export_day",
    "export_filename",
    "generate",
    "import_document",
    "init_registry",
    "list_runs",
    "load_device_registry",
    "load_settings",
    "purge_runs",
    "reassign",
    "record_run",
    "resolve_day",
    "validate",
    "validate_field",
    "validate_imported",
    "__version__",
]
