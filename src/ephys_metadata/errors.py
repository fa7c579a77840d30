"""Exceptions raised by store, registry and import/export operations.

Validation problems are never raised; they are returned as
:class:`~ephys_metadata.validation.issues.ValidationError` records. The
classes here cover operations that must be rejected outright, leaving the
caller's prior state untouched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

if TYPE_CHECKING:  # pragma: no cover
    from .validation.issues import ValidationResult


class MetadataError(Exception):
    """Base class for rejected operations."""


class UnknownDeviceType(MetadataError, LookupError):
    def __init__(self, device_type: str) -> None:
        super().__init__(f"Unknown device type: {device_type!r}")
        self.device_type = device_type


class UnknownAnimal(MetadataError, LookupError):
    def __init__(self, animal_id: str) -> None:
        super().__init__(f"Animal {animal_id!r} not found")
        self.animal_id = animal_id


class UnknownDay(MetadataError, LookupError):
    def __init__(self, day_id: str) -> None:
        super().__init__(f"Day {day_id!r} not found")
        self.day_id = day_id


class UnknownElectrodeGroup(MetadataError, LookupError):
    def __init__(self, animal_id: str, group_id: int) -> None:
        super().__init__(f"Electrode group {group_id} not found on animal {animal_id!r}")
        self.animal_id = animal_id
        self.group_id = group_id


class UnknownChannelMap(MetadataError, LookupError):
    def __init__(self, animal_id: str, ntrode_id: int) -> None:
        super().__init__(f"Ntrode {ntrode_id} not found on animal {animal_id!r}")
        self.animal_id = animal_id
        self.ntrode_id = ntrode_id


class UnknownSnapshot(MetadataError, LookupError):
    def __init__(self, animal_id: str, version: int) -> None:
        super().__init__(f"Configuration version {version} not found on animal {animal_id!r}")
        self.animal_id = animal_id
        self.version = version


class DuplicateEntity(MetadataError, ValueError):
    def __init__(self, kind: str, entity_id: Any) -> None:
        super().__init__(f"{kind} {entity_id!r} already exists")
        self.kind = kind
        self.entity_id = entity_id


class AnimalInUse(MetadataError, ValueError):
    def __init__(self, animal_id: str, day_ids: tuple[str, ...]) -> None:
        super().__init__(
            f"Animal {animal_id!r} is referenced by {len(day_ids)} day(s): {', '.join(day_ids)}"
        )
        self.animal_id = animal_id
        self.day_ids = day_ids


class DocumentRejected(MetadataError, ValueError):
    """A document failed validation at an import or export boundary."""

    def __init__(self, message: str, result: "ValidationResult") -> None:
        super().__init__(f"{message} ({len(result.blocking)} blocking issue(s))")
        self.result = result


class ImportRejected(DocumentRejected):
    pass


class ExportRejected(DocumentRejected):
    pass


class DecodeError(MetadataError):
    """Malformed wire text. Returned inside a ``DecodeResult``, never raised by ``decode``."""

    def __init__(self, message: str, line: int | None = None, column: int | None = None) -> None:
        location = f" (line {line}, column {column})" if line is not None else ""
        super().__init__(f"{message}{location}")
        self.message = message
        self.line = line
        self.column = column

    def as_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "line": self.line, "column": self.column}


__all__ = [
    "MetadataError",
    "UnknownDeviceType",
    "UnknownAnimal",
    "UnknownDay",
    "UnknownElectrodeGroup",
    "UnknownChannelMap",
    "UnknownSnapshot",
    "DuplicateEntity",
    "AnimalInUse",
    "DocumentRejected",
    "ImportRejected",
    "ExportRejected",
    "DecodeError",
]
