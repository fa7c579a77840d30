"""Validation issue records. These are returned as data, never raised."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Tuple


class Severity(IntEnum):
    INFO = 10
    WARNING = 20
    ERROR = 30

    @property
    def label(self) -> str:
        return self.name.lower()


class ErrorKind(str, Enum):
    STRUCTURAL = "structural"
    REFERENTIAL = "referential"
    UNIQUENESS = "uniqueness"
    COMPLETION = "completion"


@dataclass(frozen=True)
class ValidationError:
    path: str
    message: str
    severity: Severity = Severity.ERROR
    kind: ErrorKind = ErrorKind.STRUCTURAL
    code: str = ""

    def sort_key(self) -> Tuple[str, str, str, int]:
        return (self.path, self.code, self.message, -int(self.severity))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "message": self.message,
            "severity": self.severity.label,
            "kind": self.kind.value,
            "code": self.code,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Ordered, de-duplicated issue set.

    ``is_valid`` is derived from the issues themselves: a result is valid
    exactly when it holds no ERROR-severity entry.
    """

    errors: Tuple[ValidationError, ...] = field(default_factory=tuple)

    @classmethod
    def from_issues(cls, issues: Iterable[ValidationError]) -> "ValidationResult":
        unique = {issue: None for issue in issues}
        return cls(errors=tuple(sorted(unique, key=ValidationError.sort_key)))

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity >= Severity.ERROR for issue in self.errors)

    @property
    def blocking(self) -> List[ValidationError]:
        return [issue for issue in self.errors if issue.severity >= Severity.ERROR]

    @property
    def warnings(self) -> List[ValidationError]:
        return [issue for issue in self.errors if issue.severity == Severity.WARNING]

    def by_kind(self, kind: ErrorKind) -> List[ValidationError]:
        return [issue for issue in self.errors if issue.kind == kind]

    def for_path(self, prefix: str) -> "ValidationResult":
        """Issues at ``prefix`` or below it (``a.b`` matches ``a.b``, ``a.b.c``, ``a.b[0]``)."""
        return ValidationResult(errors=tuple(i for i in self.errors if path_within(i.path, prefix)))

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult.from_issues([*self.errors, *other.errors])

    def as_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [issue.as_dict() for issue in self.errors],
        }


def path_within(path: str, prefix: str) -> bool:
    if not prefix:
        return True
    if path == prefix:
        return True
    return path.startswith(prefix) and path[len(prefix)] in ".["


__all__ = [
    "ErrorKind",
    "Severity",
    "ValidationError",
    "ValidationResult",
    "path_within",
]
