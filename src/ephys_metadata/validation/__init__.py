"""Two-stage validation of metadata documents."""

from .engine import (
    ValidationSequencer,
    validate,
    validate_day,
    validate_draft,
    validate_field,
    validate_imported,
)
from .issues import ErrorKind, Severity, ValidationError, ValidationResult
from .rules import rule_errors
from .schema import MetadataDocument
from .structural import structural_errors

__all__ = [
    "ErrorKind",
    "MetadataDocument",
    "Severity",
    "ValidationError",
    "ValidationResult",
    "ValidationSequencer",
    "rule_errors",
    "structural_errors",
    "validate",
    "validate_day",
    "validate_draft",
    "validate_field",
    "validate_imported",
]
