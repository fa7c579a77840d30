"""Stage A: shape, type, range and non-emptiness checks against the strict schema."""

from __future__ import annotations

from typing import Any, List, Mapping

from pydantic import ValidationError as SchemaViolation

from .issues import ErrorKind, Severity, ValidationError
from .paths import format_path
from .schema import MetadataDocument

_VALUE_ERROR_PREFIX = "Value error, "


def _message(error: Mapping[str, Any]) -> str:
    msg = str(error.get("msg", "invalid value"))
    if msg.startswith(_VALUE_ERROR_PREFIX):
        msg = msg[len(_VALUE_ERROR_PREFIX):]
    return msg


def structural_errors(document: Any) -> List[ValidationError]:
    if not isinstance(document, Mapping):
        return [
            ValidationError(
                path="",
                message=f"Document must be a mapping, got {type(document).__name__}",
                kind=ErrorKind.STRUCTURAL,
                code="document_type",
            )
        ]
    try:
        MetadataDocument.model_validate(dict(document))
    except SchemaViolation as exc:
        return [
            ValidationError(
                path=format_path(error["loc"]),
                message=_message(error),
                severity=Severity.ERROR,
                kind=ErrorKind.STRUCTURAL,
                code=str(error["type"]),
            )
            for error in exc.errors(include_url=False)
        ]
    return []
