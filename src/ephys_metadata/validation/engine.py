"""Validation entry points.

Both stages always run so a caller sees every problem in one pass. Nothing
here mutates its input or keeps shared mutable state, so validation can be
called concurrently; :class:`ValidationSequencer` resolves which of several
in-flight results is current.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional, Tuple

from ..device_types import DeviceTypeRegistry
from ..logging_utils import log_event
from ..merge import EffectiveDay, resolve_day
from ..models import Animal, Day
from ..workspace import configuration_drift
from .issues import ErrorKind, Severity, ValidationError, ValidationResult
from .paths import join
from .rules import rule_errors
from .structural import structural_errors

logger = logging.getLogger(__name__)


def validate(document: Any, *, registry: DeviceTypeRegistry | None = None) -> ValidationResult:
    """Run structural and rule validation over a wire-shaped document."""

    if isinstance(document, EffectiveDay):
        document = document.to_document()
    issues = [*structural_errors(document), *rule_errors(document, registry=registry)]
    return ValidationResult.from_issues(issues)


def validate_field(document: Any, path: str, *, registry: DeviceTypeRegistry | None = None) -> ValidationResult:
    """Issues at ``path`` or below it, e.g. ``cameras[0]`` or ``subject.weight``."""
    return validate(document, registry=registry).for_path(path)


def validate_imported(document: Any, *, registry: DeviceTypeRegistry | None = None) -> ValidationResult:
    result = validate(document, registry=registry)
    log_event(
        logger,
        "import_validated",
        valid=result.is_valid,
        errors=len(result.blocking),
        warnings=len(result.warnings),
    )
    return result


def validate_day(animal: Animal, day: Day, *, registry: DeviceTypeRegistry | None = None) -> ValidationResult:
    """Export-gate validation: the merged document plus draft cross-references."""
    effective = resolve_day(animal, day)
    return validate(effective, registry=registry).merge(validate_draft(animal, day))


def validate_draft(animal: Animal, day: Day) -> ValidationResult:
    """Non-blocking checks on a Day against its Animal while it is being edited.

    Produces only WARNING and INFO entries, so a draft can always be saved.
    """

    issues: List[ValidationError] = []
    camera_ids = {c.id for c in animal.cameras}
    for index, task in enumerate(day.tasks):
        for position, ref in enumerate(task.camera_id):
            if ref not in camera_ids:
                issues.append(
                    ValidationError(
                        path=join("tasks", index, "camera_id", position),
                        message=f"Camera {ref} is not configured on animal '{animal.id}' yet",
                        severity=Severity.WARNING,
                        kind=ErrorKind.REFERENTIAL,
                        code="camera_not_on_animal",
                    )
                )
    for index, video in enumerate(day.associated_video_files):
        if video.camera_id not in camera_ids:
            issues.append(
                ValidationError(
                    path=join("associated_video_files", index, "camera_id"),
                    message=f"Camera {video.camera_id} is not configured on animal '{animal.id}' yet",
                    severity=Severity.WARNING,
                    kind=ErrorKind.REFERENTIAL,
                    code="camera_not_on_animal",
                )
            )

    group_ids = {g.id for g in animal.devices.electrode_groups}
    for group_id in day.overrides.bad_channels:
        if group_id not in group_ids:
            issues.append(
                ValidationError(
                    path=join("overrides.bad_channels", group_id),
                    message=f"Override refers to electrode group {group_id}, which the animal no longer has",
                    severity=Severity.WARNING,
                    kind=ErrorKind.REFERENTIAL,
                    code="override_unknown_group",
                )
            )

    drift = configuration_drift(animal, day)
    if drift is not None and drift.has_changes:
        issues.append(
            ValidationError(
                path="configuration_snapshot_ref",
                message=(
                    f"Hardware changed since configuration version {day.configuration_snapshot_ref}: "
                    f"{drift.as_dict()}"
                ),
                severity=Severity.INFO,
                kind=ErrorKind.REFERENTIAL,
                code="configuration_changed",
            )
        )
    return ValidationResult.from_issues(issues)


class ValidationSequencer:
    """Keeps the result of the most recently *issued* validation request.

    Callers take a ticket before validating and submit the result with it;
    a result whose ticket is older than the one already accepted is dropped,
    whatever order the results arrive in.
    """

    def __init__(self, validator: Callable[..., ValidationResult] = validate) -> None:
        self._validator = validator
        self._lock = threading.Lock()
        self._issued = 0
        self._accepted_ticket = 0
        self._latest: Optional[ValidationResult] = None

    def next_ticket(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def submit(self, ticket: int, result: ValidationResult) -> bool:
        with self._lock:
            if ticket <= self._accepted_ticket:
                return False
            self._accepted_ticket = ticket
            self._latest = result
            return True

    def run(self, document: Any, **kwargs: Any) -> Tuple[int, ValidationResult]:
        ticket = self.next_ticket()
        result = self._validator(document, **kwargs)
        self.submit(ticket, result)
        return ticket, result

    @property
    def latest(self) -> Optional[ValidationResult]:
        return self._latest

    @property
    def latest_ticket(self) -> int:
        return self._accepted_ticket


__all__ = [
    "ValidationSequencer",
    "validate",
    "validate_day",
    "validate_draft",
    "validate_field",
    "validate_imported",
]
