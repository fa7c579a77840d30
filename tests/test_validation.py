from __future__ import annotations

from typing import Any, Dict

import pytest

from ephys_metadata import workspace as ws
from ephys_metadata.merge import resolve_day
from ephys_metadata.validation import (
    ErrorKind,
    Severity,
    ValidationError,
    ValidationResult,
    ValidationSequencer,
    validate,
    validate_day,
    validate_draft,
    validate_field,
)

from conftest import CAMERA, SLEEP_TASK


def _codes(result: ValidationResult) -> Dict[str, str]:
    return {issue.path: issue.code for issue in result.errors}


def test_resolved_fixture_document_is_valid(workspace: ws.Workspace, day_id: str, document: Dict[str, Any]) -> None:
    result = validate(document)

    assert result.is_valid
    assert result.errors == ()
    day = workspace.days[day_id]
    assert validate(resolve_day(workspace.animals["remy"], day)).is_valid


def test_duplicated_hardware_channel_reports_one_uniqueness_error(mutable_document: Dict[str, Any]) -> None:
    mutable_document["ntrode_electrode_group_channel_map"][0]["map"][1] = 0

    result = validate(mutable_document)

    uniqueness = result.by_kind(ErrorKind.UNIQUENESS)
    assert len(uniqueness) == 1
    assert uniqueness[0].path == "ntrode_electrode_group_channel_map[0].map"
    assert uniqueness[0].severity is Severity.ERROR
    assert "hardware channel 0" in uniqueness[0].message
    assert [i.code for i in result.by_kind(ErrorKind.COMPLETION)] == ["missing_channels"]
    assert not result.is_valid


def test_task_camera_without_cameras_reports_one_referential_error(mutable_document: Dict[str, Any]) -> None:
    mutable_document["cameras"] = []
    mutable_document["tasks"][0]["camera_id"] = [5]

    result = validate(mutable_document)

    referential = result.by_kind(ErrorKind.REFERENTIAL)
    assert len(referential) == 1
    assert referential[0].path == "tasks[0].camera_id"
    assert referential[0].code == "missing_camera"
    assert "sleep" in referential[0].message


def test_unknown_camera_is_reported_per_reference(mutable_document: Dict[str, Any]) -> None:
    mutable_document["tasks"][0]["camera_id"] = [0, 4]

    result = validate(mutable_document)

    assert _codes(result) == {"tasks[0].camera_id[1]": "unknown_camera"}


@pytest.mark.parametrize(
    ("mutate", "path", "code"),
    [
        (lambda d: d.update(lab="   "), "lab", "value_error"),
        (lambda d: d["subject"].update(description=""), "subject.description", "value_error"),
        (lambda d: d.pop("lab"), "lab", "missing"),
        (lambda d: d.update(extra_field=1), "extra_field", "extra_forbidden"),
        (lambda d: d["subject"].update(weight="450"), "subject.weight", "float_type"),
        (lambda d: d["subject"].update(weight=-1.0), "subject.weight", "greater_than"),
        (lambda d: d["subject"].update(sex="X"), "subject.sex", "literal_error"),
        (lambda d: d["subject"].update(date_of_birth="yesterday"), "subject.date_of_birth", "value_error"),
        (lambda d: d["electrode_groups"][0].update(targeted_x=float("nan")), "electrode_groups[0].targeted_x", "finite_number"),
        (lambda d: d["tasks"][0].update(task_epochs=[]), "tasks[0].task_epochs", "too_short"),
        (lambda d: d.update(experimenter_name=[]), "experimenter_name", "too_short"),
    ],
)
def test_structural_errors_carry_field_paths(mutable_document: Dict[str, Any], mutate, path: str, code: str) -> None:
    mutate(mutable_document)

    structural = validate(mutable_document).by_kind(ErrorKind.STRUCTURAL)

    assert [(i.path, i.code) for i in structural] == [(path, code)]
    assert structural[0].severity is Severity.ERROR


def test_whitespace_message_is_readable(mutable_document: Dict[str, Any]) -> None:
    mutable_document["session_description"] = "\t "

    (issue,) = validate(mutable_document).errors

    assert issue.message == "must not be empty or whitespace-only"


def test_booleans_are_not_integers(mutable_document: Dict[str, Any]) -> None:
    mutable_document["cameras"][0]["id"] = True

    result = validate(mutable_document)

    assert ("cameras[0].id", "int_type") in [(i.path, i.code) for i in result.by_kind(ErrorKind.STRUCTURAL)]


def test_integers_are_accepted_for_float_fields(mutable_document: Dict[str, Any]) -> None:
    mutable_document["subject"]["weight"] = 450

    assert validate(mutable_document).is_valid


def test_invalid_hardware_channel_path_points_into_map(mutable_document: Dict[str, Any]) -> None:
    mutable_document["ntrode_electrode_group_channel_map"][0]["map"][1] = -5

    structural = validate(mutable_document).by_kind(ErrorKind.STRUCTURAL)

    assert [(i.path, i.code) for i in structural] == [
        ("ntrode_electrode_group_channel_map[0].map[1]", "greater_than_equal")
    ]


def test_duplicate_ids_unknown_types_and_group_references(mutable_document: Dict[str, Any]) -> None:
    mutable_document["cameras"].append(dict(CAMERA))
    mutable_document["electrode_groups"][0]["device_type"] = "mystery-probe"
    mutable_document["ntrode_electrode_group_channel_map"][0]["electrode_group_id"] = 3

    codes = _codes(validate(mutable_document))

    assert codes["cameras"] == "duplicate_id"
    assert codes["electrode_groups[0].device_type"] == "unknown_device_type"
    assert codes["ntrode_electrode_group_channel_map[0].electrode_group_id"] == "unknown_electrode_group"


def test_missing_channel_map_is_a_completion_error(mutable_document: Dict[str, Any]) -> None:
    mutable_document["ntrode_electrode_group_channel_map"] = []

    result = validate(mutable_document)

    assert [(i.path, i.kind, i.code) for i in result.errors] == [
        ("electrode_groups[0]", ErrorKind.COMPLETION, "shank_count_mismatch")
    ]


def test_out_of_range_channel_is_a_completion_error(mutable_document: Dict[str, Any]) -> None:
    mutable_document["ntrode_electrode_group_channel_map"][0]["map"][3] = 9

    codes = [i.code for i in validate(mutable_document).by_kind(ErrorKind.COMPLETION)]

    assert codes == ["missing_channels", "out_of_range_channels"]


def test_unassigned_channel_leaves_map_incomplete(mutable_document: Dict[str, Any]) -> None:
    mutable_document["ntrode_electrode_group_channel_map"][0]["map"][2] = -1

    (issue,) = validate(mutable_document).errors

    assert issue.code == "missing_channels"
    assert "[2]" in issue.message


def test_partial_optogenetics_is_rejected(mutable_document: Dict[str, Any]) -> None:
    mutable_document["opto_excitation_source"] = [{"name": "laser"}]

    issues = validate(mutable_document).by_kind(ErrorKind.COMPLETION)

    assert [(i.path, i.code) for i in issues] == [
        ("optical_fiber", "partial_optogenetics"),
        ("virus_injection", "partial_optogenetics"),
    ]


def test_warnings_do_not_block(mutable_document: Dict[str, Any]) -> None:
    mutable_document["associated_files"] = [
        {"name": "stim", "description": "stimulus log", "path": "/data/stim.log", "task_epochs": [7]}
    ]
    mutable_document["ntrode_electrode_group_channel_map"][0]["bad_channels"] = [12]

    result = validate(mutable_document)

    assert result.is_valid
    assert {i.code for i in result.warnings} == {"unknown_epoch", "bad_channel_not_mapped"}
    assert result.blocking == []


def test_validation_is_deterministic_under_key_order(mutable_document: Dict[str, Any]) -> None:
    mutable_document["lab"] = ""
    mutable_document["cameras"] = []
    reordered = dict(reversed(list(mutable_document.items())))

    first = validate(mutable_document)

    assert validate(reordered) == first
    assert validate(mutable_document).as_dict() == first.as_dict()


def test_validate_field_filters_by_path(mutable_document: Dict[str, Any]) -> None:
    mutable_document["cameras"][0]["lens"] = ""
    mutable_document["subject"]["weight"] = 0.0

    scoped = validate_field(mutable_document, "cameras[0]")

    assert [i.path for i in scoped.errors] == ["cameras[0].lens"]
    assert [i.path for i in validate_field(mutable_document, "subject").errors] == ["subject.weight"]
    assert validate_field(mutable_document, "tasks").errors == ()


def test_non_mapping_document_is_structural_error() -> None:
    (issue,) = validate(["not", "a", "mapping"]).errors

    assert issue.code == "document_type"
    assert issue.kind is ErrorKind.STRUCTURAL


def test_result_deduplicates_and_orders_issues() -> None:
    a = ValidationError(path="b", message="x")
    b = ValidationError(path="a", message="y", severity=Severity.WARNING)

    result = ValidationResult.from_issues([a, b, a])

    assert result.errors == (b, a)
    assert not result.is_valid
    assert ValidationResult.from_issues([b]).is_valid
    assert result.as_dict()["errors"][0]["severity"] == "warning"


def test_draft_warnings_become_export_errors(workspace: ws.Workspace, day_id: str) -> None:
    updated = ws.update_day(workspace, day_id, {"tasks": [{**SLEEP_TASK, "camera_id": [5]}]})
    animal = updated.animals["remy"]
    day = updated.days[day_id]

    draft = validate_draft(animal, day)
    assert draft.is_valid
    assert _codes(draft) == {"tasks[0].camera_id[0]": "camera_not_on_animal"}

    gate = validate_day(animal, day)
    assert not gate.is_valid
    assert [i.code for i in gate.blocking] == ["unknown_camera"]


def test_draft_reports_configuration_drift_as_info(workspace: ws.Workspace, day_id: str) -> None:
    updated = ws.reassign_channel(workspace, "remy", 0, 0, 0)
    assert validate_draft(updated.animals["remy"], updated.days[day_id]).errors == ()

    updated = ws.reassign_channel(workspace, "remy", 0, 1, 0)
    (issue,) = validate_draft(updated.animals["remy"], updated.days[day_id]).errors
    assert issue.severity is Severity.INFO
    assert issue.code == "configuration_changed"


def test_sequencer_keeps_latest_issued_result() -> None:
    sequencer = ValidationSequencer()
    older, newer = sequencer.next_ticket(), sequencer.next_ticket()
    stale = ValidationResult(errors=(ValidationError(path="lab", message="stale"),))
    fresh = ValidationResult()

    assert sequencer.submit(newer, fresh)
    assert not sequencer.submit(older, stale)
    assert sequencer.latest is fresh
    assert sequencer.latest_ticket == newer

    ticket, result = sequencer.run({"lab": "x"})
    assert ticket == 3
    assert sequencer.latest is result
    assert not result.is_valid
