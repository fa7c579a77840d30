from __future__ import annotations

from pathlib import Path

import pytest

from ephys_metadata import workspace as ws
from ephys_metadata.errors import ExportRejected, ImportRejected
from ephys_metadata.models import DayState
from ephys_metadata.pipeline import commit_import, export_day, import_document, normalize
from ephys_metadata.registry import list_runs
from ephys_metadata.serialization import encode

from conftest import SLEEP_TASK


def test_export_writes_valid_day_and_marks_it_exported(tmp_path: Path, workspace: ws.Workspace, day_id: str) -> None:
    registry_path = tmp_path / "runs.db"

    exported = export_day(workspace, day_id, output_dir=tmp_path / "out", registry_path=registry_path)

    assert exported.filename == "06222023_remy_metadata.yml"
    assert exported.path == tmp_path / "out" / "06222023_remy_metadata.yml"
    assert exported.path.read_text(encoding="utf-8") == exported.text
    assert exported.workspace.days[day_id].state is DayState.EXPORTED
    assert workspace.days[day_id].state is DayState.DRAFT
    runs = list_runs(registry_path)
    assert [(r.kind, r.status, r.animal_id) for r in runs] == [("export", "exported", "remy")]


def test_export_rejects_invalid_day(tmp_path: Path, workspace: ws.Workspace, day_id: str) -> None:
    broken = ws.update_day(workspace, day_id, {"tasks": [{**SLEEP_TASK, "camera_id": [5]}]})

    with pytest.raises(ExportRejected) as excinfo:
        export_day(broken, day_id, output_dir=tmp_path)

    assert [i.code for i in excinfo.value.result.blocking] == ["unknown_camera"]
    assert list(tmp_path.iterdir()) == []


def test_export_rejects_blank_required_text(workspace: ws.Workspace, day_id: str) -> None:
    broken = ws.update_day(workspace, day_id, {"session": {"session_description": "  "}})

    with pytest.raises(ExportRejected) as excinfo:
        export_day(broken, day_id)

    assert [i.path for i in excinfo.value.result.blocking] == ["session_description"]


def test_import_then_export_reproduces_text(workspace: ws.Workspace, day_id: str) -> None:
    text = export_day(workspace, day_id).text

    result = import_document(text)
    assert result.accepted
    imported = commit_import(ws.Workspace(), result)

    assert set(imported.animals) == {"remy"}
    assert set(imported.days) == {day_id}
    assert imported.days[day_id].session.weight is None
    assert export_day(imported, day_id).text == text


def test_import_keeps_session_deltas_on_the_day(workspace: ws.Workspace, day_id: str, document) -> None:
    document["subject"]["weight"] = 440.0
    document["ntrode_electrode_group_channel_map"][0]["bad_channels"] = [3]
    result = import_document(encode(document))

    updated = commit_import(workspace, result, date="2023-06-29")

    day = updated.days["remy-2023-06-29"]
    assert day.session.weight == 440.0
    assert day.overrides.bad_channels == {0: (3,)}
    assert updated.animals["remy"].subject.weight == 450.0
    assert updated.animals["remy"].days == (day_id, "remy-2023-06-29")


def test_rejected_import_leaves_workspace_alone(workspace: ws.Workspace, document) -> None:
    document["lab"] = ""
    result = import_document(encode(document))

    assert not result.accepted
    assert result.as_dict()["validation"]["is_valid"] is False
    with pytest.raises(ImportRejected):
        commit_import(workspace, result)


def test_import_reports_decode_errors() -> None:
    result = import_document("lab: [\n")

    assert not result.accepted
    assert result.validation is None
    assert result.as_dict()["decode_error"]["message"]


def test_normalize_reorders_keys(document) -> None:
    text = encode(document)
    scrambled = "\n".join(reversed(["lab: Loren Frank Lab", "institution: University of California, San Francisco"])) + "\n"

    assert normalize(text) == text
    assert normalize(scrambled) == "lab: Loren Frank Lab\ninstitution: University of California, San Francisco\n"


def test_import_keeps_fs_gui_yamls_through_export(document) -> None:
    document["fs_gui_yamls"] = [{"name": "stim.yml", "power_in_mW": 5}]
    text = encode(document)

    imported = commit_import(ws.Workspace(), import_document(text))

    day = imported.days["remy-2023-06-22"]
    assert day.fs_gui_yamls == ({"name": "stim.yml", "power_in_mW": 5},)
    exported = export_day(imported, day.id).text
    assert "fs_gui_yamls" in exported
    assert exported == text


def test_import_keeps_integer_valued_numbers(document) -> None:
    document["subject"]["weight"] = 450
    document["electrode_groups"][0]["targeted_x"] = 0
    document["times_period_multiplier"] = 2
    text = encode(document)
    assert "  weight: 450\n" in text

    imported = commit_import(ws.Workspace(), import_document(text))

    assert imported.animals["remy"].subject.weight == 450
    assert isinstance(imported.animals["remy"].subject.weight, int)
    assert export_day(imported, "remy-2023-06-22").text == text


def test_second_session_matching_the_animal_is_committed(workspace: ws.Workspace, document) -> None:
    text = encode(document)

    updated = commit_import(workspace, import_document(text), date="2023-06-29")

    assert updated.animals["remy"].days == ("remy-2023-06-22", "remy-2023-06-29")
    assert export_day(updated, "remy-2023-06-29").text == text


def test_second_session_conflicting_with_the_animal_is_rejected(workspace: ws.Workspace, document) -> None:
    document["cameras"][0]["camera_name"] = "homebox"
    document["electrode_groups"][0]["location"] = "CA3"
    result = import_document(encode(document))
    assert result.accepted

    with pytest.raises(ImportRejected) as excinfo:
        commit_import(workspace, result, date="2023-06-29")

    blocking = excinfo.value.result.blocking
    assert [i.path for i in blocking] == ["cameras[0].camera_name", "electrode_groups[0].location"]
    assert {i.code for i in blocking} == {"conflicts_with_animal"}
    assert set(workspace.days) == {"remy-2023-06-22"}
    assert workspace.animals["remy"].cameras[0].camera_name == "sleepbox"
