from __future__ import annotations

import pytest

from ephys_metadata import workspace as ws
from ephys_metadata.errors import UnknownSnapshot
from ephys_metadata.merge import apply_bad_channel_override, resolve_day
from ephys_metadata.models import NtrodeChannelMap


def test_day_override_replaces_bad_channels_without_touching_animal(workspace: ws.Workspace, day_id: str) -> None:
    updated = ws.set_bad_channels(workspace, day_id, 0, [2])
    animal = updated.animals["remy"]

    effective = resolve_day(animal, updated.days[day_id])

    assert effective.channel_maps[0].bad_channels == (2,)
    assert animal.devices.channel_maps[0].bad_channels == ()
    assert effective.to_document()["ntrode_electrode_group_channel_map"][0]["bad_channels"] == [2]


def test_resolve_day_is_deterministic(workspace: ws.Workspace, day_id: str) -> None:
    animal = workspace.animals["remy"]
    day = workspace.days[day_id]

    assert resolve_day(animal, day) == resolve_day(animal, day)
    assert resolve_day(animal, day).to_document() == resolve_day(animal, day).to_document()


def test_document_inherits_animal_and_day_fields(document: dict) -> None:
    assert list(document)[:6] == [
        "experimenter_name",
        "lab",
        "institution",
        "experiment_description",
        "session_description",
        "session_id",
    ]
    assert document["subject"]["subject_id"] == "remy"
    assert document["device"] == {"name": ["Trodes"]}
    assert document["tasks"][0]["camera_id"] == [0]
    assert document["behavioral_events"] == [{"description": "Din1", "name": "Light_1"}]
    assert document["times_period_multiplier"] == 1.5
    assert "opto_excitation_source" not in document


def test_session_weight_overrides_subject_weight(workspace: ws.Workspace, day_id: str) -> None:
    updated = ws.update_day(workspace, day_id, {"session": {"weight": 431.5}})

    effective = resolve_day(updated.animals["remy"], updated.days[day_id])

    assert effective.subject.weight == 431.5
    assert updated.animals["remy"].subject.weight == 450.0


def test_optogenetics_exported_only_when_configured(workspace: ws.Workspace, day_id: str) -> None:
    updated = ws.update_animal(
        workspace,
        "remy",
        {
            "optogenetics": {
                "opto_excitation_source": [{"name": "laser"}],
                "optical_fiber": [{"name": "fiber"}],
                "virus_injection": [{"name": "AAV"}],
                "optogenetic_stimulation_software": "fsgui",
            }
        },
    )

    document = resolve_day(updated.animals["remy"], updated.days[day_id]).to_document()

    assert document["optical_fiber"] == [{"name": "fiber"}]
    assert document["optogenetic_stimulation_software"] == "fsgui"


def test_use_snapshot_resolves_against_recorded_configuration(workspace: ws.Workspace, day_id: str) -> None:
    rewired = ws.reassign_channel(workspace, "remy", 0, 3, -1)
    animal = rewired.animals["remy"]
    day = rewired.days[day_id]

    assert resolve_day(animal, day).channel_maps[0].map[3] == -1
    assert resolve_day(animal, day, use_snapshot=True).channel_maps[0].map[3] == 3

    orphan = day.model_copy(update={"configuration_snapshot_ref": 9})
    with pytest.raises(UnknownSnapshot):
        resolve_day(animal, orphan, use_snapshot=True)


def test_resolve_day_rejects_foreign_day(workspace: ws.Workspace, day_id: str) -> None:
    other = ws.create_animal(workspace, "bean", {"subject_id": "bean"})

    with pytest.raises(ValueError, match="belongs to"):
        resolve_day(other.animals["bean"], other.days[day_id])


def test_override_keeps_only_channels_wired_in_each_map() -> None:
    shank_1 = NtrodeChannelMap(ntrode_id=1, electrode_group_id=0, map={0: 4, 1: 5, 2: 6, 3: 7})

    assert apply_bad_channel_override(shank_1, [2, 5, 7]).bad_channels == (5, 7)
    assert apply_bad_channel_override(shank_1, None) is shank_1
