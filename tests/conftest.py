from __future__ import annotations

import copy
import datetime as dt
from typing import Any, Dict

import pytest

from ephys_metadata.merge import resolve_day
from ephys_metadata.workspace import Workspace, create_animal, create_day

SUBJECT = {
    "subject_id": "remy",
    "species": "Rattus norvegicus",
    "sex": "M",
    "genotype": "Wild Type",
    "date_of_birth": "2023-01-01T00:00:00.000Z",
    "description": "Long Evans Rat",
    "weight": 450.0,
}

EXPERIMENTERS = {
    "experimenter_name": ["Guidera, Jennifer"],
    "lab": "Loren Frank Lab",
    "institution": "University of California, San Francisco",
}

TETRODE_GROUP = {
    "id": 0,
    "location": "CA1",
    "device_type": "tetrode_12.5",
    "description": "Dorsal CA1 tetrode",
    "targeted_location": "CA1",
    "targeted_x": 1.5,
    "targeted_y": -2.0,
    "targeted_z": 3.25,
    "units": "mm",
}

CAMERA = {
    "id": 0,
    "meters_per_pixel": 0.001,
    "manufacturer": "Allied Vision",
    "model": "Mako G-158C",
    "lens": "Theia",
    "camera_name": "sleepbox",
}

DATA_ACQ_DEVICE = {
    "name": "SpikeGadgets",
    "system": "SpikeGadgets",
    "amplifier": "Intan",
    "adc_circuit": "Intan",
}

SLEEP_TASK = {
    "task_name": "sleep",
    "task_description": "rest in the sleep box",
    "task_environment": "sleepbox",
    "camera_id": [0],
    "task_epochs": [1, 3],
}


@pytest.fixture
def workspace() -> Workspace:
    """Workspace with animal ``remy`` (one tetrode, one camera) and one draft Day."""

    ws = create_animal(
        Workspace(),
        "remy",
        SUBJECT,
        experimenters=EXPERIMENTERS,
        electrode_groups=[TETRODE_GROUP],
        cameras=[CAMERA],
        data_acq_device=[DATA_ACQ_DEVICE],
        device_names=["Trodes"],
        behavioral_events=[{"description": "Din1", "name": "Light_1"}],
        today=dt.date(2023, 6, 1),
    )
    return create_day(
        ws,
        "remy",
        "2023-06-22",
        {"session_description": "sleep session", "experiment_description": "spatial memory"},
        tasks=[SLEEP_TASK],
        technical={"units": {"analog": "1", "behavioral_events": "1"}},
    )


@pytest.fixture
def day_id() -> str:
    return "remy-2023-06-22"


@pytest.fixture
def document(workspace: Workspace, day_id: str) -> Dict[str, Any]:
    """Valid wire document for the fixture Day."""

    day = workspace.days[day_id]
    return resolve_day(workspace.animals[day.animal_id], day).to_document()


@pytest.fixture
def mutable_document(document: Dict[str, Any]) -> Dict[str, Any]:
    return copy.deepcopy(document)
