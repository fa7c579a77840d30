from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from ephys_metadata import workspace as ws
from ephys_metadata.config import SETTINGS_ENV, Settings, load_settings
from ephys_metadata.logging_utils import log_event
from ephys_metadata.registry import list_runs, purge_runs, record_run


def test_settings_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "settings.yml"
    path.write_text(
        "\n".join(
            [
                "lab: Loren Frank Lab",
                "experimenter_name: Guidera, Jennifer",
                "raw_data_to_volts: 0.5",
                "unrelated: ignored",
                "device_types:",
                "  lab-probe:",
                "    shank_count: 2",
                "    channels_per_shank: 8",
            ]
        ),
        encoding="utf-8",
    )

    settings = Settings.from_file(path)

    assert settings.lab == "Loren Frank Lab"
    assert settings.experimenter_name == ("Guidera, Jennifer",)
    assert settings.raw_data_to_volts == 0.5
    assert settings.device_registry().lookup("lab-probe").total_channels == 16
    assert settings.as_dict()["experimenter_name"] == ["Guidera, Jennifer"]


def test_settings_drive_new_animals_and_days(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"lab": "Frank", "session_id_separator": "-", "times_period_multiplier": 2.0}))
    settings = Settings.from_file(path)

    state = ws.create_animal(ws.Workspace(), "bean", {"subject_id": "bean"}, settings=settings)
    state = ws.create_day(state, "bean", "2024-02-03", settings=settings)

    assert state.animals["bean"].experimenters.lab == "Frank"
    day = state.days["bean-2024-02-03"]
    assert day.session.session_id == "bean-20240203"
    assert day.technical.times_period_multiplier == 2.0


def test_load_settings_uses_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "settings.yml"
    path.write_text("institution: UCSF\n", encoding="utf-8")

    monkeypatch.delenv(SETTINGS_ENV, raising=False)
    assert load_settings() == Settings()

    monkeypatch.setenv(SETTINGS_ENV, str(path))
    assert load_settings().institution == "UCSF"


def test_settings_file_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        Settings.from_file(tmp_path / "missing.yml")

    listing = tmp_path / "list.yml"
    listing.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        Settings.from_file(listing)


def test_log_event_emits_json(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("ephys_metadata.tests")

    with caplog.at_level(logging.INFO, logger="ephys_metadata.tests"):
        log_event(logger, "export_complete", json_logs=True, day_id="remy-2023-06-22")

    assert json.loads(caplog.records[-1].getMessage()) == {"day_id": "remy-2023-06-22", "event": "export_complete"}


def test_registry_records_and_purges_runs(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "runs.db"

    record_run(db_path, "import", "a.yml", "imported", "remy")
    record_run(db_path, "export", "b.yml", "exported", "remy", issues=2)

    runs = list_runs(db_path)
    assert [r.location for r in runs] == ["b.yml", "a.yml"]
    assert [r.kind for r in list_runs(db_path, kind="import")] == ["import"]
    assert runs[0].as_dict()["issues"] == 2

    purge_runs(db_path)
    assert list_runs(db_path) == []
