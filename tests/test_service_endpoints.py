from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from ephys_metadata import create_app
from ephys_metadata.serialization import encode


def test_service_validate_endpoint_accepts_valid_text(document) -> None:
    client = TestClient(create_app())

    resp = client.post("/validate", json={"text": encode(document)})

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["accepted"] is True
    assert payload["decode_error"] is None
    assert payload["validation"] == {"is_valid": True, "errors": []}


def test_service_validate_endpoint_reports_issues(tmp_path: Path, document) -> None:
    registry = tmp_path / "runs.db"
    client = TestClient(create_app(registry_path=registry))
    document["institution"] = " "

    resp = client.post("/validate", json={"text": encode(document)})

    assert resp.status_code == 200
    errors = resp.json()["validation"]["errors"]
    assert [(e["path"], e["kind"], e["severity"]) for e in errors] == [("institution", "structural", "error")]

    runs = client.get("/runs").json()["runs"]
    assert [(r["kind"], r["status"], r["issues"]) for r in runs] == [("validate", "rejected", 1)]


def test_service_validate_document_endpoint(document) -> None:
    client = TestClient(create_app())
    document["cameras"] = []

    resp = client.post("/validate/document", json=document)

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["is_valid"] is False
    assert [e["code"] for e in payload["errors"]] == ["missing_camera"]


def test_service_normalize_endpoint() -> None:
    client = TestClient(create_app())

    ok = client.post("/normalize", json={"text": "institution: UCSF\nlab: Frank\n"})
    bad = client.post("/normalize", json={"text": "lab: a\nlab: b\n"})

    assert ok.status_code == 200
    assert ok.json()["text"] == "lab: Frank\ninstitution: UCSF\n"
    assert bad.status_code == 400
    assert bad.json()["detail"]["line"] == 2


def test_service_channel_map_endpoint() -> None:
    client = TestClient(create_app())
    existing = [{"ntrode_id": 0, "electrode_group_id": 0, "map": {"0": 0, "1": 1, "2": 2, "3": 3}}]

    resp = client.post(
        "/channel-maps",
        json={"device_type": "32c-2s8mm6cm-20um-40um-dl", "electrode_group_id": 1, "existing_maps": existing},
    )
    missing = client.post("/channel-maps", json={"device_type": "not-a-probe"})

    assert resp.status_code == 200
    maps = resp.json()["channel_maps"]
    assert [m["ntrode_id"] for m in maps] == [1, 2]
    assert maps[1]["map"]["0"] == 16
    assert missing.status_code == 404


def test_service_metadata_endpoints() -> None:
    client = TestClient(create_app())

    assert client.get("/health").json() == {"status": "ok"}
    assert "version" in client.get("/version").json()
    assert client.get("/device-types").json()["device_types"]["tetrode_12.5"]["channels_per_shank"] == 4
    assert client.get("/runs").status_code == 400


def test_channel_maps_endpoint_rejects_invalid_existing_maps() -> None:
    client = TestClient(create_app())

    resp = client.post(
        "/channel-maps",
        json={"device_type": "tetrode_12.5", "existing_maps": [{"ntrode_id": -1, "electrode_group_id": 0}]},
    )

    assert resp.status_code == 422
    assert resp.json()["detail"][0]["loc"] == ["ntrode_id"]
