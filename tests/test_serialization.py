from __future__ import annotations

import datetime as dt
from typing import Any, Dict

import pytest

from ephys_metadata.errors import DecodeError
from ephys_metadata.serialization import canonicalize, decode, encode, export_filename


def test_encode_decode_preserves_document(document: Dict[str, Any]) -> None:
    text = encode(document)

    decoded = decode(text)

    assert decoded.ok
    assert decoded.document == document
    assert encode(decoded.document) == text


def test_encoding_ignores_construction_order(document: Dict[str, Any]) -> None:
    shuffled = {key: document[key] for key in sorted(document)}
    shuffled["subject"] = dict(reversed(list(document["subject"].items())))
    shuffled["ntrode_electrode_group_channel_map"] = [
        {**m, "map": dict(reversed(list(m["map"].items())))} for m in document["ntrode_electrode_group_channel_map"]
    ]

    assert encode(shuffled) == encode(document)


def test_encoded_layout(document: Dict[str, Any]) -> None:
    text = encode(document)
    lines = text.splitlines()

    assert lines[0] == "experimenter_name:"
    assert lines[1] == "- Guidera, Jennifer"
    assert "session_id: remy_20230622" in lines
    assert "  map:" in text and "    0: 0" in text
    assert "&" not in text and "*" not in text
    assert text.endswith("\n") and "\r" not in text


def test_unknown_keys_follow_schema_keys_in_sorted_order() -> None:
    ordered = canonicalize({"zeta": 1, "alpha": 2, "lab": "x", "experimenter_name": ["a"]})

    assert list(ordered) == ["experimenter_name", "lab", "alpha", "zeta"]


def test_canonical_map_keys_are_numeric() -> None:
    ordered = canonicalize({"ntrode_electrode_group_channel_map": [{"map": {10: 1, 2: 0, 1: 3}}]})

    assert list(ordered["ntrode_electrode_group_channel_map"][0]["map"]) == [1, 2, 10]


def test_timestamps_stay_strings() -> None:
    decoded = decode("subject:\n  date_of_birth: 2023-01-01T00:00:00.000Z\nsession_date: 2023-06-22\n")

    assert decoded.document == {
        "subject": {"date_of_birth": "2023-01-01T00:00:00.000Z"},
        "session_date": "2023-06-22",
    }


def test_decode_accepts_utf8_bytes() -> None:
    decoded = decode("lab: Département\n".encode("utf-8"))

    assert decoded.document == {"lab": "Département"}


@pytest.mark.parametrize(
    ("text", "fragment"),
    [
        ("", "empty"),
        ("# only a comment\n", "empty"),
        ("- a\n- b\n", "mapping"),
        ("plain scalar\n", "mapping"),
        ("lab: a\n---\nlab: b\n", "single YAML document"),
        (b"\xff\xfe lab", "UTF-8"),
    ],
)
def test_decode_failures_are_returned(text, fragment: str) -> None:
    decoded = decode(text)

    assert not decoded.ok
    assert decoded.document is None
    assert fragment in decoded.error.message


def test_decode_reports_position_of_syntax_errors() -> None:
    decoded = decode("lab: ok\nsubject: [unclosed\n")

    assert not decoded.ok
    assert decoded.error.line is not None and decoded.error.line >= 2
    assert decoded.error.column is not None
    assert decoded.as_dict()["error"]["line"] == decoded.error.line


def test_decode_rejects_duplicate_keys() -> None:
    decoded = decode("lab: a\ninstitution: b\nlab: c\n")

    assert not decoded.ok
    assert "duplicate key 'lab'" in decoded.error.message
    assert decoded.error.line == 3
    with pytest.raises(DecodeError):
        decoded.unwrap()


def test_export_filename() -> None:
    assert export_filename(dt.date(2023, 6, 22), "Remy") == "06222023_remy_metadata.yml"
    assert export_filename("2024-01-05", "bean") == "01052024_bean_metadata.yml"
