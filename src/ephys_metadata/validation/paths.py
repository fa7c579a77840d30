"""Field path addressing: ``cameras[0].id``, ``ntrode_electrode_group_channel_map[1].map[3]``.

Names are joined with dots; list indices and mapping keys use brackets.
"""

from __future__ import annotations

from typing import Iterable, Union

PathPart = Union[str, int]

_PYDANTIC_MARKERS = {"[key]"}


def format_path(parts: Iterable[PathPart]) -> str:
    path = ""
    for part in parts:
        if isinstance(part, str) and part in _PYDANTIC_MARKERS:
            continue
        if isinstance(part, int) or (isinstance(part, str) and part.lstrip("-").isdigit()):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path


def join(base: str, *parts: PathPart) -> str:
    return format_path([base, *parts]) if base else format_path(parts)
