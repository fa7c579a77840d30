"""Field types shared by the frozen models."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Union

from pydantic import StrictFloat, StrictInt, WrapSerializer

# Numbers keep the type they arrived with, so ``450`` never turns into ``450.0``.
Number = Union[StrictInt, StrictFloat]


def read_only(value: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(value))


def _dump_as_dict(value: Mapping[Any, Any], handler: Any) -> Any:
    return handler(dict(value))


# Serializes a read-only mapping field as a plain dict.
AS_DICT = WrapSerializer(_dump_as_dict)
