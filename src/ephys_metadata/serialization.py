"""Deterministic YAML encoding and non-throwing decoding of metadata documents.

Key order comes from the schema's field declaration order, never from the
order a mapping happened to be built in. Keys the schema does not know are
appended in sorted order, channel-map keys ascend numerically, and list
order is preserved. Anchors and aliases are never emitted.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Type

import yaml
from pydantic import BaseModel

from .errors import DecodeError
from .validation.schema import MetadataDocument, field_order, nested_model

TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


def _key_rank(key: Any) -> Tuple[int, Any]:
    if isinstance(key, (int, float)) and not isinstance(key, bool):
        return (0, key)
    return (1, str(key))


def canonicalize(value: Any, model: Optional[Type[BaseModel]] = MetadataDocument) -> Any:
    """Return a plain dict/list copy of ``value`` with canonical key order."""

    if hasattr(value, "to_document"):
        value = value.to_document()
    elif isinstance(value, BaseModel):
        value = value.model_dump()

    if isinstance(value, Mapping):
        if model is None:
            return {key: canonicalize(value[key], None) for key in sorted(value, key=_key_rank)}
        order = field_order(model)
        known = [key for key in order if key in value]
        extra = sorted((key for key in value if key not in model.model_fields), key=_key_rank)
        return {
            key: canonicalize(value[key], nested_model(model, key) if key in model.model_fields else None)
            for key in known + extra
        }
    if isinstance(value, (list, tuple)):
        return [canonicalize(item, model) for item in value]
    if isinstance(value, (set, frozenset)):
        return [canonicalize(item, None) for item in sorted(value, key=_key_rank)]
    return value


class _CanonicalDumper(yaml.SafeDumper):
    def ignore_aliases(self, data: Any) -> bool:
        return True


class _StrictLoader(yaml.SafeLoader):
    """Safe loader without implicit timestamps that rejects duplicate keys."""


_StrictLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_unique_mapping(loader: yaml.SafeLoader, node: yaml.MappingNode, deep: bool = False) -> Dict[Any, Any]:
    loader.flatten_mapping(node)
    mapping: Dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=True)
        try:
            hash(key)
        except TypeError:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark, "found unhashable key", key_node.start_mark
            ) from None
        if key in mapping:
            raise yaml.constructor.ConstructorError(
                "while constructing a mapping", node.start_mark, f"found duplicate key {key!r}", key_node.start_mark
            )
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


_StrictLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping)


def encode(document: Any) -> str:
    """Serialize a document to YAML text; equal documents give identical bytes."""

    return yaml.dump(
        canonicalize(document),
        Dumper=_CanonicalDumper,
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
        indent=2,
        line_break="\n",
    )


@dataclass(frozen=True)
class DecodeResult:
    document: Optional[Dict[str, Any]] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        assert self.document is not None
        return self.document

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "document": self.document,
            "error": self.error.as_dict() if self.error else None,
        }


def _failure(message: str, line: int | None = None, column: int | None = None) -> DecodeResult:
    return DecodeResult(error=DecodeError(message, line, column))


def decode(text: str | bytes) -> DecodeResult:
    """Parse YAML text into a document. Never raises; failures come back as ``DecodeResult.error``."""

    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            return _failure(f"Input is not valid UTF-8: {exc.reason}")
    if not isinstance(text, str):
        return _failure(f"Expected text, got {type(text).__name__}")

    try:
        documents = list(yaml.load_all(text, Loader=_StrictLoader))
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        message = exc.problem or exc.context or "Malformed YAML"
        if mark is None:
            return _failure(message)
        return _failure(message, mark.line + 1, mark.column + 1)
    except (yaml.YAMLError, RecursionError) as exc:
        return _failure(f"Malformed YAML: {exc}")

    if not documents or documents[0] is None:
        return _failure("Document is empty")
    if len(documents) > 1:
        return _failure(f"Expected a single YAML document, found {len(documents)}")
    document = documents[0]
    if not isinstance(document, dict):
        return _failure(f"Top level must be a mapping, got {type(document).__name__}")
    return DecodeResult(document=document)


def export_filename(date: dt.date | str, animal_id: str) -> str:
    """``mmddYYYY_<animal id lower-cased>_metadata.yml``."""

    if isinstance(date, str):
        date = dt.date.fromisoformat(date)
    return f"{date.strftime('%m%d%Y')}_{animal_id.lower()}_metadata.yml"


__all__ = ["DecodeResult", "canonicalize", "decode", "encode", "export_filename"]
