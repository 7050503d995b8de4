from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from livedb_es.errors import InvalidOperationError


class DocKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    collection: str = Field(min_length=1)
    doc_id: str = Field(min_length=1)


class OpData(BaseModel):
    model_config = ConfigDict(extra="allow")

    v: StrictInt = Field(ge=0)


@dataclass(frozen=True)
class Snapshot:
    collection: str
    doc_id: str
    data: Any


def doc_key(collection: str, doc_id: str) -> DocKey:
    """Validate a document identity; raises ``ValueError`` on empty parts."""
    return DocKey(collection=collection, doc_id=doc_id)


def op_version(op: Mapping[str, Any]) -> int:
    """Return the version carried by ``op`` or raise ``InvalidOperationError``."""
    if not isinstance(op, Mapping):
        raise InvalidOperationError(f"operation must be a mapping, got {type(op).__name__}")
    try:
        return OpData.model_validate(dict(op)).v
    except ValidationError as exc:
        raise InvalidOperationError(f"operation needs a non-negative integer 'v': {exc.errors()[0]['msg']}") from exc


def range_is_empty(start: int, end: int | None) -> bool:
    """Check version bounds; a reversed or zero-width range is empty, not an error."""
    if start < 0 or (end is not None and end < 0):
        raise ValueError(f"version bounds must be non-negative, got start={start} end={end}")
    return end is not None and start >= end
