"""Convert result objects into JSON-ready payloads with camelCase keys."""

from __future__ import annotations

import dataclasses
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from .exceptions import FloatlineError


def to_payload(value: Any) -> Any:
    """Recursively convert a result into plain dicts, lists and scalars.

    Dataclass field names and error fields become camelCase; mapping keys that
    are data (task ids, objective kinds) are kept as they are. Fields declared
    with ``metadata={"serialize": False}`` are left out.
    """
    if isinstance(value, FloatlineError):
        return {to_camel(k): to_payload(v) for k, v in value.to_dict().items()}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            to_camel(f.name): to_payload(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if f.metadata.get("serialize", True)
        }
    if isinstance(value, BaseModel):
        return to_payload(value.model_dump(mode="json", by_alias=True))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {_key(k): to_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return [to_payload(v) for v in items]
    return value


def _key(key: Any) -> Any:
    if isinstance(key, Enum):
        return key.value
    if isinstance(key, date):
        return key.isoformat()
    return key
