"""Parsing of caller payloads into validated models.

Payloads arrive either as JSON text or as already-decoded mappings. All
validation problems surface as ``ValidationFailure`` (or one of its
subclasses) before anything touches the database.
"""

from __future__ import annotations

import json
import uuid
from enum import Enum
from typing import Any, Dict, List, Mapping, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import CircularRelation, ConflictingRelation, MissingId, ValidationFailure
from .models import PersonData, PersonUpdate

M = TypeVar("M", bound=BaseModel)

Payload = Union[str, bytes, Mapping[str, Any]]


def normalize_person_id(value: Any) -> str:
    """Return ``value`` as a canonical lower-case UUID string."""
    if not isinstance(value, str):
        raise ValueError("person id must be a string")
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        raise ValueError(f'"{value}" is not a valid person id') from None


class RelativeKind(str, Enum):
    """How the listed people relate to the person being edited."""

    PARENT = "parent"
    CHILD = "child"
    PARTNER = "partner"


class RelativesTypeChange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    added: List[str]
    removed: List[str]

    @field_validator("added", "removed", mode="before")
    @classmethod
    def _normalize_ids(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [normalize_person_id(i) for i in v]
        return v


RelativesChange = Dict[RelativeKind, RelativesTypeChange]


def _decode(payload: Payload, what: str) -> Dict[str, Any]:
    if payload is None:
        raise ValidationFailure(f"missing {what}")
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            raise ValidationFailure("invalid json") from None
    if not isinstance(payload, Mapping):
        raise ValidationFailure(f"{what} must be a JSON object")
    return dict(payload)


def validate_model(model: Type[M], data: Any) -> M:
    """Validate ``data`` against ``model``, raising ``ValidationFailure``."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ()))
        message = first.get("msg", "invalid value")
        raise ValidationFailure(f"{location}: {message}" if location else message) from e


def parse_new_person(payload: Payload) -> PersonData:
    data = _decode(payload, "new person data")
    if "id" in data:
        raise ValidationFailure("id is assigned by the server")
    return validate_model(PersonData, data)


def parse_person_update(payload: Payload) -> PersonUpdate:
    data = _decode(payload, "person update data")
    if not data.get("id"):
        raise MissingId("person update needs an id")
    try:
        data["id"] = normalize_person_id(data["id"])
    except ValueError as e:
        raise ValidationFailure(str(e)) from None
    return validate_model(PersonUpdate, data)


def parse_relatives_change(payload: Payload, person_id: str) -> RelativesChange:
    """Parse a relatives change for ``person_id``.

    The payload maps a relative kind to the ids added and removed under it::

        {"parent": {"added": [...], "removed": [...]}, "partner": {...}}

    Raises:
        CircularRelation: The person lists itself as its own relative.
        ConflictingRelation: An id is both added and removed under one kind.
    """
    data = _decode(payload, "relatives update data")
    try:
        person_id = normalize_person_id(person_id)
    except ValueError as e:
        raise ValidationFailure(str(e)) from None

    change: RelativesChange = {}
    for key, value in data.items():
        try:
            kind = RelativeKind(key)
        except ValueError:
            raise ValidationFailure(f'unknown relative kind "{key}"') from None
        change[kind] = validate_model(RelativesTypeChange, value)

    for kind_change in change.values():
        if person_id in kind_change.added or person_id in kind_change.removed:
            raise CircularRelation("circular relations are not allowed")
        if set(kind_change.added) & set(kind_change.removed):
            raise ConflictingRelation("conflicting relation directives")
    return change
