"""Domain models for people, photos and users.

Graph properties are camelCase (``birthDate``); Python attributes are
snake_case and mapped through aliases, so ``Person.model_validate`` accepts
node properties directly and ``model_dump(by_alias=True)`` produces them.
"""

from __future__ import annotations

import json
import re
import unicodedata
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer, model_validator

NAME_MAX_LEN = 75
GENDER_MAX_LEN = 30
BIO_MAX_LEN = 1000
DATE_MAX_LEN = 30
MEDIA_KEY_PATTERN = re.compile(r"^[^/.][^/]{0,127}$")


def normalize_text(value: str, *, single_line: bool = True) -> str:
    """Strip non-printable characters, NFC-normalize and trim ``value``.

    With ``single_line`` all whitespace runs collapse to one space;
    otherwise newlines and tabs are kept.
    """
    if single_line:
        value = " ".join(value.split())
    value = "".join(ch for ch in value if ch.isprintable() or ch in "\n\t")
    value = unicodedata.normalize("NFC", value)
    if single_line:
        return " ".join(value.split())
    return value.strip()


def is_valid_media_key(key: str) -> bool:
    return bool(MEDIA_KEY_PATTERN.match(key))


class DateKind(str, Enum):
    UNKNOWN = "unknown"
    NOT_APPLICABLE = "n/a"
    EXPLICIT = "explicit"


class PersonDate(BaseModel):
    """A birth or death date that is explicit, unknown, or not applicable.

    "Unknown" means the date was asked for but nobody knows it, "not
    applicable" means there is no such date (a living person has no death
    date). A missing property on the node means it was never recorded.
    The graph stores ``"unknown"``, ``"n/a"`` or an ISO ``YYYY-MM-DD`` string.
    """

    model_config = ConfigDict(frozen=True)

    kind: DateKind
    value: Optional[date] = None

    @model_validator(mode="before")
    @classmethod
    def _parse(cls, data: Any) -> Any:
        if isinstance(data, date) and not isinstance(data, datetime):
            return {"kind": DateKind.EXPLICIT, "value": data}
        if not isinstance(data, str):
            return data
        text = data.strip().lower()
        if len(text) > DATE_MAX_LEN:
            raise ValueError("date is too long")
        if text == DateKind.UNKNOWN.value:
            return {"kind": DateKind.UNKNOWN}
        if text == DateKind.NOT_APPLICABLE.value:
            return {"kind": DateKind.NOT_APPLICABLE}
        try:
            return {"kind": DateKind.EXPLICIT, "value": date.fromisoformat(text)}
        except ValueError:
            raise ValueError(f'"{data}" is not a YYYY-MM-DD date, "unknown" or "n/a"') from None

    @model_validator(mode="after")
    def _check_value(self) -> "PersonDate":
        if self.kind is DateKind.EXPLICIT and self.value is None:
            raise ValueError("explicit date requires a value")
        if self.kind is not DateKind.EXPLICIT and self.value is not None:
            raise ValueError(f"{self.kind.value} date cannot carry a value")
        return self

    @classmethod
    def unknown(cls) -> "PersonDate":
        return cls(kind=DateKind.UNKNOWN)

    @classmethod
    def not_applicable(cls) -> "PersonDate":
        return cls(kind=DateKind.NOT_APPLICABLE)

    @classmethod
    def explicit(cls, value: date) -> "PersonDate":
        return cls(kind=DateKind.EXPLICIT, value=value)

    @model_serializer
    def to_graph(self) -> str:
        if self.kind is DateKind.EXPLICIT:
            assert self.value is not None
            return self.value.isoformat()
        return self.kind.value


class PersonData(BaseModel):
    """Person fields as supplied on creation (the server assigns ``id``)."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LEN)
    gender: Optional[str] = Field(None, max_length=GENDER_MAX_LEN)
    birth_date: Optional[PersonDate] = Field(None, alias="birthDate")
    death_date: Optional[PersonDate] = Field(None, alias="deathDate")
    bio: Optional[str] = Field(None, max_length=BIO_MAX_LEN)
    portrait: Optional[str] = None

    @field_validator("name", "gender", mode="before")
    @classmethod
    def _normalize_line(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v)
        return v

    @field_validator("bio", mode="before")
    @classmethod
    def _normalize_bio(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v, single_line=False)
        return v

    @field_validator("portrait")
    @classmethod
    def _check_portrait(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_media_key(v):
            raise ValueError("portrait must be a plain file name")
        return v

    def graph_properties(self) -> Dict[str, Any]:
        """Node properties for this person, leaving out unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Person(PersonData):
    """Person node as stored in the graph."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str


class PersonUpdate(BaseModel):
    """Partial person update.

    Fields left out are unchanged, fields explicitly set to ``None`` are
    removed from the node. ``name`` can be changed but never removed.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    id: str
    name: Optional[str] = Field(None, min_length=1, max_length=NAME_MAX_LEN)
    gender: Optional[str] = Field(None, max_length=GENDER_MAX_LEN)
    birth_date: Optional[PersonDate] = Field(None, alias="birthDate")
    death_date: Optional[PersonDate] = Field(None, alias="deathDate")
    bio: Optional[str] = Field(None, max_length=BIO_MAX_LEN)
    portrait: Optional[str] = None

    @field_validator("gender", mode="before")
    @classmethod
    def _normalize_line(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v)
        return v

    @field_validator("bio", mode="before")
    @classmethod
    def _normalize_bio(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v, single_line=False)
        return v

    @field_validator("portrait")
    @classmethod
    def _check_portrait(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_media_key(v):
            raise ValueError("portrait must be a plain file name")
        return v

    @field_validator("name", mode="before")
    @classmethod
    def _name_not_removed(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("name cannot be removed")
        if isinstance(v, str):
            return normalize_text(v)
        return v

    def graph_changes(self) -> Dict[str, Any]:
        """Node properties touched by this update; ``None`` values mean remove."""
        changes: Dict[str, Any] = {}
        dumped = self.model_dump(by_alias=True)
        for field_name in self.model_fields_set:
            if field_name == "id":
                continue
            info = type(self).model_fields[field_name]
            key = info.alias or field_name
            changes[key] = dumped[key]
        return changes


def _from_epoch_millis(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
    if hasattr(v, "to_native"):
        return v.to_native()
    return v


class PhotoItem(BaseModel):
    """A stored file about to be attached to a person."""

    hash: str = Field(..., min_length=1, max_length=128)
    filename: str

    @field_validator("filename")
    @classmethod
    def _check_filename(cls, v: str) -> str:
        if not is_valid_media_key(v):
            raise ValueError("filename must be a plain file name")
        return v


class Photo(PhotoItem):
    id: str
    created: datetime

    @field_validator("created", mode="before")
    @classmethod
    def _parse_created(cls, v: Any) -> Any:
        return _from_epoch_millis(v)


class Permission(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    ADMIN = "admin"


class UserOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    language: Optional[Literal["en", "ru"]] = None


class User(BaseModel):
    """User node of the identity subgraph.

    ``options`` is stored as a JSON string property because Neo4j
    properties cannot hold maps.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    username: str = Field(..., min_length=2, max_length=32)
    password_hash: str = Field(..., alias="passwordHash", repr=False)
    permissions: List[Permission] = Field(default_factory=list)
    options: UserOptions = Field(default_factory=UserOptions)
    creation_time: int = Field(0, alias="creationTime")

    @field_validator("options", mode="before")
    @classmethod
    def _parse_options(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, str):
            return json.loads(v) if v else {}
        return v

    def public_dict(self) -> Dict[str, Any]:
        """User fields that are safe to hand to the user or an admin."""
        return self.model_dump(mode="json", by_alias=True, exclude={"password_hash"})


class DatabaseSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    user_id: str = Field(..., alias="userId")
    expires_at: int = Field(..., alias="expiresAt")

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at <= now_ms
