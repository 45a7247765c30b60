"""Task wire schemas (camelCase JSON)."""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Older clients send "normal" for the default priority.
PRIORITY_ALIASES = {"normal": Priority.MEDIUM.value}


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_datetime(value: object) -> datetime | None:
    """Coerce common date/time representations into an aware `datetime`.

    Accepts `datetime`, `date`, ISO strings with or without a time part and a
    trailing ``Z``. Raises ValueError for anything else so that pydantic
    reports a validation error.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return as_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except ValueError:
            pass
        try:
            return coerce_datetime(date.fromisoformat(raw[:10]))
        except ValueError:
            pass
    raise ValueError(f"invalid date/time: {value!r}")


def coerce_bool(value: object) -> object:
    """Storage layers may hand back "true"/"false" strings."""
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    return value


def normalize_priority(value: object) -> object:
    if isinstance(value, str):
        raw = value.strip().lower()
        return PRIORITY_ALIASES.get(raw, raw)
    return value


def _aware_or_passthrough(value: object) -> object:
    return as_utc(value) if isinstance(value, datetime) else value


WireDateTime = Annotated[datetime | None, BeforeValidator(coerce_datetime)]
StoredDateTime = Annotated[datetime | None, BeforeValidator(_aware_or_passthrough)]
WireBool = Annotated[bool, BeforeValidator(coerce_bool)]
WirePriority = Annotated[Priority, BeforeValidator(normalize_priority)]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TaskCreate(_WireModel):
    title: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    due_date: WireDateTime = None
    priority: WirePriority = Priority.MEDIUM
    completed: WireBool = False
    color: str | None = Field(default=None, max_length=32)
    # Claimed owner; the server always stores the session user
    user_id: str | None = None

    def column_values(self) -> dict[str, Any]:
        data = self.model_dump(exclude={"user_id"})
        data["priority"] = Priority(data["priority"]).value
        return data


class TaskPatch(_WireModel):
    """Partial update; only fields present in the payload are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=1000)
    due_date: WireDateTime = None
    priority: WirePriority | None = None
    completed: WireBool | None = None
    color: str | None = Field(default=None, max_length=32)
    user_id: str | None = None

    @field_validator("title", "priority", "completed")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("field cannot be null")
        return value

    def changes(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True, exclude={"user_id"})
        if "priority" in data:
            data["priority"] = Priority(data["priority"]).value
        return data


class TaskUpdate(TaskPatch):
    id: str = Field(min_length=1)

    def changes(self) -> dict[str, Any]:
        data = super().changes()
        data.pop("id", None)
        return data


class TaskDelete(_WireModel):
    id: str = Field(min_length=1)


class TaskRead(_WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: str
    user_id: str
    title: str
    description: str | None = None
    due_date: StoredDateTime = None
    priority: str
    completed: bool
    color: str | None = None
    created_at: StoredDateTime = None
    updated_at: StoredDateTime = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class WeekRange(BaseModel):
    start: WireDateTime
    end: WireDateTime
