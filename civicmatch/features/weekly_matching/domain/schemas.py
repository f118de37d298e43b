"""
Boundary validation for profile rows.

Profiles are stored as a loosely typed JSON ``data`` column. Rows are
validated here once, so the scorer and assembler only ever see ``Profile``
values with clean string tuples.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import AimItem, Location, Profile

_LIST_SPLIT = re.compile(r"[,;\n]")


def _clean_string_list(value: Any) -> list[str]:
    """Accept a list, a delimited string or nothing; drop blanks and case-insensitive duplicates."""
    if value is None:
        return []
    if isinstance(value, str):
        items = _LIST_SPLIT.split(value)
    elif isinstance(value, (list, tuple, set)):
        items = [item for item in value if isinstance(item, str)]
    else:
        return []

    seen: set[str] = set()
    cleaned: list[str] = []
    for item in items:
        text = item.strip()
        if text and text.casefold() not in seen:
            seen.add(text.casefold())
            cleaned.append(text)
    return cleaned


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class LocationData(BaseModel):
    city: str | None = None
    country: str | None = None

    @field_validator("city", "country", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        text = _clean_text(value)
        return text or None


class AimData(BaseModel):
    title: str = ""
    summary: str = ""

    @field_validator("title", "summary", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _clean_text(value)


class EmailPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    weekly_matching_enabled: bool | None = Field(default=None, alias="weeklyMatchingEnabled")


class ProfileData(BaseModel):
    """The JSON ``data`` column of a profile row."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    display_name: str = Field(default="", alias="displayName")
    email: str | None = None
    bio: str = ""
    fame: str = ""
    game: str = ""
    work_style: str = Field(default="", alias="workStyle")
    help_needed: str = Field(default="", alias="helpNeeded")
    avatar_url: str | None = Field(default=None, alias="avatarUrl")
    skills: list[str] = Field(default_factory=list)
    causes: list[str] = Field(default_factory=list)
    values: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    aim: list[AimData] = Field(default_factory=list)
    location: LocationData | str | None = None
    email_preferences: EmailPreferences | None = Field(default=None, alias="emailPreferences")

    @field_validator("display_name", "bio", "fame", "game", "work_style", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _clean_text(value)

    @field_validator("help_needed", mode="before")
    @classmethod
    def _help_needed(cls, value: Any) -> str:
        if isinstance(value, (list, tuple)):
            return ", ".join(_clean_string_list(value))
        return _clean_text(value)

    @field_validator("email", "avatar_url", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return _clean_text(value) or None

    @field_validator("skills", "causes", "values", "tags", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> list[str]:
        return _clean_string_list(value)

    @field_validator("aim", mode="before")
    @classmethod
    def _aim(cls, value: Any) -> list[Any]:
        if isinstance(value, str):
            return [{"title": value}] if value.strip() else []
        if not isinstance(value, list):
            return []
        items = []
        for item in value:
            if isinstance(item, str) and item.strip():
                items.append({"title": item})
            elif isinstance(item, dict):
                items.append(item)
        return items

    @field_validator("email_preferences", mode="before")
    @classmethod
    def _preferences(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("location", mode="before")
    @classmethod
    def _location(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip() or None
        if isinstance(value, dict):
            return value
        return None


class ProfileRow(BaseModel):
    """A ``profiles`` row joined with the auth email."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    username: str = ""
    data: ProfileData = Field(default_factory=ProfileData)
    created_at: datetime | None = None
    auth_email: str | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _user_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("username", mode="before")
    @classmethod
    def _username(cls, value: Any) -> str:
        return _clean_text(value)

    @field_validator("data", mode="before")
    @classmethod
    def _data(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    def to_profile(self) -> Profile:
        data = self.data

        location: Location | None = None
        if isinstance(data.location, LocationData):
            if data.location.city or data.location.country:
                location = Location(city=data.location.city, country=data.location.country)
        elif data.location:
            location = Location(raw=data.location)

        enabled = True
        if data.email_preferences and data.email_preferences.weekly_matching_enabled is False:
            enabled = False

        return Profile(
            user_id=self.user_id,
            username=self.username,
            display_name=data.display_name,
            email=data.email or (self.auth_email.strip() if self.auth_email else None) or None,
            skills=tuple(data.skills),
            causes=tuple(data.causes),
            values=tuple(data.values),
            tags=tuple(data.tags),
            bio=data.bio,
            fame=data.fame,
            aim=tuple(AimItem(title=a.title, summary=a.summary) for a in data.aim if a.title),
            game=data.game,
            work_style=data.work_style,
            help_needed=data.help_needed,
            avatar_url=data.avatar_url,
            location=location,
            created_at=self.created_at,
            weekly_matching_enabled=enabled,
        )


def profile_from_row(row: dict[str, Any]) -> Profile:
    """Validate a raw database row into a ``Profile``."""
    return ProfileRow.model_validate(row).to_profile()
