"""
onsweb.api.schemas — Request Bodies
====================================

Pydantic models for every JSON body the API accepts.  Rejections become a
400 ``VALIDATION_ERROR`` envelope with one entry per offending field (see
:mod:`onsweb.api.responses`).
"""

from __future__ import annotations

import datetime as dt
import re
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, HttpUrl, field_validator

from onsweb.database.models import ContentType

_PASSWORD_SHAPE = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)")
_PHONE_SHAPE = re.compile(r"^\+?[\d\s\-()]+$")
_TIME_SHAPE = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


def _check_phone(value: str | None) -> str | None:
    if value is not None and not _PHONE_SHAPE.match(value):
        raise ValueError("Invalid phone number format")
    return value


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)
    remember_me: bool = False


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=2, max_length=100)
    phone: str | None = None

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        if not _PASSWORD_SHAPE.match(value):
            raise ValueError("Password must contain at least one letter and one number")
        return value

    check_phone = field_validator("phone")(_check_phone)


class RefreshRequest(BaseModel):
    refresh_token: str | None = None


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    phone: str | None = None
    profile_image: HttpUrl | None = None

    check_phone = field_validator("phone")(_check_phone)


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------
class ContentCreate(BaseModel):
    type: ContentType
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    featured_image: HttpUrl | None = None
    is_published: bool = False
    published_at: datetime | None = None
    scheduled_at: datetime | None = None
    priority: int | None = Field(default=None, ge=1, le=10)


class ContentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    body: str | None = Field(default=None, min_length=1)
    featured_image: HttpUrl | None = None
    is_published: bool | None = None
    published_at: datetime | None = None
    scheduled_at: datetime | None = None
    priority: int | None = Field(default=None, ge=1, le=10)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    date: dt.date
    time: str = Field(pattern=_TIME_SHAPE)
    location: str = Field(min_length=1, max_length=200)
    max_participants: int | None = Field(default=None, gt=0)
    registration_deadline: datetime | None = None
    registration_enabled: bool = True
    featured_image: HttpUrl | None = None
    is_published: bool = False
    published_at: datetime | None = None
    scheduled_at: datetime | None = None


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    date: dt.date | None = None
    time: str | None = Field(default=None, pattern=_TIME_SHAPE)
    location: str | None = Field(default=None, min_length=1, max_length=200)
    max_participants: int | None = Field(default=None, gt=0)
    registration_deadline: datetime | None = None
    registration_enabled: bool | None = None
    featured_image: HttpUrl | None = None
    is_published: bool | None = None
    published_at: datetime | None = None
    scheduled_at: datetime | None = None


class RegistrationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    phone: str | None = None
    dietary_restrictions: str | None = Field(default=None, max_length=500)
    emergency_contact: str | None = Field(default=None, max_length=200)

    check_phone = field_validator("phone")(_check_phone)


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------
class MediaMetadataUpdate(BaseModel):
    tags: list[str] | None = Field(default=None, max_length=10)
    description: str | None = Field(default=None, max_length=1000)
    alt_text: str | None = Field(default=None, max_length=300)
    category: str | None = Field(default=None, max_length=100)
    is_public: bool | None = None

    @field_validator("tags")
    @classmethod
    def check_tag_length(cls, value: list[str] | None) -> list[str] | None:
        if value is not None and any(len(t) > 50 for t in value):
            raise ValueError("Tag must be less than 50 characters")
        return value


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=100)


def dump_body(model: BaseModel, *, partial: bool = False) -> dict:
    """Plain dict of *model* with URLs as strings.

    With *partial*, only the fields the client actually sent.
    """
    data = model.model_dump(exclude_unset=partial)
    for key, value in data.items():
        if isinstance(value, HttpUrl):
            data[key] = str(value)
    return data
