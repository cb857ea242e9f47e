from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

_HTTP_URL = TypeAdapter(AnyHttpUrl)


class AuthorProfile(BaseModel):
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


def normalize_profile(value: Any) -> Optional[Dict[str, Any]]:
    """Return a joined ``profiles`` value only when it is a usable row.

    PostgREST reports a failed embed as an object carrying an ``error`` key,
    and a missing row as ``None``; both degrade to an author-less record.
    """
    if isinstance(value, AuthorProfile):
        return value.model_dump()
    if isinstance(value, list):
        value = value[0] if value else None
    if not isinstance(value, dict) or "error" in value or not value.get("id"):
        return None
    return value


class GroupComment(BaseModel):
    id: str
    group_id: str
    user_id: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    portfolio_id: Optional[str] = None
    profiles: Optional[AuthorProfile] = None

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _coerce_row(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        row = dict(data)
        if "content" not in row and "comment" in row:
            row["content"] = row.pop("comment")
        for key in ("id", "group_id", "user_id", "portfolio_id"):
            if row.get(key) is not None:
                row[key] = str(row[key])
        row["profiles"] = normalize_profile(row.get("profiles"))
        return row

    @field_validator("created_at", "updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive and aware timestamps must stay comparable when the feed sorts.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Group(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    cover_image: Optional[str] = Field(None, max_length=2048)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Name must be at least 3 characters")
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cover_image", mode="before")
    @classmethod
    def _validate_cover(cls, value: Any) -> Any:
        if value is None:
            return None
        value = str(value).strip()
        if not value:
            return None
        try:
            _HTTP_URL.validate_python(value)
        except ValueError as exc:
            raise ValueError("Please enter a valid URL") from exc
        return value


class GroupMember(BaseModel):
    id: str
    group_id: str
    user_id: str
    joined_at: Optional[datetime] = None
    profiles: Optional[AuthorProfile] = None

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _coerce_row(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {**data, "profiles": normalize_profile(data.get("profiles"))}
        return data


def parse_portfolio_content(value: Any) -> Dict[str, Any]:
    """Accept JSON text or an object; anything else becomes an empty document."""
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


class Portfolio(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    content: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("content", mode="before")
    @classmethod
    def _parse_content(cls, value: Any) -> Dict[str, Any]:
        return parse_portfolio_content(value)


class SharedPortfolio(BaseModel):
    id: str
    group_id: str
    portfolio_id: str
    shared_by: str
    shared_at: Optional[datetime] = None
    portfolios: Optional[Portfolio] = None

    model_config = ConfigDict(extra="ignore")
