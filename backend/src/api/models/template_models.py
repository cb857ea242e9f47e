from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    image: Optional[str] = Field(None, max_length=2048)
    color: Optional[str] = Field(None, max_length=64)
    premium: bool = False


class TemplateCreate(TemplateBase):
    pass


class Template(TemplateBase):
    id: int

    model_config = ConfigDict(from_attributes=True, extra="ignore")


class TemplateStyleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    image: Optional[str] = Field(None, max_length=2048)
    color: Optional[str] = Field(None, max_length=64)
    premium: bool = False
    styles: Dict[str, Any] = Field(default_factory=dict)


class TemplateStyleCreate(TemplateStyleBase):
    pass


class TemplateStyle(TemplateStyleBase):
    id: int

    model_config = ConfigDict(from_attributes=True, extra="ignore")
