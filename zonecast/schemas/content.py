from datetime import datetime
from pydantic import BaseModel, Field

CONTENT_TYPES = ("image", "video", "livestream", "other")


class ContentIn(BaseModel):
    title: str = Field(..., min_length=1)
    media_url: str = Field(..., min_length=1)
    type: str | None = None
    mime_type: str | None = None
    zone: str = "all"
    duration_sec: int | None = None


class ContentUpdateIn(BaseModel):
    title: str | None = None
    zone: str | None = None
    duration_sec: int | None = None
    active: bool | None = None


class ContentOut(BaseModel):
    id: str
    type: str
    title: str
    media_url: str
    mime_type: str | None = None
    zone: str
    duration_sec: int
    active: bool
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True
