from datetime import datetime
from pydantic import BaseModel

from zonecast.schemas.content import ContentOut


class ScheduleIn(BaseModel):
    content_id: str
    zone: str
    start_time: datetime
    end_time: datetime
    priority: int = 1


class ScheduleOut(BaseModel):
    id: str
    content_id: str
    zone: str
    start_time: datetime
    end_time: datetime
    priority: int
    active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ScheduleCreatedOut(BaseModel):
    schedule: ScheduleOut
    warnings: list[ScheduleOut] = []


class ActiveItem(BaseModel):
    entry: ScheduleOut
    content: ContentOut


class ActiveSetOut(BaseModel):
    zone: str
    resolved_at: datetime
    items: list[ActiveItem]
