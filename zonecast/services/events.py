from dataclasses import dataclass, field

from zonecast.schemas.content import ContentOut
from zonecast.schemas.schedule import ActiveItem, ScheduleOut


@dataclass(frozen=True)
class ContentChanged:
    kind: str  # added | updated | deleted
    content: ContentOut
    previous_zone: str | None = None


@dataclass(frozen=True)
class ScheduleChanged:
    kind: str  # added | deleted
    schedule: ScheduleOut


@dataclass(frozen=True)
class ActiveSetPushed:
    zone: str
    items: list[ActiveItem] = field(default_factory=list)


HubEvent = ContentChanged | ScheduleChanged | ActiveSetPushed
