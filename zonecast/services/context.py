from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.orm import sessionmaker

from zonecast.services.overlap import OverlapAdvisor
from zonecast.services.realtime import SyncHub
from zonecast.services.resolver import ScheduleResolver
from zonecast.services.stores import ActivityLogStore, ContentStore, ScheduleStore, ZoneStore


@dataclass
class AppContext:
    zones: ZoneStore
    contents: ContentStore
    schedules: ScheduleStore
    activity: ActivityLogStore
    resolver: ScheduleResolver
    advisor: OverlapAdvisor
    hub: SyncHub

    @classmethod
    def build(cls, session_factory: sessionmaker) -> "AppContext":
        zones = ZoneStore(session_factory)
        contents = ContentStore(session_factory)
        schedules = ScheduleStore(session_factory)
        resolver = ScheduleResolver(schedules, contents)
        return cls(
            zones=zones,
            contents=contents,
            schedules=schedules,
            activity=ActivityLogStore(session_factory),
            resolver=resolver,
            advisor=OverlapAdvisor(schedules),
            hub=SyncHub(resolver, zones, schedules),
        )


def get_context(request: Request) -> AppContext:
    return request.app.state.context