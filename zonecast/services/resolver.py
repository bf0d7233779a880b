from datetime import datetime
from typing import Callable, Iterable, Mapping

from zonecast.schemas.content import ContentOut
from zonecast.schemas.schedule import ActiveItem, ActiveSetOut, ScheduleOut
from zonecast.services.stores import WILDCARD_ZONE, ContentStore, ScheduleStore
from zonecast.timeutil import as_utc_naive, utcnow


def zones_visible_in(zone: str) -> set[str]:
    return {zone, WILDCARD_ZONE}


def active_item_order(item: ActiveItem) -> tuple:
    # Higher priority first, then first-created first; id keeps equal timestamps stable.
    return (-item.entry.priority, item.entry.created_at, item.entry.id)


def build_active_set(
    zone: str,
    now: datetime,
    entries: Iterable[ScheduleOut],
    contents: Mapping[str, ContentOut],
) -> list[ActiveItem]:
    """Filter and order schedule entries for one zone at one instant.

    Works on plain records only, so it is safe to call at any frequency
    and from any number of callers at once.
    """
    visible = zones_visible_in(zone)
    items: list[ActiveItem] = []
    for entry in entries:
        if not entry.active or entry.zone not in visible:
            continue
        if not (entry.start_time <= now <= entry.end_time):
            continue
        content = contents.get(entry.content_id)
        if content is None or not content.active:
            continue
        items.append(ActiveItem(entry=entry, content=content))
    items.sort(key=active_item_order)
    return items


class ScheduleResolver:
    """Joins the schedule and content stores into the active set of a zone.

    Recomputes from the stores on every call without any cache or index.
    That is linear in the zone's schedule entries, which is fine for a few
    hundred entries per zone; an interval tree per zone is the upgrade path.
    """

    def __init__(
        self,
        schedules: ScheduleStore,
        contents: ContentStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._schedules = schedules
        self._contents = contents
        self._clock = clock

    def resolve(self, zone: str, now: datetime | None = None) -> list[ActiveItem]:
        instant = as_utc_naive(now) if now is not None else self._clock()
        entries = self._schedules.list_for_zones(zones_visible_in(zone))
        contents = self._contents.get_many(entry.content_id for entry in entries)
        return build_active_set(zone, instant, entries, contents)

    def resolve_set(self, zone: str, now: datetime | None = None) -> ActiveSetOut:
        instant = as_utc_naive(now) if now is not None else self._clock()
        return ActiveSetOut(zone=zone, resolved_at=instant, items=self.resolve(zone, instant))
