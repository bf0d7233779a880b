import logging
from datetime import datetime
from typing import Iterable

from zonecast.schemas.schedule import ScheduleOut
from zonecast.services.stores import WILDCARD_ZONE, ScheduleStore
from zonecast.timeutil import as_utc_naive

logger = logging.getLogger(__name__)


def overlapping_higher_priority(
    entries: Iterable[ScheduleOut],
    zone: str,
    start_time: datetime,
    end_time: datetime,
    priority: int,
) -> list[ScheduleOut]:
    output = []
    for entry in entries:
        if not entry.active or entry.priority <= priority:
            continue
        if zone != WILDCARD_ZONE and entry.zone not in {zone, WILDCARD_ZONE}:
            continue
        if entry.start_time < end_time and entry.end_time > start_time:
            output.append(entry)
    output.sort(key=lambda entry: (-entry.priority, entry.start_time))
    return output


class OverlapAdvisor:
    """Reports higher-priority entries that would shadow a new one.

    Advisory only: callers log and surface the result, the write itself
    always goes through.
    """

    def __init__(self, schedules: ScheduleStore) -> None:
        self._schedules = schedules

    def find_higher_priority_overlaps(
        self,
        zone: str,
        start_time: datetime,
        end_time: datetime,
        priority: int,
        exclude_id: str | None = None,
    ) -> list[ScheduleOut]:
        if zone == WILDCARD_ZONE:
            candidates = self._schedules.find()
        else:
            candidates = self._schedules.list_for_zones({zone, WILDCARD_ZONE})
        if exclude_id is not None:
            candidates = [entry for entry in candidates if entry.id != exclude_id]
        overlaps = overlapping_higher_priority(
            candidates, zone, as_utc_naive(start_time), as_utc_naive(end_time), priority
        )
        if overlaps:
            logger.warning(
                "Schedule for zone %s (%s - %s, priority %d) overlaps %d higher priority entr%s: %s",
                zone,
                start_time,
                end_time,
                priority,
                len(overlaps),
                "y" if len(overlaps) == 1 else "ies",
                ", ".join(entry.id for entry in overlaps),
            )
        return overlaps
