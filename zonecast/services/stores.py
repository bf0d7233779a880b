import json
from collections import Counter
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy.orm import Session, sessionmaker

from zonecast.models.activity_log import ActivityLog
from zonecast.models.content import Content
from zonecast.models.schedule import Schedule
from zonecast.models.zone import Zone
from zonecast.schemas.activity_log import ActivityLogOut
from zonecast.schemas.content import CONTENT_TYPES, ContentIn, ContentOut, ContentUpdateIn
from zonecast.schemas.schedule import ScheduleIn, ScheduleOut
from zonecast.schemas.zone import ZoneOut
from zonecast.timeutil import as_utc_naive, utcnow


WILDCARD_ZONE = "all"

MIME_TYPES = {
    "image": {"image/jpeg", "image/png", "image/gif", "image/webp"},
    "video": {"video/mp4", "video/webm", "video/ogg"},
    "livestream": {"application/x-mpegurl", "application/vnd.apple.mpegurl"},
}
DEFAULT_DURATION_SEC = {"image": 10, "video": 30, "livestream": 3600, "other": 10}


class RecordNotFoundError(LookupError):
    pass


class ContentValidationError(ValueError):
    pass


class ScheduleValidationError(ValueError):
    pass


def content_type_for_mime(mime_type: str | None) -> str:
    normalized = (mime_type or "").strip().lower()
    for content_type, mime_types in MIME_TYPES.items():
        if normalized in mime_types:
            return content_type
    return "other"


def _log(db: Session, kind: str, message: str, data: dict[str, Any]) -> None:
    db.add(ActivityLog(kind=kind, message=message, data=json.dumps(data, default=str)))


class _Store:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()


class ZoneStore(_Store):
    def all(self) -> list[ZoneOut]:
        db = self._session()
        try:
            rows = db.query(Zone).filter(Zone.active.is_(True)).order_by(Zone.display_order, Zone.id).all()
            return [ZoneOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def ids(self) -> list[str]:
        return [zone.id for zone in self.all()]

    def exists(self, zone_id: str) -> bool:
        db = self._session()
        try:
            return db.query(Zone).filter(Zone.id == zone_id, Zone.active.is_(True)).first() is not None
        finally:
            db.close()


class ContentStore(_Store):
    def _validate_zone(self, db: Session, zone: str) -> str:
        normalized = (zone or "").strip()
        if not normalized or db.query(Zone).get(normalized) is None:
            raise ContentValidationError(f"Unknown zone: {zone!r}")
        return normalized

    def add(self, data: ContentIn) -> ContentOut:
        content_type = (data.type or "").strip().lower() or content_type_for_mime(data.mime_type)
        if content_type not in CONTENT_TYPES:
            raise ContentValidationError(f"Unsupported content type: {data.type!r}")
        duration = data.duration_sec if data.duration_sec is not None else DEFAULT_DURATION_SEC[content_type]
        if duration <= 0:
            raise ContentValidationError("duration_sec must be a positive integer.")

        db = self._session()
        try:
            content = Content(
                type=content_type,
                title=data.title.strip(),
                media_url=data.media_url.strip(),
                mime_type=(data.mime_type or "").strip() or None,
                zone=self._validate_zone(db, data.zone),
                duration_sec=duration,
                active=True,
            )
            db.add(content)
            db.flush()
            _log(db, "content", "Content added", {"content_id": content.id, "type": content.type})
            db.commit()
            db.refresh(content)
            return ContentOut.model_validate(content)
        finally:
            db.close()

    def get(self, content_id: str) -> ContentOut | None:
        db = self._session()
        try:
            content = db.query(Content).get(content_id)
            return ContentOut.model_validate(content) if content else None
        finally:
            db.close()

    def get_many(self, content_ids: Iterable[str]) -> dict[str, ContentOut]:
        wanted = set(content_ids)
        if not wanted:
            return {}
        db = self._session()
        try:
            rows = db.query(Content).filter(Content.id.in_(wanted)).all()
            return {row.id: ContentOut.model_validate(row) for row in rows}
        finally:
            db.close()

    def find(self, zone: str | None = None, type: str | None = None) -> list[ContentOut]:
        db = self._session()
        try:
            query = db.query(Content).filter(Content.active.is_(True))
            if zone and zone != WILDCARD_ZONE:
                query = query.filter(Content.zone.in_([zone, WILDCARD_ZONE]))
            if type:
                query = query.filter(Content.type == type.strip().lower())
            rows = query.order_by(Content.created_at.desc(), Content.id).all()
            return [ContentOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def update(self, content_id: str, changes: ContentUpdateIn) -> ContentOut:
        db = self._session()
        try:
            content = db.query(Content).get(content_id)
            if not content:
                raise RecordNotFoundError("Content not found")
            if changes.title is not None:
                title = changes.title.strip()
                if not title:
                    raise ContentValidationError("title must not be empty.")
                content.title = title
            if changes.duration_sec is not None:
                if changes.duration_sec <= 0:
                    raise ContentValidationError("duration_sec must be a positive integer.")
                content.duration_sec = changes.duration_sec
            if changes.zone is not None:
                content.zone = self._validate_zone(db, changes.zone)
            if changes.active is not None:
                content.active = changes.active
            _log(db, "content", "Content updated", {"content_id": content_id, "updates": changes.model_dump(exclude_none=True)})
            db.commit()
            db.refresh(content)
            return ContentOut.model_validate(content)
        finally:
            db.close()

    def deactivate(self, content_id: str) -> ContentOut:
        db = self._session()
        try:
            content = db.query(Content).get(content_id)
            if not content:
                raise RecordNotFoundError("Content not found")
            content.active = False
            _log(db, "content", "Content deleted", {"content_id": content_id})
            db.commit()
            db.refresh(content)
            return ContentOut.model_validate(content)
        finally:
            db.close()

    def stats(self) -> dict[str, Any]:
        items = self.find()
        return {
            "total": len(items),
            "by_type": dict(Counter(item.type for item in items)),
            "by_zone": dict(Counter(item.zone for item in items)),
        }


class ScheduleStore(_Store):
    def add(self, data: ScheduleIn) -> ScheduleOut:
        start = as_utc_naive(data.start_time)
        end = as_utc_naive(data.end_time)
        if start >= end:
            raise ScheduleValidationError("End time must be after start time.")

        db = self._session()
        try:
            zone = (data.zone or "").strip()
            if not zone or db.query(Zone).get(zone) is None:
                raise ScheduleValidationError(f"Unknown zone: {data.zone!r}")
            content = db.query(Content).get(data.content_id)
            if not content or not content.active:
                raise ScheduleValidationError("Content not found")

            schedule = Schedule(
                content_id=content.id,
                zone=zone,
                start_time=start,
                end_time=end,
                priority=data.priority,
                active=True,
            )
            db.add(schedule)
            db.flush()
            _log(
                db,
                "schedule",
                "Schedule created",
                {"schedule_id": schedule.id, "zone": zone, "content_id": content.id},
            )
            db.commit()
            db.refresh(schedule)
            return ScheduleOut.model_validate(schedule)
        finally:
            db.close()

    def get(self, schedule_id: str) -> ScheduleOut | None:
        db = self._session()
        try:
            schedule = db.query(Schedule).get(schedule_id)
            return ScheduleOut.model_validate(schedule) if schedule else None
        finally:
            db.close()

    def find(self, zone: str | None = None) -> list[ScheduleOut]:
        db = self._session()
        try:
            query = db.query(Schedule).filter(Schedule.active.is_(True))
            if zone:
                query = query.filter(Schedule.zone == zone)
            rows = query.order_by(Schedule.start_time, Schedule.created_at).all()
            return [ScheduleOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def list_for_zones(self, zones: Iterable[str]) -> list[ScheduleOut]:
        db = self._session()
        try:
            rows = (
                db.query(Schedule)
                .filter(Schedule.active.is_(True), Schedule.zone.in_(set(zones)))
                .all()
            )
            return [ScheduleOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def zones_for_content(self, content_id: str) -> set[str]:
        db = self._session()
        try:
            rows = db.query(Schedule.zone).filter(Schedule.content_id == content_id).distinct().all()
            return {row[0] for row in rows}
        finally:
            db.close()

    def delete(self, schedule_id: str) -> ScheduleOut:
        db = self._session()
        try:
            schedule = db.query(Schedule).get(schedule_id)
            if not schedule:
                raise RecordNotFoundError("Schedule not found")
            deleted = ScheduleOut.model_validate(schedule)
            db.delete(schedule)
            _log(
                db,
                "schedule",
                "Schedule deleted",
                {"schedule_id": schedule_id, "zone": deleted.zone, "content_id": deleted.content_id},
            )
            db.commit()
            return deleted
        finally:
            db.close()

    def upcoming(self, zone: str, now: datetime | None = None, limit: int = 10) -> list[ScheduleOut]:
        current = now or utcnow()
        db = self._session()
        try:
            rows = (
                db.query(Schedule)
                .filter(
                    Schedule.zone == zone,
                    Schedule.active.is_(True),
                    Schedule.start_time > current,
                )
                .order_by(Schedule.start_time.asc())
                .limit(max(0, min(limit, 100)))
                .all()
            )
            return [ScheduleOut.model_validate(row) for row in rows]
        finally:
            db.close()

    def stats(self, now: datetime | None = None) -> dict[str, int]:
        current = now or utcnow()
        db = self._session()
        try:
            base = db.query(Schedule).filter(Schedule.active.is_(True))
            return {
                "total": base.count(),
                "active": base.filter(Schedule.start_time <= current, Schedule.end_time >= current).count(),
                "upcoming": base.filter(Schedule.start_time > current).count(),
            }
        finally:
            db.close()


class ActivityLogStore(_Store):
    def recent(self, limit: int = 50) -> list[ActivityLogOut]:
        db = self._session()
        try:
            rows = (
                db.query(ActivityLog)
                .order_by(ActivityLog.timestamp.desc())
                .limit(max(0, min(limit, 500)))
                .all()
            )
            return [ActivityLogOut.model_validate(row) for row in rows]
        finally:
            db.close()
