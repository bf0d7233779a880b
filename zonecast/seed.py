from datetime import timedelta
from sqlalchemy.engine import Engine
from zonecast.db import engine as default_engine, ensure_sqlite_schema, make_session_factory
from zonecast.schemas.content import ContentIn
from zonecast.schemas.schedule import ScheduleIn
from zonecast.services.stores import ContentStore, ScheduleStore
from zonecast.timeutil import utcnow


def seed(bind: Engine | None = None) -> None:
    target = bind or default_engine
    ensure_sqlite_schema(target)
    session_factory = make_session_factory(target)
    contents = ContentStore(session_factory)
    schedules = ScheduleStore(session_factory)
    now = utcnow()

    welcome = contents.add(
        ContentIn(
            title="Welkom",
            media_url="/uploads/images/welcome.png",
            mime_type="image/png",
            zone="all",
            duration_sec=10,
        )
    )
    menu = contents.add(
        ContentIn(
            title="Menu van de dag",
            media_url="/uploads/images/menu.jpg",
            mime_type="image/jpeg",
            zone="restaurant",
            duration_sec=15,
        )
    )
    promo = contents.add(
        ContentIn(
            title="Skipas actie",
            media_url="/uploads/videos/promo.mp4",
            mime_type="video/mp4",
            zone="reception",
        )
    )

    day = timedelta(days=1)
    schedules.add(ScheduleIn(content_id=welcome.id, zone="all", start_time=now - day, end_time=now + 30 * day, priority=1))
    schedules.add(ScheduleIn(content_id=menu.id, zone="restaurant", start_time=now - day, end_time=now + day, priority=3))
    schedules.add(ScheduleIn(content_id=promo.id, zone="reception", start_time=now - day, end_time=now + 7 * day, priority=5))


if __name__ == "__main__":
    seed()
