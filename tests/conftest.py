import asyncio
import itertools
import json
from datetime import datetime, timedelta

import pytest

from zonecast.client.transport import ContentFetchError, TransportError
from zonecast.db import ensure_sqlite_schema, make_engine, make_session_factory
from zonecast.schemas.content import ContentIn, ContentOut
from zonecast.schemas.schedule import ActiveItem, ScheduleIn, ScheduleOut
from zonecast.services.context import AppContext
from zonecast.timeutil import utcnow

BASE_TIME = datetime(2026, 1, 10, 12, 0, 0)


@pytest.fixture
def engine():
    bind = make_engine("sqlite://")
    ensure_sqlite_schema(bind)
    yield bind
    bind.dispose()


@pytest.fixture
def ctx(engine):
    return AppContext.build(make_session_factory(engine))


@pytest.fixture
def add_content(ctx):
    def _add(title="Item", zone="all", duration_sec=10, mime_type="image/png", **kwargs):
        return ctx.contents.add(
            ContentIn(
                title=title,
                media_url=f"/uploads/{title.lower().replace(' ', '-')}",
                mime_type=mime_type,
                zone=zone,
                duration_sec=duration_sec,
                **kwargs,
            )
        )

    return _add


@pytest.fixture
def add_schedule(ctx):
    def _add(content, zone, priority=1, start=None, end=None):
        now = utcnow()
        return ctx.schedules.add(
            ScheduleIn(
                content_id=content.id,
                zone=zone,
                start_time=start or now - timedelta(hours=1),
                end_time=end or now + timedelta(hours=1),
                priority=priority,
            )
        )

    return _add


def make_content_record(content_id, zone="all", duration_sec=10, active=True, type="image"):
    return ContentOut(
        id=content_id,
        type=type,
        title=f"Content {content_id}",
        media_url=f"/uploads/{content_id}.png",
        mime_type="image/png",
        zone=zone,
        duration_sec=duration_sec,
        active=active,
        created_at=BASE_TIME,
    )


def make_schedule_record(
    entry_id,
    content_id,
    zone="reception",
    priority=1,
    start=None,
    end=None,
    created_at=None,
    active=True,
):
    return ScheduleOut(
        id=entry_id,
        content_id=content_id,
        zone=zone,
        start_time=start or BASE_TIME - timedelta(hours=1),
        end_time=end or BASE_TIME + timedelta(hours=1),
        priority=priority,
        active=active,
        created_at=created_at or BASE_TIME,
    )


def make_item(content_id, duration_sec=10, priority=1, zone="reception"):
    return ActiveItem(
        entry=make_schedule_record(f"entry-{content_id}", content_id, zone=zone, priority=priority),
        content=make_content_record(content_id, zone=zone, duration_sec=duration_sec),
    )


class FakeSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.fail = fail
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, data):
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(json.loads(data))

    def of_type(self, message_type):
        return [message for message in self.sent if message["type"] == message_type]


class ManualTimer:
    def __init__(self, when, seq, callback, delay):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.delay = delay
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Virtual clock: timers only fire when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self._seq = itertools.count()
        self.timers = []

    def call_later(self, delay, callback):
        timer = ManualTimer(self.now + delay, next(self._seq), callback, delay)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [timer for timer in self.timers if not timer.cancelled and not getattr(timer, "fired", False)]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [timer for timer in self.pending if timer.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.when, t.seq))
            self.now = timer.when
            timer.fired = True
            timer.callback()
        self.now = target


class RecordingRenderer:
    def __init__(self):
        self.shown = []
        self.current = None
        self.errors = []
        self.overlay = None

    def show(self, item):
        self.shown.append(item.content.id)
        self.current = item.content.id

    def show_placeholder(self):
        self.current = "placeholder"

    def show_error(self, item, reason):
        self.errors.append(item.content.id)
        self.current = f"error:{item.content.id}"

    def clear(self):
        self.current = None

    def show_connection_error(self, title, message):
        self.overlay = title

    def hide_connection_error(self):
        self.overlay = None


class FakeTransport:
    def __init__(self, connect_results=None):
        # Each connect() pops the next result; True succeeds, False raises.
        self.connect_results = list(connect_results or [])
        self.connect_calls = 0
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed = 0
        self.fail_sends = False

    async def connect(self):
        self.connect_calls += 1
        ok = self.connect_results.pop(0) if self.connect_results else True
        if not ok:
            raise TransportError("connection refused")

    async def send(self, message):
        if self.fail_sends:
            raise TransportError("broken pipe")
        self.sent.append(message)

    async def receive(self):
        message = await self.incoming.get()
        if isinstance(message, Exception):
            raise message
        return message

    async def close(self):
        self.closed += 1

    def sent_types(self):
        return [message["type"] for message in self.sent]


class FakeContentSource:
    def __init__(self, sets=None):
        self.sets = dict(sets or {})
        self.calls = []
        self.fail = False

    async def fetch_active_set(self, zone):
        self.calls.append(zone)
        if self.fail:
            raise ContentFetchError("server unreachable")
        return list(self.sets.get(zone, []))


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def renderer():
    return RecordingRenderer()
