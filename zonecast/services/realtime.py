import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Protocol

from zonecast.services.events import ActiveSetPushed, ContentChanged, HubEvent, ScheduleChanged
from zonecast.services.resolver import ScheduleResolver
from zonecast.services.stores import WILDCARD_ZONE, ScheduleStore, ZoneStore

logger = logging.getLogger(__name__)

ADMIN_CHANNEL = "admin"


class Subscriber(Protocol):
    async def send_text(self, data: str) -> None: ...


class SyncHub:
    """Zone-keyed fan-out of active sets to connected displays.

    Delivery is best-effort and at-most-once: a session that misses a push
    recovers on its next pull. Membership changes share one lock; pushes
    for the same zone are serialized so a newer active set is never
    overtaken by an older one.
    """

    def __init__(self, resolver: ScheduleResolver, zones: ZoneStore, schedules: ScheduleStore) -> None:
        self._resolver = resolver
        self._zones = zones
        self._schedules = schedules
        self._clients: dict[str, Subscriber] = {}
        self._members: dict[str, set[str]] = {}
        self._zone_of: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._zone_locks: dict[str, asyncio.Lock] = {}
        self._queue: asyncio.Queue[HubEvent] = asyncio.Queue()
        self._revision = 0

    async def connect(self, websocket: Any, session_id: str | None = None) -> str:
        await websocket.accept()
        sid = session_id or str(uuid.uuid4())
        async with self._lock:
            self._clients[sid] = websocket
        await self._send(sid, websocket, self._envelope("hello", {"session_id": sid}))
        return sid

    async def disconnect(self, session_id: str) -> None:
        async with self._lock:
            self._drop(session_id)

    async def join(self, session_id: str, zone: str) -> None:
        async with self._lock:
            current = self._zone_of.get(session_id)
            if current == zone:
                return
            if current is not None:
                self._members.get(current, set()).discard(session_id)
            self._members.setdefault(zone, set()).add(session_id)
            self._zone_of[session_id] = zone
        logger.info("Session %s joined zone %s", session_id, zone)

    async def leave(self, session_id: str, zone: str) -> None:
        async with self._lock:
            if self._zone_of.get(session_id) != zone:
                return
            self._members.get(zone, set()).discard(session_id)
            del self._zone_of[session_id]
        logger.info("Session %s left zone %s", session_id, zone)

    def zone_of(self, session_id: str) -> str | None:
        return self._zone_of.get(session_id)

    def members(self, zone: str) -> set[str]:
        return set(self._members.get(zone, set()))

    def subscribed_zones(self) -> set[str]:
        return {zone for zone, members in self._members.items() if members and zone != ADMIN_CHANNEL}

    async def handle(self, event: HubEvent) -> None:
        if isinstance(event, ContentChanged):
            await self.notify_content_changed(event)
        elif isinstance(event, ScheduleChanged):
            await self.notify_schedule_changed(event)
        elif isinstance(event, ActiveSetPushed):
            async with self._zone_lock(event.zone):
                await self._deliver_active_set(event)
        else:
            raise TypeError(f"Unsupported hub event: {event!r}")

    def submit(self, event: HubEvent) -> None:
        self._queue.put_nowait(event)

    async def run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except Exception:
                logger.exception("Failed to dispatch %s", type(event).__name__)
            finally:
                self._queue.task_done()

    async def notify_content_changed(self, event: ContentChanged) -> list[ActiveSetPushed]:
        await self._publish_admin(
            "contentChanged",
            {"kind": event.kind, "content": event.content.model_dump(mode="json")},
        )
        zones = {event.content.zone}
        if event.previous_zone:
            zones.add(event.previous_zone)
        zones |= self._schedules.zones_for_content(event.content.id)
        return await self._recompute(self._expand(zones))

    async def notify_schedule_changed(self, event: ScheduleChanged) -> list[ActiveSetPushed]:
        await self._publish_admin(
            "scheduleChanged",
            {"kind": event.kind, "schedule": event.schedule.model_dump(mode="json")},
        )
        return await self._recompute(self._expand({event.schedule.zone}))

    async def refresh_all_zones(self) -> list[ActiveSetPushed]:
        return await self._recompute(self._expand({WILDCARD_ZONE}))

    async def push_active_set(self, session_id: str, zone: str) -> ActiveSetPushed:
        pushed = ActiveSetPushed(zone=zone, items=self._resolver.resolve(zone))
        await self._publish([session_id], "activeSetUpdated", self._active_set_payload(pushed))
        return pushed

    def _expand(self, zones: Iterable[str]) -> list[str]:
        affected = set(zones)
        if WILDCARD_ZONE in affected:
            affected |= set(self._zones.ids())
            affected |= self.subscribed_zones()
        return sorted(affected)

    async def _recompute(self, zones: Iterable[str]) -> list[ActiveSetPushed]:
        pushed: list[ActiveSetPushed] = []
        for zone in zones:
            async with self._zone_lock(zone):
                event = ActiveSetPushed(zone=zone, items=self._resolver.resolve(zone))
                await self._deliver_active_set(event)
            pushed.append(event)
        return pushed

    def _zone_lock(self, zone: str) -> asyncio.Lock:
        return self._zone_locks.setdefault(zone, asyncio.Lock())

    async def _deliver_active_set(self, event: ActiveSetPushed) -> None:
        async with self._lock:
            targets = self._members.get(event.zone, set()) | self._members.get(ADMIN_CHANNEL, set())
        await self._publish(targets, "activeSetUpdated", self._active_set_payload(event))

    async def _publish_admin(self, event_type: str, payload: dict[str, Any]) -> None:
        async with self._lock:
            targets = set(self._members.get(ADMIN_CHANNEL, set()))
        await self._publish(targets, event_type, payload)

    async def _publish(self, session_ids: Iterable[str], event_type: str, payload: dict[str, Any]) -> int:
        message = self._envelope(event_type, payload)
        async with self._lock:
            clients = [(sid, self._clients[sid]) for sid in session_ids if sid in self._clients]

        stale: list[str] = []
        for sid, client in clients:
            if not await self._send(sid, client, message):
                stale.append(sid)

        if stale:
            async with self._lock:
                for sid in stale:
                    self._drop(sid)
        return self._revision

    async def _send(self, session_id: str, client: Subscriber, message: str) -> bool:
        try:
            await client.send_text(message)
            return True
        except Exception as exc:
            logger.info("Dropping session %s after failed send: %s", session_id, exc)
            return False

    def _drop(self, session_id: str) -> None:
        self._clients.pop(session_id, None)
        zone = self._zone_of.pop(session_id, None)
        if zone is not None:
            self._members.get(zone, set()).discard(session_id)

    def _envelope(self, event_type: str, payload: dict[str, Any]) -> str:
        self._revision += 1
        return json.dumps(
            {
                "type": event_type,
                "revision": self._revision,
                "payload": payload,
                "ts": datetime.now(timezone.utc).isoformat(),
            }
        )

    @staticmethod
    def _active_set_payload(event: ActiveSetPushed) -> dict[str, Any]:
        return {
            "zone": event.zone,
            "items": [item.model_dump(mode="json") for item in event.items],
        }

    @property
    def revision(self) -> int:
        return self._revision
