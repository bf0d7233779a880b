"""
Display session: one terminal's connection to the sync hub.

Push for speed, pull for correctness. Every time the session (re)connects or
changes zone it pulls the full active set, so a missed push never leaves the
screen wrong for longer than one round trip. When the socket is down the
session keeps pulling over HTTP on a polling timer.

Everything that happens to the session (socket messages, timer fires,
connection changes) is an event on one inbox queue, handled by `dispatch()`.
"""

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError

from zonecast.client.events import (
    ActiveSetPushed,
    Connected,
    ContentChanged,
    Disconnected,
    PongReceived,
    ScheduleChanged,
    SessionClosed,
    SessionEvent,
    TimerFired,
)
from zonecast.client.playback import PlaybackLoop, PlaybackState
from zonecast.client.renderer import Renderer
from zonecast.client.timers import TimerHandle, TimerScheduler
from zonecast.client.transport import ContentFetchError, ContentSource, PushTransport, TransportError
from zonecast.schemas.content import ContentOut
from zonecast.schemas.schedule import ActiveItem, ScheduleOut
from zonecast.timeutil import utcnow

logger = logging.getLogger(__name__)

RECONNECT_TIMER = "reconnect"
HEARTBEAT_TIMER = "heartbeat"
POLL_TIMER = "poll"


class SessionState(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"


@dataclass
class SessionConfig:
    server_url: str = "http://localhost:3000"
    zone: str = "reception"
    reconnect_base_delay: float = 1.0
    max_reconnect_attempts: int = 10
    heartbeat_interval: float = 30.0
    poll_interval: float = 60.0
    high_latency_ms: float = 1000.0

    @property
    def ws_url(self) -> str:
        base = self.server_url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/ws/updates"


class DisplaySession:
    def __init__(
        self,
        config: SessionConfig,
        transport: PushTransport,
        content_source: ContentSource,
        playback: PlaybackLoop,
        renderer: Renderer,
        scheduler: TimerScheduler,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._transport = transport
        self._content_source = content_source
        self._playback = playback
        self._renderer = renderer
        self._scheduler = scheduler
        self._clock = clock
        self._zone = config.zone
        self._state = SessionState.DISCONNECTED
        self._attempts = 0
        self._inbox: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._timers: dict[str, tuple[int, TimerHandle]] = {}
        self._tokens = itertools.count(1)
        self._reader: asyncio.Task | None = None
        self._closed = False
        self.latency_ms: float | None = None
        self.last_content_update = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def zone(self) -> str:
        return self._zone

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def playback(self) -> PlaybackLoop:
        return self._playback

    def pending_timers(self) -> set[str]:
        return set(self._timers)

    def post(self, event: SessionEvent) -> None:
        self._inbox.put_nowait(event)

    async def start(self) -> None:
        self._arm(HEARTBEAT_TIMER, self._config.heartbeat_interval)
        await self.connect()

    async def run(self) -> None:
        await self.start()
        while not self._closed:
            event = await self._inbox.get()
            try:
                await self.dispatch(event)
            except Exception:
                # One bad event must not take the terminal down.
                logger.exception("Failed to handle %s", type(event).__name__)

    async def drain(self) -> None:
        while not self._inbox.empty():
            await self.dispatch(self._inbox.get_nowait())

    async def dispatch(self, event: SessionEvent) -> None:
        if self._closed and not isinstance(event, SessionClosed):
            return
        if isinstance(event, Connected):
            await self._on_connected()
        elif isinstance(event, Disconnected):
            await self._on_disconnected(event.reason)
        elif isinstance(event, TimerFired):
            await self._on_timer(event)
        elif isinstance(event, ActiveSetPushed):
            self._apply(event.zone, event.items)
        elif isinstance(event, ScheduleChanged):
            if event.schedule.zone in {self._zone, "all"}:
                await self.request_content()
        elif isinstance(event, ContentChanged):
            await self.request_content()
        elif isinstance(event, PongReceived):
            self._on_pong(event.sent_at)
        elif isinstance(event, SessionClosed):
            pass
        else:
            logger.warning("Unhandled session event %r", event)

    async def connect(self) -> None:
        if self._closed or self._state in (SessionState.CONNECTING, SessionState.CONNECTED):
            return
        self._state = SessionState.CONNECTING
        logger.info("Connecting to %s", self._config.ws_url)
        try:
            await self._transport.connect()
        except TransportError as exc:
            await self.dispatch(Disconnected(str(exc)))
            return
        await self.dispatch(Connected())

    async def retry(self) -> None:
        """Manual reconnect, also out of the FAILED state."""
        logger.info("Manual reconnect requested")
        self._cancel(RECONNECT_TIMER)
        self._stop_reader()
        await self._transport.close()
        self._attempts = 0
        self._state = SessionState.DISCONNECTED
        await self.connect()

    async def request_content(self) -> None:
        if self._state == SessionState.CONNECTED:
            if await self._send({"type": "requestContent", "payload": {"zone": self._zone}}):
                return
        await self._pull(self._zone)

    async def set_zone(self, zone: str) -> None:
        zone = (zone or "").strip()
        if not zone or zone == self._zone:
            return
        old_zone = self._zone
        logger.info("Zone changed from %s to %s", old_zone, zone)
        if self._state == SessionState.CONNECTED:
            await self._send({"type": "leaveZone", "payload": {"zone": old_zone}})
        # Stopping cancels the dwell timer of the old zone's set.
        self._playback.stop()
        self._zone = zone
        if self._state == SessionState.CONNECTED:
            await self._send({"type": "joinZone", "payload": {"zone": zone}})
        await self.request_content()

    async def close(self) -> None:
        self._closed = True
        for name in list(self._timers):
            self._cancel(name)
        self._stop_reader()
        self._playback.stop()
        await self._transport.close()
        self._state = SessionState.DISCONNECTED
        self.post(SessionClosed())

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "zone": self._zone,
            "reconnect_attempts": self._attempts,
            "latency_ms": self.latency_ms,
            "last_content_update": self.last_content_update.isoformat() if self.last_content_update else None,
            "playback": self._playback.status(),
        }

    def next_reconnect_delay(self, attempt: int) -> float:
        return self._config.reconnect_base_delay * 2 ** (attempt - 1)

    async def _on_connected(self) -> None:
        self._state = SessionState.CONNECTED
        self._attempts = 0
        self._cancel(RECONNECT_TIMER)
        self._cancel(POLL_TIMER)
        self._renderer.hide_connection_error()
        self._reader = asyncio.ensure_future(self._read_loop())
        logger.info("Connected, joining zone %s", self._zone)
        if await self._send({"type": "joinZone", "payload": {"zone": self._zone}}):
            await self.request_content()
        else:
            await self._pull(self._zone)

    async def _on_disconnected(self, reason: str) -> None:
        if self._state in (SessionState.DISCONNECTED, SessionState.FAILED):
            return
        logger.warning("Disconnected: %s", reason)
        self._stop_reader()
        self._state = SessionState.DISCONNECTED
        await self._transport.close()
        if POLL_TIMER not in self._timers:
            if self._playback.state in (PlaybackState.IDLE, PlaybackState.STOPPED):
                await self._pull(self._zone)
            self._arm(POLL_TIMER, self._config.poll_interval)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._attempts >= self._config.max_reconnect_attempts:
            self._state = SessionState.FAILED
            logger.error("Max reconnection attempts (%d) reached", self._config.max_reconnect_attempts)
            self._renderer.show_connection_error(
                "Verbinding verbroken",
                "Kan geen verbinding maken. Controleer de server en netwerk.",
            )
            return
        self._attempts += 1
        delay = self.next_reconnect_delay(self._attempts)
        logger.info(
            "Reconnect attempt %d/%d in %.1fs",
            self._attempts,
            self._config.max_reconnect_attempts,
            delay,
        )
        self._arm(RECONNECT_TIMER, delay)

    async def _on_timer(self, event: TimerFired) -> None:
        current = self._timers.get(event.name)
        if current is None or current[0] != event.token:
            return
        del self._timers[event.name]

        if event.name == RECONNECT_TIMER:
            if self._state == SessionState.DISCONNECTED:
                await self.connect()
        elif event.name == POLL_TIMER:
            if self._state in (SessionState.DISCONNECTED, SessionState.FAILED, SessionState.CONNECTING):
                await self._pull(self._zone)
                self._arm(POLL_TIMER, self._config.poll_interval)
        elif event.name == HEARTBEAT_TIMER:
            if self._state == SessionState.CONNECTED:
                try:
                    await self._transport.send({"type": "ping", "payload": {"sent_at": self._clock()}})
                except TransportError as exc:
                    # Liveness only; the transport's own close event drives reconnection.
                    logger.debug("Heartbeat ping failed: %s", exc)
            self._arm(HEARTBEAT_TIMER, self._config.heartbeat_interval)

    def _on_pong(self, sent_at: float | None) -> None:
        if sent_at is None:
            return
        self.latency_ms = (self._clock() - sent_at) * 1000
        if self.latency_ms > self._config.high_latency_ms:
            logger.warning("High latency detected: %.0fms", self.latency_ms)
        else:
            logger.debug("Connection latency: %.0fms", self.latency_ms)

    def _apply(self, zone: str, items: list[ActiveItem]) -> None:
        if zone != self._zone:
            logger.debug("Ignoring active set for zone %s, assigned to %s", zone, self._zone)
            return
        self._playback.load(items)
        self.last_content_update = utcnow()

    async def _pull(self, zone: str) -> None:
        try:
            items = await self._content_source.fetch_active_set(zone)
        except ContentFetchError as exc:
            logger.warning("Content pull failed: %s", exc)
            if self._playback.state in (PlaybackState.IDLE, PlaybackState.STOPPED):
                self._playback.load([])
            return
        self._apply(zone, items)

    async def _send(self, message: dict[str, Any]) -> bool:
        try:
            await self._transport.send(message)
            return True
        except TransportError as exc:
            await self._on_disconnected(str(exc))
            return False

    async def _read_loop(self) -> None:
        try:
            while True:
                message = await self._transport.receive()
                event = self._event_from_message(message)
                if event is not None:
                    self.post(event)
        except TransportError as exc:
            self.post(Disconnected(str(exc)))

    def _event_from_message(self, message: dict[str, Any]) -> SessionEvent | None:
        message_type = message.get("type")
        payload = message.get("payload") or {}
        try:
            if message_type == "activeSetUpdated":
                items = [ActiveItem.model_validate(item) for item in payload.get("items", [])]
                return ActiveSetPushed(zone=payload.get("zone", ""), items=items)
            if message_type == "scheduleChanged":
                return ScheduleChanged(kind=payload.get("kind", ""), schedule=ScheduleOut.model_validate(payload["schedule"]))
            if message_type == "contentChanged":
                return ContentChanged(kind=payload.get("kind", ""), content=ContentOut.model_validate(payload["content"]))
        except (KeyError, ValidationError) as exc:
            logger.warning("Ignoring malformed %s message: %s", message_type, exc)
            return None
        if message_type == "pong":
            return PongReceived(sent_at=payload.get("sent_at"))
        if message_type == "error":
            logger.warning("Server rejected request: %s", payload.get("detail"))
        return None

    def _arm(self, name: str, delay: float) -> None:
        self._cancel(name)
        token = next(self._tokens)
        handle = self._scheduler.call_later(delay, lambda: self.post(TimerFired(name, token)))
        self._timers[name] = (token, handle)

    def _cancel(self, name: str) -> None:
        entry = self._timers.pop(name, None)
        if entry is not None:
            entry[1].cancel()

    def _stop_reader(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
