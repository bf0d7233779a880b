from dataclasses import dataclass

# Pushed content arrives as the same tagged events the hub dispatches.
from zonecast.services.events import ActiveSetPushed, ContentChanged, ScheduleChanged


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class Disconnected:
    reason: str


@dataclass(frozen=True)
class TimerFired:
    name: str  # reconnect | heartbeat | poll
    token: int


@dataclass(frozen=True)
class PongReceived:
    sent_at: float | None


@dataclass(frozen=True)
class SessionClosed:
    pass


SessionEvent = (
    Connected
    | Disconnected
    | TimerFired
    | PongReceived
    | SessionClosed
    | ActiveSetPushed
    | ContentChanged
    | ScheduleChanged
)
