"""
Playback loop for a display terminal.

Cycles through the active set of the terminal's zone, one item at a time,
keeping each on screen for its own dwell time. Whoever obtains a new active
set (push, pull or a manual refresh) simply calls `load()`.
"""

import logging
from enum import Enum
from typing import Any, Iterable

from zonecast.client.renderer import Renderer
from zonecast.client.timers import TimerHandle, TimerScheduler
from zonecast.schemas.schedule import ActiveItem

logger = logging.getLogger(__name__)


class PlaybackState(Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    PLACEHOLDER = "placeholder"
    STOPPED = "stopped"


class PlaybackLoop:
    """
    Finite-state machine driving the slideshow.

    Holds at most one pending dwell timer. Every armed timer carries a
    generation number; a timer that fires after its generation was
    superseded (by load, stop or pause) does nothing, so an old active set
    can never advance a newer one.
    """

    def __init__(self, renderer: Renderer, scheduler: TimerScheduler) -> None:
        self._renderer = renderer
        self._scheduler = scheduler
        self._items: list[ActiveItem] = []
        self._index = 0
        self._state = PlaybackState.IDLE
        self._timer: TimerHandle | None = None
        self._generation = 0

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def playing(self) -> bool:
        return self._state == PlaybackState.PLAYING

    @property
    def current_set(self) -> tuple[ActiveItem, ...]:
        return tuple(self._items)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_item(self) -> ActiveItem | None:
        if not self._items:
            return None
        return self._items[self._index]

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def load(self, items: Iterable[ActiveItem]) -> None:
        """Replace the active set, even mid-playback, and start from the top."""
        self._cancel_timer()
        self._items = list(items)
        self._index = 0
        if not self._items:
            self._state = PlaybackState.PLACEHOLDER
            self._renderer.show_placeholder()
            logger.info("No content to play, showing placeholder")
            return
        self._state = PlaybackState.PLAYING
        logger.info("Loaded %d content item(s)", len(self._items))
        self._show_current()
        self._arm_timer()

    def advance(self) -> None:
        if self._state != PlaybackState.PLAYING or not self._items:
            return
        self._index = (self._index + 1) % len(self._items)
        self._show_current()
        self._arm_timer()

    def previous(self) -> None:
        if self._state != PlaybackState.PLAYING or not self._items:
            return
        self._index = (self._index - 1) % len(self._items)
        self._show_current()
        self._arm_timer()

    def pause(self) -> None:
        if self._state != PlaybackState.PLAYING:
            return
        self._cancel_timer()
        self._state = PlaybackState.PAUSED
        logger.info("Playback paused at item %d", self._index)

    def resume(self) -> None:
        # Elapsed dwell time before the pause is not credited; the item gets a full new dwell.
        if self._state != PlaybackState.PAUSED:
            return
        self._state = PlaybackState.PLAYING
        self._arm_timer()
        logger.info("Playback resumed at item %d", self._index)

    def stop(self) -> None:
        self._cancel_timer()
        self._items = []
        self._index = 0
        self._state = PlaybackState.STOPPED
        self._renderer.clear()

    def report_render_failure(self, content_id: str, reason: str = "media failed to load") -> None:
        item = self.current_item
        if item is None or item.content.id != content_id:
            logger.debug("Ignoring render failure for %s, it is not on screen", content_id)
            return
        # Only the visual is replaced; the item stays in the set and the timer keeps running.
        self._renderer.show_error(item, reason)

    def status(self) -> dict[str, Any]:
        item = self.current_item
        return {
            "state": self._state.value,
            "content_count": len(self._items),
            "current_index": self._index,
            "current_content_id": item.content.id if item else None,
            "dwell_ms": item.content.duration_sec * 1000 if item else None,
            "timer_pending": self.has_pending_timer,
        }

    def _show_current(self) -> None:
        item = self._items[self._index]
        self._renderer.show(item)

    def _arm_timer(self) -> None:
        self._cancel_timer()
        generation = self._generation
        item = self._items[self._index]
        self._timer = self._scheduler.call_later(
            item.content.duration_sec,
            lambda: self._on_dwell_elapsed(generation),
        )

    def _on_dwell_elapsed(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._timer = None
        self.advance()

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
