import logging
from typing import Protocol

from zonecast.schemas.schedule import ActiveItem

logger = logging.getLogger(__name__)

PLACEHOLDER_TEXT = "Er is momenteel geen content beschikbaar voor deze zone."


class Renderer(Protocol):
    def show(self, item: ActiveItem) -> None: ...

    def show_placeholder(self) -> None: ...

    def show_error(self, item: ActiveItem, reason: str) -> None: ...

    def clear(self) -> None: ...

    def show_connection_error(self, title: str, message: str) -> None: ...

    def hide_connection_error(self) -> None: ...


class LoggingRenderer:
    """Headless display surface: records what a screen would show."""

    def __init__(self) -> None:
        self.current: str | None = None
        self.overlay: str | None = None

    def show(self, item: ActiveItem) -> None:
        content = item.content
        if content.type == "livestream":
            self.current = f"livestream:{content.title}"
        else:
            self.current = f"{content.type}:{content.media_url}"
        logger.info("Showing %s %r for %ds", content.type, content.title, content.duration_sec)

    def show_placeholder(self) -> None:
        self.current = "placeholder"
        logger.info(PLACEHOLDER_TEXT)

    def show_error(self, item: ActiveItem, reason: str) -> None:
        self.current = f"error:{item.content.id}"
        logger.warning("Could not render %s %r: %s", item.content.type, item.content.title, reason)

    def clear(self) -> None:
        self.current = None

    def show_connection_error(self, title: str, message: str) -> None:
        self.overlay = f"{title}: {message}"
        logger.error("%s - %s", title, message)

    def hide_connection_error(self) -> None:
        if self.overlay:
            logger.info("Connection restored")
        self.overlay = None
