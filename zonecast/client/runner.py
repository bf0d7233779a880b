import argparse
import asyncio
import logging
import os

from zonecast.client.playback import PlaybackLoop
from zonecast.client.renderer import LoggingRenderer
from zonecast.client.session import DisplaySession, SessionConfig
from zonecast.client.timers import AsyncioTimerScheduler
from zonecast.client.transport import HttpContentSource, WebSocketTransport

logger = logging.getLogger(__name__)


def build_session(config: SessionConfig, api_key: str | None = None) -> tuple[DisplaySession, HttpContentSource]:
    renderer = LoggingRenderer()
    scheduler = AsyncioTimerScheduler()
    content_source = HttpContentSource(config.server_url, api_key=api_key)
    session = DisplaySession(
        config=config,
        transport=WebSocketTransport(config.ws_url),
        content_source=content_source,
        playback=PlaybackLoop(renderer, scheduler),
        renderer=renderer,
        scheduler=scheduler,
    )
    return session, content_source


async def run_player(config: SessionConfig, api_key: str | None = None) -> None:
    session, content_source = build_session(config, api_key=api_key)
    try:
        await session.run()
    finally:
        await session.close()
        await content_source.aclose()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Headless zonecast display player")
    parser.add_argument("--server", default=os.getenv("ZONECAST_SERVER_URL", "http://localhost:3000"))
    parser.add_argument("--zone", default=os.getenv("ZONECAST_ZONE", "reception"))
    parser.add_argument("--reconnect-delay", type=float, default=1.0, help="Base reconnect delay in seconds")
    parser.add_argument("--max-attempts", type=int, default=10, help="Reconnect attempts before giving up")
    parser.add_argument("--poll-interval", type=float, default=60.0, help="Seconds between pulls while offline")
    parser.add_argument("--log-level", default=os.getenv("ZONECAST_LOG_LEVEL", "INFO"))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = SessionConfig(
        server_url=args.server,
        zone=args.zone,
        reconnect_base_delay=args.reconnect_delay,
        max_reconnect_attempts=args.max_attempts,
        poll_interval=args.poll_interval,
    )
    logger.info("Starting player for zone %s against %s", config.zone, config.server_url)
    try:
        asyncio.run(run_player(config, api_key=os.getenv("ZONECAST_API_KEY") or None))
    except KeyboardInterrupt:
        logger.info("Player stopped")
