import httpx
import pytest
from conftest import make_item

from zonecast.client.runner import build_session, parse_args
from zonecast.client.session import SessionConfig, SessionState
from zonecast.client.transport import ContentFetchError, HttpContentSource, TransportError, WebSocketTransport


def _source(handler):
    client = httpx.AsyncClient(base_url="http://screens", transport=httpx.MockTransport(handler))
    return HttpContentSource("http://screens", client=client)


@pytest.mark.asyncio
async def test_fetch_active_set_parses_items():
    item = make_item("a")

    def handler(request):
        assert request.url.path == "/schedule/reception"
        return httpx.Response(
            200,
            json={"zone": "reception", "resolved_at": "2026-01-10T12:00:00", "items": [item.model_dump(mode="json")]},
        )

    source = _source(handler)
    items = await source.fetch_active_set("reception")
    await source.aclose()
    assert [found.content.id for found in items] == ["a"]
    assert items[0].entry.priority == item.entry.priority


@pytest.mark.asyncio
async def test_fetch_errors_are_wrapped():
    source = _source(lambda request: httpx.Response(404, json={"detail": "Zone not found"}))
    with pytest.raises(ContentFetchError):
        await source.fetch_active_set("parking")

    broken = _source(lambda request: httpx.Response(200, json={"items": [{"entry": {}}]}))
    with pytest.raises(ContentFetchError):
        await broken.fetch_active_set("reception")
    await source.aclose()
    await broken.aclose()


@pytest.mark.asyncio
async def test_websocket_transport_requires_a_connection():
    transport = WebSocketTransport("ws://127.0.0.1:1/ws/updates", open_timeout=0.5)

    with pytest.raises(TransportError):
        await transport.send({"type": "ping", "payload": {}})
    with pytest.raises(TransportError):
        await transport.connect()


def test_parse_args_defaults(monkeypatch):
    monkeypatch.delenv("ZONECAST_SERVER_URL", raising=False)
    monkeypatch.delenv("ZONECAST_ZONE", raising=False)
    args = parse_args(["--zone", "shop", "--max-attempts", "3"])
    assert args.server == "http://localhost:3000"
    assert args.zone == "shop"
    assert args.max_attempts == 3
    assert args.reconnect_delay == 1.0


@pytest.mark.asyncio
async def test_build_session_wires_the_player():
    session, content_source = build_session(SessionConfig(server_url="http://screens:3000", zone="lockers"))
    assert session.zone == "lockers"
    assert session.state == SessionState.DISCONNECTED
    await content_source.aclose()
