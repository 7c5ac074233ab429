import asyncio
from types import SimpleNamespace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from apps.api.app.events import WebSocketHub
from apps.api.app.routes import events as event_routes


class _FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail
        self.accepted = False

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)


def test_new_subscriber_gets_loaded_dataset_then_cached_copy():
    hub = WebSocketHub()
    calls = []

    def _loader():
        calls.append(1)
        return [{"campaign_code": "1001"}]

    first = _FakeSocket()
    second = _FakeSocket()

    async def _scenario():
        await hub.connect(first, load_initial=_loader)
        await hub.connect(second, load_initial=_loader)

    asyncio.run(_scenario())

    expected = {"event": "sheetDataUpdated", "data": [{"campaign_code": "1001"}]}
    assert first.sent == [expected]
    assert second.sent == [expected]
    assert len(calls) == 1
    assert hub.client_count == 2


def test_broadcast_drops_subscribers_that_fail():
    hub = WebSocketHub()
    good = _FakeSocket()
    bad = _FakeSocket(fail=True)

    async def _scenario():
        await hub.connect(good)
        await hub.connect(bad)
        await hub.broadcast({"event": "new-campaign-update", "data": {"id": 1}})

    asyncio.run(_scenario())

    assert good.sent == [{"event": "new-campaign-update", "data": {"id": 1}}]
    assert hub.client_count == 1


def test_publish_on_the_bound_loop_schedules_broadcast():
    hub = WebSocketHub()
    socket = _FakeSocket()

    async def _scenario():
        hub.bind_loop(asyncio.get_running_loop())
        await hub.connect(socket)
        hub.publish("leadReportsUpdated", {"campaign_codes": ["1234"]})
        assert hub.pending_broadcasts == 1
        await asyncio.sleep(0.05)
        assert hub.pending_broadcasts == 0

    asyncio.run(_scenario())

    assert socket.sent == [{"event": "leadReportsUpdated", "data": {"campaign_codes": ["1234"]}}]


def test_publish_without_loop_only_caches_sheet_data():
    hub = WebSocketHub()

    hub.publish("sheetDataUpdated", [{"campaign_code": "1001"}])
    hub.publish("new-campaign-update", {"id": 1})

    assert hub.latest("sheetDataUpdated") == [{"campaign_code": "1001"}]
    assert hub.latest("new-campaign-update") is None


def test_websocket_endpoint_streams_cached_then_live_events():
    hub = WebSocketHub()
    app = FastAPI()
    app.state.event_hub = hub
    app.state.sheet_sync = SimpleNamespace(current_data=lambda: [{"campaign_code": "1001"}])
    app.include_router(event_routes.router)

    @app.on_event("startup")
    async def _bind() -> None:
        hub.bind_loop(asyncio.get_running_loop())

    with TestClient(app) as client:
        with client.websocket_connect("/events/ws") as websocket:
            assert websocket.receive_json() == {
                "event": "sheetDataUpdated",
                "data": [{"campaign_code": "1001"}],
            }
            hub.publish("new-campaign-update", {"id": 7})
            assert websocket.receive_json() == {"event": "new-campaign-update", "data": {"id": 7}}
