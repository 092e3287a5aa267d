import asyncio
import json
from unittest.mock import Mock

import pytest

import config
from main import board_events
from services import issue_ticket
from store import RedisStateStore, parse_snapshot
from tickets import enqueue


def decode(frame):
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


@pytest.fixture(autouse=True)
def fast_poll(monkeypatch):
    monkeypatch.setattr(config, "EVENTS_POLL_SECONDS", 0)


class TestPolledEvents:
    def test_board_update_follows_write(self, store):
        async def run():
            stream = board_events(store)
            try:
                first = decode(await stream.__anext__())
                idle = decode(await stream.__anext__())
                issue_ticket(store, "1234")
                changed = decode(await stream.__anext__())
            finally:
                await stream.aclose()
            return first, idle, changed

        first, idle, changed = asyncio.run(run())

        assert first["type"] == "board_update"
        assert first["data"]["modules"][0]["label"] == "AVAILABLE"
        assert idle == {"type": "heartbeat"}
        assert changed["type"] == "board_update"
        assert changed["data"]["modules"][0]["ticket"] == "A01"


class TestRedisEvents:
    def test_board_update_from_channel(self):
        client = Mock()
        client.get.return_value = None
        store = RedisStateStore(client, channel="c")
        state = parse_snapshot("{}")
        enqueue(state, "1234")
        pubsub = client.pubsub.return_value
        pubsub.get_message.side_effect = [
            None,
            {"type": "message", "data": json.dumps(
                {"type": "state_update", "writer": "desk", "state": json.loads(state.to_payload())}
            )},
        ]

        async def run():
            stream = board_events(store)
            frames = []
            try:
                for _ in range(3):
                    frames.append(decode(await stream.__anext__()))
            finally:
                await stream.aclose()
            return frames

        initial, idle, update = asyncio.run(run())

        pubsub.subscribe.assert_called_once_with("c")
        assert initial["type"] == "board_update"
        assert idle == {"type": "heartbeat"}
        assert update["type"] == "board_update"
        assert update["data"]["waiting"] == [{"code": "A01", "isHigh": False}]
        pubsub.close.assert_called_once()
