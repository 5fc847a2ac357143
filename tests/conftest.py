import asyncio
from typing import Any, List, Optional

import pytest

from tabletop.auth_utils import derive_dm_secret_hash
from tabletop.handlers import handle_ws_message
from tabletop.registry import RoomRegistry
from tabletop.state import ServerState

DM_SECRET = "hunter2"


class Peer:
    """A registered connection whose outbound messages can be inspected."""

    def __init__(self, server: ServerState, connection_id: str):
        self.server = server
        self.id = connection_id
        self.connection = server.hub.register(connection_id, websocket=None)
        self.inbox: List[dict] = []

    def received(self) -> List[dict]:
        while True:
            try:
                self.inbox.append(self.connection.outbox.get_nowait())
            except asyncio.QueueEmpty:
                return self.inbox

    def patches(self, patch_type: Optional[str] = None) -> List[dict]:
        return [
            m["data"]
            for m in self.received()
            if isinstance(m, dict)
            and m.get("type") == "state:patch"
            and (patch_type is None or m["data"]["type"] == patch_type)
        ]

    def events(self) -> List[dict]:
        return [m["data"] for m in self.received() if isinstance(m, dict) and m.get("type") == "event:new"]

    def clear(self) -> None:
        self.received()
        self.inbox.clear()

    async def call(self, event: str, **data: Any) -> dict:
        return await handle_ws_message(self.server, self.id, event, data)


@pytest.fixture(scope="session")
def dm_secret_hash():
    return derive_dm_secret_hash(DM_SECRET, rounds=4)


@pytest.fixture
def server(dm_secret_hash):
    return ServerState(RoomRegistry(dm_secret_hash=dm_secret_hash))


@pytest.fixture
def connect(server):
    def _connect(connection_id: str) -> Peer:
        return Peer(server, connection_id)

    return _connect


@pytest.fixture
async def room_code(server, connect):
    host = connect("host")
    reply = await host.call("room:create")
    return reply["roomId"]


@pytest.fixture
async def table(server, connect, room_code):
    """A room with a logged-in DM and one joined player."""
    dm = connect("dm")
    player = connect("alice")
    await dm.call("room:join", roomId=room_code, name="Dungeon Master")
    await player.call("room:join", roomId=room_code, name="Alice")
    assert (await dm.call("dm:login", roomId=room_code, password=DM_SECRET)) == {"ok": True}
    dm.clear()
    player.clear()
    return server.registry.find(room_code), dm, player
