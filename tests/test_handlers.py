import pytest

from conftest import DM_SECRET

from tabletop import handlers
from tabletop.registry import RoomRegistry
from tabletop.state import ServerState


# ---------------------------------------------------------------------------
# room:create / room:join
# ---------------------------------------------------------------------------

async def test_create_room_returns_code(server, connect):
    reply = await connect("c1").call("room:create")
    assert reply["ok"] is True
    assert reply["roomId"] in server.registry


async def test_join_unknown_room(connect):
    assert await connect("c1").call("room:join", roomId="NOPE42") == {"ok": False, "error": "ROOM_NOT_FOUND"}


async def test_join_creates_player_token_and_notifies(server, connect, room_code):
    alice = connect("alice")
    bob = connect("bob")
    await alice.call("room:join", roomId=room_code, name="Alice")
    alice.clear()

    reply = await bob.call("room:join", roomId=room_code.lower(), name="B" * 40, imgUrl="http://img", color="red")

    assert reply["ok"] is True
    token = reply["state"]["tokens"]["bob"]
    assert token["kind"] == "player"
    assert token["ownerId"] == "bob"
    assert token["name"] == "B" * 24
    assert token["imgUrl"] == "http://img"
    assert token["color"] == "red"
    assert 200 <= token["x"] <= 400 and 200 <= token["y"] <= 400
    assert set(reply["state"]["tokens"]) == {"alice", "bob"}

    assert alice.patches("token:upsert") == [{"type": "token:upsert", "token": token}]
    # The joiner gets the current DM, not its own upsert.
    assert bob.patches() == [{"type": "room:dm", "dmId": None}]


async def test_join_defaults(connect, room_code):
    reply = await connect("c1").call("room:join", roomId=room_code)
    token = reply["state"]["tokens"]["c1"]
    assert token["name"] == "Player"
    assert token["imgUrl"] == ""


async def test_late_joiner_learns_current_dm(table, connect):
    room, dm, _ = table
    late = connect("late")
    reply = await late.call("room:join", roomId=room.id)

    assert reply["state"]["dmId"] == "dm"
    assert late.patches("room:dm") == [{"type": "room:dm", "dmId": "dm"}]


async def test_join_ack_precedes_dm_unicast(server, table, connect):
    room, _, _ = table
    late = connect("late")
    reply = await handlers.handle_ws_message(server, late.id, "room:join", {"roomId": room.id}, ack=1)

    assert type(reply) is dict
    received = late.received()
    assert [m["type"] for m in received] == ["ack", "state:patch"]
    assert received[0] == {"type": "ack", "ack": 1, "data": reply}
    assert received[1]["data"] == {"type": "room:dm", "dmId": "dm"}


async def test_ack_is_queued_for_rejections_too(server, connect):
    peer = connect("c1")
    reply = await handlers.handle_ws_message(server, peer.id, "room:join", {"roomId": "NOPE42"}, ack=None)
    assert peer.received() == [{"type": "ack", "ack": None, "data": reply}]
    assert reply == {"ok": False, "error": "ROOM_NOT_FOUND"}


# ---------------------------------------------------------------------------
# token:move
# ---------------------------------------------------------------------------

async def test_self_move_is_clamped_and_sent_to_others(table):
    room, dm, player = table
    reply = await player.call("token:move", roomId=room.id, x=99999, y=-5)

    assert reply == {"ok": True}
    assert (room.state.tokens["alice"].x, room.state.tokens["alice"].y) == (2000, 0)
    assert dm.patches("token:move") == [{"type": "token:move", "id": "alice", "x": 2000, "y": 0}]
    assert player.patches() == []


@pytest.mark.parametrize("x, y", [("abc", None), (None, "nope"), ({}, [])])
async def test_non_numeric_coordinates_clamp_to_zero(table, x, y):
    room, _, player = table
    await player.call("token:move", roomId=room.id, x=x, y=y)
    token = room.state.tokens["alice"]
    assert (token.x, token.y) == (0, 0)


async def test_huge_integer_coordinates_clamp_to_bounds(table):
    room, dm, player = table
    assert await player.call("token:move", roomId=room.id, x=10**400, y=-10**400) == {"ok": True}
    token = room.state.tokens["alice"]
    assert (token.x, token.y) == (2000, 0)

    assert await dm.call("map:set", roomId=room.id, url="x", width=10**400, height=-10**400) == {"ok": True}
    assert (room.state.map.width, room.state.map.height) == (20000, 200)


async def test_move_without_token(connect, room_code):
    reply = await connect("ghost").call("token:move", roomId=room_code, x=1, y=1)
    assert reply == {"ok": False, "error": "TOKEN_NOT_FOUND"}


async def test_player_cannot_move_other_tokens(table):
    room, dm, player = table
    before = room.state.model_copy(deep=True)

    assert await player.call("token:move", roomId=room.id, id="dm", x=5, y=5) == {"ok": False, "error": "NOT_DM"}
    assert room.state == before
    assert dm.patches() == []


async def test_dm_cannot_move_player_tokens(table):
    room, dm, player = table
    reply = await dm.call("token:move", roomId=room.id, id="alice", x=5, y=5)
    assert reply == {"ok": False, "error": "ONLY_ENEMY_MOVABLE"}
    assert player.patches() == []


async def test_dm_move_unknown_token(table):
    room, dm, _ = table
    reply = await dm.call("token:move", roomId=room.id, id="enemy_missing", x=5, y=5)
    assert reply == {"ok": False, "error": "TOKEN_NOT_FOUND"}


async def test_dm_enemy_move_echoes_to_whole_room(table):
    room, dm, player = table
    enemy = (await dm.call("token:addEnemy", roomId=room.id, x=10, y=10))["token"]
    dm.clear()
    player.clear()

    assert await dm.call("token:move", roomId=room.id, id=enemy["id"], x=300, y=400) == {"ok": True}

    expected = [{"type": "token:move", "id": enemy["id"], "x": 300, "y": 400}]
    assert dm.patches("token:move") == expected
    assert player.patches("token:move") == expected


# ---------------------------------------------------------------------------
# token:addEnemy / token:remove
# ---------------------------------------------------------------------------

async def test_add_enemy_requires_dm(table):
    room, _, player = table
    reply = await player.call("token:addEnemy", roomId=room.id, name="Orc", x=1, y=1)
    assert reply == {"ok": False, "error": "NOT_DM"}
    assert set(room.state.tokens) == {"dm", "alice"}


async def test_add_enemy_broadcasts_to_sender_too(table):
    room, dm, player = table
    reply = await dm.call("token:addEnemy", roomId=room.id, x=50, y=60)

    token = reply["token"]
    assert token["id"].startswith("enemy_")
    assert token["kind"] == "enemy"
    assert "ownerId" not in token
    assert "color" not in token
    assert token["name"] == "Enemy"
    assert room.state.tokens[token["id"]].kind == "enemy"
    for peer in (dm, player):
        assert peer.patches("token:upsert") == [{"type": "token:upsert", "token": token}]


async def test_enemy_ids_are_unique(table):
    room, dm, _ = table
    ids = {(await dm.call("token:addEnemy", roomId=room.id, x=0, y=0))["token"]["id"] for _ in range(20)}
    assert len(ids) == 20


async def test_remove_token(table):
    room, dm, player = table
    enemy_id = (await dm.call("token:addEnemy", roomId=room.id, x=0, y=0))["token"]["id"]
    player.clear()

    assert await player.call("token:remove", roomId=room.id, id=enemy_id) == {"ok": False, "error": "NOT_DM"}
    assert await dm.call("token:remove", roomId=room.id, id="") == {"ok": False, "error": "BAD_ID"}
    assert await dm.call("token:remove", roomId=room.id, id="nope") == {"ok": False, "error": "TOKEN_NOT_FOUND"}
    assert await dm.call("token:remove", roomId=room.id, id=enemy_id) == {"ok": True}

    assert enemy_id not in room.state.tokens
    assert player.patches("token:remove") == [{"type": "token:remove", "id": enemy_id}]


# ---------------------------------------------------------------------------
# dm:login
# ---------------------------------------------------------------------------

async def test_dm_login_wrong_password(server, connect, room_code):
    peer = connect("c1")
    reply = await peer.call("dm:login", roomId=room_code, password="guess")
    assert reply == {"ok": False, "error": "WRONG_PASSWORD"}
    assert server.registry.find(room_code).dm_connection_id is None


async def test_dm_login_without_configured_secret(connect):
    server = ServerState(RoomRegistry(dm_secret_hash=None))
    code = server.registry.create()
    peer = connect("c1")
    reply = await handlers.handle_ws_message(server, peer.id, "dm:login", {"roomId": code, "password": DM_SECRET})
    assert reply == {"ok": False, "error": "DM_PASSWORD_NOT_CONFIGURED"}


async def test_dm_login_sets_both_copies_and_broadcasts(server, connect, room_code):
    alice = connect("alice")
    await alice.call("room:join", roomId=room_code)
    alice.clear()

    assert await alice.call("dm:login", roomId=room_code, password=DM_SECRET) == {"ok": True}

    room = server.registry.find(room_code)
    assert room.dm_connection_id == room.state.dm_id == "alice"
    assert alice.patches("room:dm") == [{"type": "room:dm", "dmId": "alice"}]


async def test_later_login_takes_over(table, connect):
    room, dm, player = table
    assert await player.call("dm:login", roomId=room.id, password=DM_SECRET) == {"ok": True}

    assert room.dm_connection_id == "alice"
    assert dm.patches("room:dm") == [{"type": "room:dm", "dmId": "alice"}]
    assert await dm.call("map:set", roomId=room.id, url="x", width=500, height=500) == {
        "ok": False,
        "error": "NOT_DM",
    }


async def test_dm_login_aborts_if_caller_left_during_check(server, connect, room_code, monkeypatch):
    peer = connect("c1")

    def verify_and_disconnect(password, hashed):
        server.hub.drop("c1")
        return True

    monkeypatch.setattr(handlers, "verify_password", verify_and_disconnect)
    reply = await peer.call("dm:login", roomId=room_code, password=DM_SECRET)

    assert reply["ok"] is False
    assert server.registry.find(room_code).dm_connection_id is None


# ---------------------------------------------------------------------------
# map:set
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "width, height, expected",
    [
        (50, 99999, (200, 20000)),
        (1024, 768, (1024, 768)),
        ("wide", None, (200, 200)),
    ],
)
async def test_map_set_clamps_dimensions(table, width, height, expected):
    room, dm, player = table
    reply = await dm.call("map:set", roomId=room.id, url="u" * 1000, width=width, height=height)

    assert reply == {"ok": True}
    assert (room.state.map.width, room.state.map.height) == expected
    assert len(room.state.map.url) == 800
    assert player.patches("map:set") == [{"type": "map:set", "map": room.state.map.to_wire()}]


async def test_map_set_requires_dm(table):
    room, _, player = table
    before = room.state.map.model_copy()
    assert await player.call("map:set", roomId=room.id, url="x", width=500, height=500) == {
        "ok": False,
        "error": "NOT_DM",
    }
    assert room.state.map == before


async def test_moves_are_clamped_to_new_map(table):
    room, dm, player = table
    await dm.call("map:set", roomId=room.id, url="x", width=300, height=250)
    await player.call("token:move", roomId=room.id, x=1000, y=1000)
    assert (room.state.tokens["alice"].x, room.state.tokens["alice"].y) == (300, 250)


# ---------------------------------------------------------------------------
# effect:add / effect:remove
# ---------------------------------------------------------------------------

async def test_effect_lifecycle(table):
    room, dm, player = table
    reply = await dm.call("effect:add", roomId=room.id, effect={"id": "mine", "shape": "circle", "r": 40})

    effect = reply["effect"]
    assert effect["id"].startswith("effect_")
    assert effect["shape"] == "circle"
    assert effect["r"] == 40
    assert player.patches("effect:upsert") == [{"type": "effect:upsert", "effect": effect}]

    assert await dm.call("effect:remove", roomId=room.id, id=effect["id"]) == {"ok": True}
    assert room.state.effects == {}
    assert player.patches("effect:remove") == [{"type": "effect:remove", "id": effect["id"]}]


async def test_effect_remove_missing_is_silent(table):
    room, dm, player = table
    assert await dm.call("effect:remove", roomId=room.id, id="effect_nope") == {"ok": True}
    assert player.patches() == []


async def test_effects_require_dm(table):
    room, dm, player = table
    effect_id = (await dm.call("effect:add", roomId=room.id, effect={}))["effect"]["id"]

    assert await player.call("effect:add", roomId=room.id, effect={}) == {"ok": False, "error": "NOT_DM"}
    assert await player.call("effect:remove", roomId=room.id, id=effect_id) == {"ok": False, "error": "NOT_DM"}
    assert list(room.state.effects) == [effect_id]


async def test_snapshot_includes_effects(table, connect):
    room, dm, _ = table
    await dm.call("effect:add", roomId=room.id, effect={"color": "#f00"})
    state = (await connect("late").call("room:join", roomId=room.id))["state"]
    [effect] = state["effects"].values()
    assert effect["color"] == "#f00"


# ---------------------------------------------------------------------------
# event:log / event:attack
# ---------------------------------------------------------------------------

async def test_log_note_event(table):
    room, dm, player = table
    reply = await player.call("event:log", roomId=room.id, type="note", text="Alice opens the door")

    event = reply["event"]
    assert event["type"] == "note"
    assert event["by"] == "alice"
    assert event["visibility"] == "ALL"
    assert event["id"].startswith("ev_")
    assert isinstance(event["at"], int)
    assert dm.events() == [event]
    assert player.events() == [event]


async def test_log_roll_event(table):
    room, dm, _ = table
    reply = await dm.call("event:log", roomId=room.id, type="roll", formula="1d20+3", total=17, visibility="DM")

    assert reply["event"]["formula"] == "1d20+3"
    assert reply["event"]["total"] == 17
    assert reply["event"]["visibility"] == "DM"


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "note", "text": "hi", "secret": True},
        {"type": "dance"},
        {"text": "no type"},
        {"type": "roll"},
    ],
)
async def test_log_event_rejects_malformed_payloads(table, payload):
    room, dm, _ = table
    reply = await dm.call("event:log", roomId=room.id, **payload)
    assert reply == {"ok": False, "error": "BAD_REQUEST"}
    assert dm.events() == []


async def test_log_event_unknown_room(connect):
    reply = await connect("c1").call("event:log", roomId="ZZZZZZ", type="note", text="x")
    assert reply == {"ok": False, "error": "ROOM_NOT_FOUND"}


async def test_attack_resolves_names(table):
    room, dm, player = table
    goblin = (await dm.call("token:addEnemy", roomId=room.id, name="Goblin", x=0, y=0))["token"]

    reply = await player.call(
        "event:attack", roomId=room.id, attackerId="alice", targetId=goblin["id"], text="t" * 300
    )

    event = reply["event"]
    assert event["type"] == "attack"
    assert event["attackerName"] == "Alice"
    assert event["targetName"] == "Goblin"
    assert len(event["text"]) == 240
    assert event["visibility"] == "ALL"


async def test_dm_only_attack_is_still_broadcast_to_everyone(table):
    room, dm, player = table
    reply = await dm.call("event:attack", roomId=room.id, attackerId="x", targetId="y", visibility="DM")

    assert reply["event"]["visibility"] == "DM"
    assert reply["event"]["attackerName"] is None
    assert player.events() == [reply["event"]]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

async def test_unknown_event(connect):
    assert await connect("c1").call("room:explode") == {"ok": False, "error": "UNKNOWN_EVENT"}


async def test_non_dict_payload_is_treated_as_empty(server, connect):
    reply = await handlers.handle_ws_message(server, "c1", "room:join", ["not", "a", "dict"])
    assert reply == {"ok": False, "error": "ROOM_NOT_FOUND"}


async def test_handler_crash_becomes_internal_error(server, connect, monkeypatch):
    async def boom(server, connection_id, data):
        raise RuntimeError("boom")

    monkeypatch.setitem(handlers.HANDLERS, "room:create", boom)
    assert await connect("c1").call("room:create") == {"ok": False, "error": "INTERNAL_ERROR"}


# ---------------------------------------------------------------------------
# End-to-end scenario
# ---------------------------------------------------------------------------

async def test_goblin_scenario(server, connect):
    alice = connect("A")
    dm = connect("D")
    code = (await alice.call("room:create"))["roomId"]

    state = (await alice.call("room:join", roomId=code, name="A"))["state"]
    mine = state["tokens"]["A"]
    assert 200 <= mine["x"] <= 400 and 200 <= mine["y"] <= 400

    await dm.call("room:join", roomId=code, name="DM")
    assert await dm.call("dm:login", roomId=code, password=DM_SECRET) == {"ok": True}

    goblin = (await dm.call("token:addEnemy", roomId=code, name="Goblin", x=5000, y=5000))["token"]
    assert (goblin["x"], goblin["y"]) == (2000, 1400)

    assert await alice.call("token:move", roomId=code, id=goblin["id"], x=10, y=10) == {
        "ok": False,
        "error": "NOT_DM",
    }
    dm.clear()
    alice.clear()

    assert await dm.call("token:move", roomId=code, id=goblin["id"], x=100, y=120) == {"ok": True}
    expected = [{"type": "token:move", "id": goblin["id"], "x": 100, "y": 120}]
    assert dm.patches() == expected
    assert alice.patches() == expected
