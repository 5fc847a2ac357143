"""Room mutation handlers.

Every handler follows the same sequence: resolve the room, authorize,
validate and clamp the input, mutate the room state, emit a patch and return
the acknowledgment payload. Handlers raise :class:`TabletopError` before
touching any state, so a rejected request never leaves a partial mutation.

The module is transport-agnostic: handlers only see a :class:`ServerState`,
the caller's connection id and the decoded request payload.
"""
from __future__ import annotations

import time
import uuid
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional

from anyio import to_thread
from pydantic import ValidationError

from .authority import require_dm
from .auth_utils import verify_password
from .broadcaster import Audience, broadcast_event, broadcast_patch
from .constants import (
    DEFAULT_ENEMY_NAME,
    DEFAULT_PLAYER_NAME,
    MAP_MAX_SIZE,
    MAP_MIN_SIZE,
    MAX_COLOR_LENGTH,
    MAX_EVENT_TEXT_LENGTH,
    MAX_IMG_URL_LENGTH,
    MAX_MAP_URL_LENGTH,
    MAX_NAME_LENGTH,
)
from .errors import ErrorCode, TabletopError, nack
from .logging_config import get_logger
from .room import bounded_text, clamp
from .schemas import (
    AddEnemyRequest,
    AttackEvent,
    AttackRequest,
    DmLoginRequest,
    DmPatch,
    Effect,
    EffectAddRequest,
    EffectRemovePatch,
    EffectUpsertPatch,
    IdRequest,
    JoinRequest,
    MapDescriptor,
    MapSetPatch,
    MapSetRequest,
    MoveRequest,
    NoteEvent,
    NoteRequest,
    RoomRequest,
    RollEvent,
    Token,
    TokenMovePatch,
    TokenRemovePatch,
    TokenUpsertPatch,
    log_event_adapter,
)
from .state import ServerState

logger = get_logger(__name__)

Handler = Callable[[ServerState, str, Dict[str, Any]], Awaitable[dict]]


NO_ACK = object()


class Reply(dict):
    """Acknowledgment payload plus sends that must reach the caller after its ack."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.after: List[Callable[[], None]] = []


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Room lifecycle
# ---------------------------------------------------------------------------

async def create_room(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    room_id = server.registry.create()
    return {"ok": True, "roomId": room_id}


async def join_room(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = JoinRequest.model_validate(data)
    room = server.registry.find(req.code)

    x, y = room.spawn_position()
    token = Token(
        id=connection_id,
        kind="player",
        owner_id=connection_id,
        name=bounded_text(req.name, DEFAULT_PLAYER_NAME, MAX_NAME_LENGTH),
        x=x,
        y=y,
        img_url=bounded_text(req.img_url, "", MAX_IMG_URL_LENGTH),
        color=bounded_text(req.color, "", MAX_COLOR_LENGTH),
    )
    room.put_token(token)
    server.hub.join(connection_id, room.id)
    server.registry.track(connection_id, room.id)
    logger.info("Connection %s joined room %s as %r", connection_id, room.id, token.name)

    broadcast_patch(server.hub, room.id, connection_id, TokenUpsertPatch(token=token), Audience.OTHERS)
    reply = Reply(ok=True, state=room.snapshot())
    # Late joiners learn the current DM right after their ack.
    reply.after.append(
        partial(
            broadcast_patch,
            server.hub,
            room.id,
            connection_id,
            DmPatch(dm_id=room.dm_connection_id),
            Audience.SENDER,
        )
    )
    return reply


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

async def move_token(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    """Move the caller's own token, or (DM only) an enemy token named by ``id``."""
    req = MoveRequest.model_validate(data)
    room = server.registry.find(req.code)
    target_id = str(req.id or connection_id)

    if target_id != connection_id:
        require_dm(room, connection_id)
        token = room.get_token(target_id)
        if token is None:
            raise TabletopError(ErrorCode.TOKEN_NOT_FOUND)
        if token.kind != "enemy":
            raise TabletopError(ErrorCode.ONLY_ENEMY_MOVABLE)
        # The DM did not apply the move locally, so it needs the echo too.
        audience = Audience.ROOM
    else:
        token = room.get_token(connection_id)
        if token is None:
            raise TabletopError(ErrorCode.TOKEN_NOT_FOUND)
        audience = Audience.OTHERS

    token.x, token.y = room.clamp_to_map(req.x, req.y)
    logger.debug("Room %s: token %s moved to (%.1f, %.1f)", room.id, token.id, token.x, token.y)
    broadcast_patch(server.hub, room.id, connection_id, TokenMovePatch(id=token.id, x=token.x, y=token.y), audience)
    return {"ok": True}


async def add_enemy(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = AddEnemyRequest.model_validate(data)
    room = server.registry.find(req.code)
    require_dm(room, connection_id)

    token_id = _new_id("enemy")
    while room.get_token(token_id) is not None:
        token_id = _new_id("enemy")
    x, y = room.clamp_to_map(req.x, req.y)
    token = Token(
        id=token_id,
        kind="enemy",
        name=bounded_text(req.name, DEFAULT_ENEMY_NAME, MAX_NAME_LENGTH),
        x=x,
        y=y,
        img_url=bounded_text(req.img_url, "", MAX_IMG_URL_LENGTH),
    )
    room.put_token(token)
    logger.debug("Room %s: DM added enemy %s (%r)", room.id, token.id, token.name)

    # Sender included so the DM learns the server-assigned id.
    broadcast_patch(server.hub, room.id, connection_id, TokenUpsertPatch(token=token), Audience.ROOM)
    return {"ok": True, "token": token.to_wire()}


async def remove_token(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = IdRequest.model_validate(data)
    room = server.registry.find(req.code)
    require_dm(room, connection_id)

    token_id = str(req.id or "")
    if not token_id:
        raise TabletopError(ErrorCode.BAD_ID)
    if room.pop_token(token_id) is None:
        raise TabletopError(ErrorCode.TOKEN_NOT_FOUND)

    logger.debug("Room %s: DM removed token %s", room.id, token_id)
    broadcast_patch(server.hub, room.id, connection_id, TokenRemovePatch(id=token_id))
    return {"ok": True}


# ---------------------------------------------------------------------------
# DM authority
# ---------------------------------------------------------------------------

async def dm_login(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    """Grant DM authority to the caller when the shared secret matches.

    The latest successful login wins; any previous DM loses authority
    implicitly when ``room:dm`` names the new holder.
    """
    req = DmLoginRequest.model_validate(data)
    room = server.registry.find(req.code)
    if not room.dm_secret_hash:
        raise TabletopError(ErrorCode.DM_PASSWORD_NOT_CONFIGURED)

    password = str(req.password or "")
    ok = await to_thread.run_sync(verify_password, password, room.dm_secret_hash)
    if not ok:
        logger.info("Rejected DM login for room %s from %s", req.code, connection_id)
        raise TabletopError(ErrorCode.WRONG_PASSWORD)

    # Other handlers may have run while the hash was being checked.
    room = server.registry.find(req.code)
    if not server.hub.is_connected(connection_id):
        logger.info("Connection %s left before DM login for %s completed", connection_id, room.id)
        return nack(ErrorCode.NOT_DM)

    room.assign_dm(connection_id)
    server.registry.track(connection_id, room.id)
    logger.info("Connection %s is now DM of room %s", connection_id, room.id)
    broadcast_patch(server.hub, room.id, connection_id, DmPatch(dm_id=connection_id))
    return {"ok": True}


# ---------------------------------------------------------------------------
# Map & effects
# ---------------------------------------------------------------------------

async def set_map(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = MapSetRequest.model_validate(data)
    room = server.registry.find(req.code)
    require_dm(room, connection_id)

    room.state.map = MapDescriptor(
        url=bounded_text(req.url, "", MAX_MAP_URL_LENGTH),
        width=clamp(req.width, MAP_MIN_SIZE, MAP_MAX_SIZE),
        height=clamp(req.height, MAP_MIN_SIZE, MAP_MAX_SIZE),
    )
    logger.debug("Room %s: map set to %sx%s", room.id, room.state.map.width, room.state.map.height)
    broadcast_patch(server.hub, room.id, connection_id, MapSetPatch(map=room.state.map))
    return {"ok": True}


async def add_effect(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = EffectAddRequest.model_validate(data)
    room = server.registry.find(req.code)
    require_dm(room, connection_id)

    fields = dict(req.effect) if isinstance(req.effect, dict) else {}
    effect_id = _new_id("effect")
    while effect_id in room.state.effects:
        effect_id = _new_id("effect")
    fields["id"] = effect_id
    effect = Effect.model_validate(fields)
    room.state.effects[effect_id] = effect

    broadcast_patch(server.hub, room.id, connection_id, EffectUpsertPatch(effect=effect))
    return {"ok": True, "effect": effect.to_wire()}


async def remove_effect(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = IdRequest.model_validate(data)
    room = server.registry.find(req.code)
    require_dm(room, connection_id)

    effect_id = str(req.id or "")
    if room.state.effects.pop(effect_id, None) is not None:
        broadcast_patch(server.hub, room.id, connection_id, EffectRemovePatch(id=effect_id))
    return {"ok": True}


# ---------------------------------------------------------------------------
# Narrative events
# ---------------------------------------------------------------------------

async def log_event(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    """Stamp and broadcast a ``note`` or ``roll`` event. Unknown fields are rejected."""
    room = server.registry.find(RoomRequest.model_validate(data).code)
    req = log_event_adapter.validate_python(data)

    stamp = dict(id=_new_id("ev"), at=_now_ms(), by=connection_id, visibility=req.visibility)
    text = req.text[:MAX_EVENT_TEXT_LENGTH]
    if isinstance(req, NoteRequest):
        event = NoteEvent(text=text, **stamp)
    else:
        event = RollEvent(formula=req.formula, total=req.total, text=text, **stamp)

    broadcast_event(server.hub, room.id, connection_id, event)
    return {"ok": True, "event": event.to_wire()}


async def log_attack(server: ServerState, connection_id: str, data: Dict[str, Any]) -> dict:
    req = AttackRequest.model_validate(data)
    room = server.registry.find(req.code)

    attacker_id = str(req.attacker_id or "")
    target_id = str(req.target_id or "")
    attacker = room.get_token(attacker_id)
    target = room.get_token(target_id)
    event = AttackEvent(
        id=_new_id("ev"),
        at=_now_ms(),
        by=connection_id,
        attacker_id=attacker_id,
        target_id=target_id,
        attacker_name=attacker.name if attacker else None,
        target_name=target.name if target else None,
        text=str(req.text or "")[:MAX_EVENT_TEXT_LENGTH],
        visibility="DM" if req.visibility == "DM" else "ALL",
    )

    broadcast_event(server.hub, room.id, connection_id, event)
    return {"ok": True, "event": event.to_wire()}


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

HANDLERS: Dict[str, Handler] = {
    "room:create": create_room,
    "room:join": join_room,
    "token:move": move_token,
    "token:addEnemy": add_enemy,
    "token:remove": remove_token,
    "dm:login": dm_login,
    "map:set": set_map,
    "effect:add": add_effect,
    "effect:remove": remove_effect,
    "event:log": log_event,
    "event:attack": log_attack,
}


async def handle_ws_message(
    server: ServerState,
    connection_id: str,
    event: Any,
    data: Optional[Any] = None,
    ack: Any = NO_ACK,
) -> dict:
    """Route one request to its handler and return the acknowledgment payload.

    Handler failures are converted into negative acknowledgments; nothing
    raised here escapes to the transport. When *ack* is given the reply is
    also queued to the caller as ``{"type": "ack", ...}``, ahead of any
    follow-up sends the handler deferred.
    """
    reply = await _dispatch(server, connection_id, event, data)
    if ack is not NO_ACK:
        server.hub.send(connection_id, {"type": "ack", "ack": ack, "data": dict(reply)})
    for follow_up in getattr(reply, "after", ()):
        follow_up()
    return dict(reply)


async def _dispatch(server: ServerState, connection_id: str, event: Any, data: Any) -> dict:
    handler = HANDLERS.get(event) if isinstance(event, str) else None
    if handler is None:
        logger.debug("Unknown event %r from %s", event, connection_id)
        return nack(ErrorCode.UNKNOWN_EVENT)

    payload = data if isinstance(data, dict) else {}
    try:
        return await handler(server, connection_id, payload)
    except TabletopError as exc:
        logger.debug("%s from %s rejected: %s", event, connection_id, exc.code.value)
        return exc.to_reply()
    except ValidationError as exc:
        logger.debug("%s from %s has an invalid payload: %s", event, connection_id, exc)
        return nack(ErrorCode.BAD_REQUEST)
    except Exception:
        logger.exception("Unhandled error in %s from %s", event, connection_id)
        return nack(ErrorCode.INTERNAL_ERROR)


__all__ = [
    "HANDLERS",
    "NO_ACK",
    "Reply",
    "handle_ws_message",
    "create_room",
    "join_room",
    "move_token",
    "add_enemy",
    "remove_token",
    "dm_login",
    "set_map",
    "add_effect",
    "remove_effect",
    "log_event",
    "log_attack",
]
