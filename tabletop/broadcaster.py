"""Utility helpers for delivering patches and events to a room's audience."""
from __future__ import annotations

from enum import Enum

from .hub import ConnectionHub
from .schemas import BaseEvent, Patch

PATCH_MESSAGE = "state:patch"
EVENT_MESSAGE = "event:new"


class Audience(Enum):
    SENDER = "sender"  # only the requesting connection
    OTHERS = "others"  # every room member except the sender
    ROOM = "room"  # every room member including the sender


def emit(
    hub: ConnectionHub,
    room_id: str,
    sender: str,
    message_type: str,
    payload: dict,
    audience: Audience = Audience.ROOM,
) -> None:
    """Queue ``{"type": message_type, "data": payload}`` for *audience*."""
    message = {"type": message_type, "data": payload}
    if audience is Audience.SENDER:
        hub.send(sender, message)
    elif audience is Audience.OTHERS:
        hub.send_group(room_id, message, exclude=sender)
    else:
        hub.send_group(room_id, message)


def broadcast_patch(
    hub: ConnectionHub,
    room_id: str,
    sender: str,
    patch: Patch,
    audience: Audience = Audience.ROOM,
) -> None:
    emit(hub, room_id, sender, PATCH_MESSAGE, patch.to_wire(), audience)


def broadcast_event(hub: ConnectionHub, room_id: str, sender: str, event: BaseEvent) -> None:
    # Visibility is advisory only; DM-only events still go to the whole room.
    emit(hub, room_id, sender, EVENT_MESSAGE, event.to_wire(), Audience.ROOM)


__all__ = [
    "Audience",
    "PATCH_MESSAGE",
    "EVENT_MESSAGE",
    "emit",
    "broadcast_patch",
    "broadcast_event",
]
