"""Pydantic data schemas used across the tabletop service.

Everything that travels over the wire is declared here: the room state
snapshot, the ``state:patch`` variants, the ``event:new`` variants and the
inbound request payloads. Field names are snake_case in Python and camelCase
on the wire (``imgUrl``, ``dmId``, ``roomId`` ...).
"""
from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_serializer
from pydantic.alias_generators import to_camel

from .constants import (
    DEFAULT_MAP_HEIGHT,
    DEFAULT_MAP_URL,
    DEFAULT_MAP_WIDTH,
    MAX_FORMULA_LENGTH,
)

Visibility = Literal["ALL", "DM"]


class WireModel(BaseModel):
    """Base model emitting camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# -----------------------------
# Room state
# -----------------------------

class MapDescriptor(WireModel):
    url: str = DEFAULT_MAP_URL
    width: float = DEFAULT_MAP_WIDTH
    height: float = DEFAULT_MAP_HEIGHT


class Token(WireModel):
    """A movable piece on the map."""

    id: str
    kind: Literal["player", "enemy"]
    owner_id: Optional[str] = None  # only set on player tokens
    name: str
    x: float
    y: float
    img_url: str = ""
    color: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_absent(self, handler):
        # ownerId and color are optional keys: absent, never null.
        return {key: value for key, value in handler(self).items() if value is not None}


class Effect(WireModel):
    """DM-placed overlay. Besides ``id`` the fields are whatever the DM client sends."""

    model_config = ConfigDict(extra="allow")

    id: str


class RoomState(WireModel):
    map: MapDescriptor = Field(default_factory=MapDescriptor)
    tokens: Dict[str, Token] = Field(default_factory=dict)
    effects: Dict[str, Effect] = Field(default_factory=dict)
    dm_id: Optional[str] = None


# -----------------------------
# state:patch variants
# -----------------------------

class TokenUpsertPatch(WireModel):
    type: Literal["token:upsert"] = "token:upsert"
    token: Token


class TokenMovePatch(WireModel):
    type: Literal["token:move"] = "token:move"
    id: str
    x: float
    y: float


class TokenRemovePatch(WireModel):
    type: Literal["token:remove"] = "token:remove"
    id: str


class DmPatch(WireModel):
    type: Literal["room:dm"] = "room:dm"
    dm_id: Optional[str] = None


class MapSetPatch(WireModel):
    type: Literal["map:set"] = "map:set"
    map: MapDescriptor


class EffectUpsertPatch(WireModel):
    type: Literal["effect:upsert"] = "effect:upsert"
    effect: Effect


class EffectRemovePatch(WireModel):
    type: Literal["effect:remove"] = "effect:remove"
    id: str


Patch = Union[
    TokenUpsertPatch,
    TokenMovePatch,
    TokenRemovePatch,
    DmPatch,
    MapSetPatch,
    EffectUpsertPatch,
    EffectRemovePatch,
]


# -----------------------------
# event:new variants
# -----------------------------

class BaseEvent(WireModel):
    id: str
    at: int  # milliseconds since epoch
    by: str
    visibility: Visibility = "ALL"


class NoteEvent(BaseEvent):
    type: Literal["note"] = "note"
    text: str = ""


class RollEvent(BaseEvent):
    type: Literal["roll"] = "roll"
    formula: str
    total: Optional[int] = None
    text: str = ""


class AttackEvent(BaseEvent):
    type: Literal["attack"] = "attack"
    attacker_id: str
    target_id: str
    attacker_name: Optional[str] = None
    target_name: Optional[str] = None
    text: str = ""


# -----------------------------
# Inbound request payloads
# -----------------------------

class RoomRequest(WireModel):
    """Common request shape. Unknown keys are ignored, values are coerced by handlers."""

    model_config = ConfigDict(extra="ignore")

    room_id: Any = None

    @property
    def code(self) -> str:
        return str(self.room_id or "").strip().upper()


class JoinRequest(RoomRequest):
    name: Any = None
    img_url: Any = None
    color: Any = None


class MoveRequest(RoomRequest):
    id: Any = None
    x: Any = None
    y: Any = None


class AddEnemyRequest(RoomRequest):
    name: Any = None
    img_url: Any = None
    x: Any = None
    y: Any = None


class IdRequest(RoomRequest):
    id: Any = None


class DmLoginRequest(RoomRequest):
    password: Any = None


class MapSetRequest(RoomRequest):
    url: Any = None
    width: Any = None
    height: Any = None


class EffectAddRequest(RoomRequest):
    effect: Any = None


class AttackRequest(RoomRequest):
    attacker_id: Any = None
    target_id: Any = None
    text: Any = None
    visibility: Any = None


def _coerce_visibility(value: Any) -> str:
    return "DM" if value == "DM" else "ALL"


class _StrictEventRequest(WireModel):
    model_config = ConfigDict(extra="forbid")

    room_id: Any = None
    visibility: Visibility = "ALL"

    @field_validator("visibility", mode="before")
    @classmethod
    def _visibility(cls, value: Any) -> str:
        return _coerce_visibility(value)


class NoteRequest(_StrictEventRequest):
    type: Literal["note"]
    text: str = ""


class RollRequest(_StrictEventRequest):
    type: Literal["roll"]
    formula: str = Field(max_length=MAX_FORMULA_LENGTH)
    total: Optional[int] = None
    text: str = ""


LogEventRequest = Annotated[Union[NoteRequest, RollRequest], Field(discriminator="type")]
log_event_adapter: TypeAdapter = TypeAdapter(LogEventRequest)


__all__ = [
    "Visibility",
    "WireModel",
    # state
    "MapDescriptor",
    "Token",
    "Effect",
    "RoomState",
    # patches
    "TokenUpsertPatch",
    "TokenMovePatch",
    "TokenRemovePatch",
    "DmPatch",
    "MapSetPatch",
    "EffectUpsertPatch",
    "EffectRemovePatch",
    "Patch",
    # events
    "BaseEvent",
    "NoteEvent",
    "RollEvent",
    "AttackEvent",
    # requests
    "RoomRequest",
    "JoinRequest",
    "MoveRequest",
    "AddEnemyRequest",
    "IdRequest",
    "DmLoginRequest",
    "MapSetRequest",
    "EffectAddRequest",
    "AttackRequest",
    "NoteRequest",
    "RollRequest",
    "LogEventRequest",
    "log_event_adapter",
]
