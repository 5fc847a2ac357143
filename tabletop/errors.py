from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Error identifiers sent back to clients in negative acknowledgments."""

    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    NOT_DM = "NOT_DM"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    ONLY_ENEMY_MOVABLE = "ONLY_ENEMY_MOVABLE"
    BAD_ID = "BAD_ID"
    WRONG_PASSWORD = "WRONG_PASSWORD"
    DM_PASSWORD_NOT_CONFIGURED = "DM_PASSWORD_NOT_CONFIGURED"
    BAD_REQUEST = "BAD_REQUEST"
    UNKNOWN_EVENT = "UNKNOWN_EVENT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    NO_FILE = "NO_FILE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"


class TabletopError(Exception):
    """Raised by handlers to reject a request without mutating anything."""

    def __init__(self, code: ErrorCode):
        self.code = code
        super().__init__(code.value)

    def to_reply(self) -> dict:
        return nack(self.code)


def nack(code: ErrorCode) -> dict:
    return {"ok": False, "error": code.value}


__all__ = ["ErrorCode", "TabletopError", "nack"]
