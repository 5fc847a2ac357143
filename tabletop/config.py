"""Process configuration read from environment variables and an optional ``.env`` file."""
from __future__ import annotations

import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel

from .constants import MAX_UPLOAD_BYTES


class Settings(BaseModel):
    """Runtime settings for one server instance."""

    # Shared DM secret. When unset every ``dm:login`` is rejected.
    dm_password: Optional[str] = None
    client_origin: str = "http://localhost:5173"
    host: str = "0.0.0.0"
    port: int = 3001
    upload_dir: str = "uploads"
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    bcrypt_rounds: int = 10
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from the environment.

        Variables from *env_file* (default: the nearest ``.env`` above the working
        directory) are loaded first; values already in the environment win.
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))
        env = os.environ
        return cls(
            dm_password=env.get("DM_PASSWORD") or None,
            client_origin=env.get("CLIENT_ORIGIN", "http://localhost:5173"),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT") or 3001),
            upload_dir=env.get("UPLOAD_DIR", "uploads"),
            max_upload_bytes=int(env.get("MAX_UPLOAD_BYTES") or MAX_UPLOAD_BYTES),
            bcrypt_rounds=int(env.get("BCRYPT_ROUNDS") or 10),
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_file=env.get("LOG_FILE") or None,
        )


__all__ = ["Settings"]
