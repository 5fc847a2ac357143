from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ..config import Settings
from ..constants import MAX_UPLOAD_NAME_LENGTH, UPLOAD_CHUNK_SIZE
from ..errors import ErrorCode, nack
from ..logging_config import get_logger

router = APIRouter(prefix="", tags=["uploads"])

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


class UploadTooLarge(Exception):
    pass


def sanitize_filename(name: Optional[str]) -> str:
    """Replace anything outside ``[A-Za-z0-9._-]`` and cap the length."""
    return _UNSAFE_CHARS.sub("_", name or "file")[:MAX_UPLOAD_NAME_LENGTH]


async def _read_capped(file: UploadFile, limit: int) -> bytes:
    chunks = []
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise UploadTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/upload")
async def upload_file(request: Request, file: Optional[UploadFile] = File(default=None)):
    """Store an uploaded asset (map or token image) and return its public URL."""
    if file is None:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=nack(ErrorCode.NO_FILE))

    settings: Settings = request.app.state.settings
    try:
        data = await _read_capped(file, settings.max_upload_bytes)
        stored_name = f"{int(time.time() * 1000)}_{sanitize_filename(file.filename)}"
        target = Path(settings.upload_dir) / stored_name
        await run_in_threadpool(target.write_bytes, data)
    except UploadTooLarge:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content=nack(ErrorCode.FILE_TOO_LARGE),
        )
    except Exception:
        logger.exception("Upload error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=nack(ErrorCode.UPLOAD_FAILED),
        )

    base_url = str(request.base_url).rstrip("/")
    logger.info("Stored upload %s (%d bytes)", stored_name, len(data))
    return {
        "ok": True,
        "url": f"{base_url}/uploads/{stored_name}",
        "name": file.filename,
        "size": len(data),
    }
