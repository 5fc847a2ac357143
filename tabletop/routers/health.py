from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(prefix="", tags=["health"])


@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/", response_class=PlainTextResponse)
async def root():
    return "OK"
