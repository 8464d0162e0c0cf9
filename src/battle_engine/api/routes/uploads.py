"""Player photo uploads."""

import re
from typing import Annotated

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from pydantic import BaseModel

from battle_engine.api.deps import StorageDep
from battle_engine.domain.models import now_ms
from battle_engine.logging import get_logger

router = APIRouter(prefix="/uploads", tags=["Uploads"])
logger = get_logger(__name__)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


class UploadResponse(BaseModel):
    url: str
    file_name: str


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "-", value).strip("-") or "player"


@router.post(
    "",
    response_model=UploadResponse,
    summary="Upload player photo",
)
async def upload_photo(
    storage: StorageDep,
    file: Annotated[UploadFile, File(...)],
    player_id: Annotated[str, Form(...)],
) -> UploadResponse:
    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {MAX_UPLOAD_BYTES // (1024 * 1024)} MB",
        )

    extension = "jpg"
    if file.filename and "." in file.filename:
        extension = _safe_name(file.filename.rsplit(".", 1)[-1]).lower()
    file_name = f"{_safe_name(player_id)}-{now_ms()}.{extension}"

    stored = await storage.upload(
        data, f"profiles/{file_name}", file.content_type or "image/jpeg"
    )
    logger.info("photo_uploaded", player_id=player_id, size=len(data), url=stored.url[:100])
    return UploadResponse(url=stored.url, file_name=file_name)
