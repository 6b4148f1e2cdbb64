from __future__ import annotations

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from app.config import settings
from app.services import logger as log_service
from app.services.media_analyzer import MediaFile, analyze_media

router = APIRouter(prefix="/api", tags=["analyze"])

UPLOAD_CHUNK_BYTES = 1024 * 1024


async def read_upload(upload: UploadFile, max_bytes: int) -> bytes | None:
    """Contents of `upload`, or None as soon as it is known to exceed `max_bytes`."""
    if upload.size is not None and upload.size > max_bytes:
        return None
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return b"".join(chunks)
        total += len(chunk)
        if total > max_bytes:
            return None
        chunks.append(chunk)


@router.post("/analyze")
async def analyze(
    media: list[UploadFile] = File(default=[]),
    description: str = Form(default=""),
):
    """Classify uploaded photos, video or audio of a repair problem."""
    if not media:
        raise HTTPException(status_code=400, detail="No media files provided")
    if len(media) > settings.analyze_max_files:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.analyze_max_files} media files are accepted",
        )

    max_bytes = settings.analyze_max_file_mb * 1024 * 1024
    files: list[MediaFile] = []
    for upload in media:
        data = await read_upload(upload, max_bytes)
        if data is None:
            raise HTTPException(
                status_code=413,
                detail=f"{upload.filename} exceeds {settings.analyze_max_file_mb} MB",
            )
        files.append(
            MediaFile(
                filename=upload.filename or "upload",
                content_type=upload.content_type or "",
                data=data,
            )
        )

    try:
        return await analyze_media(files, description)
    except Exception as exc:
        log_service.log_event(
            event_type="analyze_error",
            message="Failed to analyze media",
            error=str(exc),
            files=len(files),
        )
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to analyze media", "message": str(exc)},
        ) from exc
