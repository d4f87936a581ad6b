"""Photo upload endpoints: enqueue, progress queries and a progress stream."""
import json
import logging
from typing import List

from fastapi import APIRouter, HTTPException, status, Depends, UploadFile, File, Form, Request
from fastapi.responses import StreamingResponse

from sitephotos.core.auth import TokenData, get_current_user
from sitephotos.core.config import settings
from sitephotos.schemas.upload import APIResponse, UploadBatchSnapshot, UploadSummary
from sitephotos.services.upload_models import SourceFile
from sitephotos.services.upload_registry import BatchRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def get_registry(request: Request) -> BatchRegistry:
    """The application-owned upload registry."""
    registry = getattr(request.app.state, "upload_registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Upload pipeline is not running"
        )
    return registry


def _owned_by(batches: List[UploadBatchSnapshot], user: TokenData) -> List[UploadBatchSnapshot]:
    return [b for b in batches if b.uploaded_by == user.user_id]


def _progress_payload(registry: BatchRegistry, user: TokenData) -> dict:
    batches = _owned_by(registry.active_batches(), user)
    return {
        "batches": [b.model_dump(mode="json") for b in batches],
        "summary": UploadSummary.from_batches(batches).model_dump(),
    }


@router.post("/uploads", response_model=APIResponse)
async def enqueue_uploads(
    site_id: str = Form(...),
    category: str = Form(...),
    files: List[UploadFile] = File(...),
    current_user: TokenData = Depends(get_current_user),
    registry: BatchRegistry = Depends(get_registry),
):
    """Queue site photos for background compression, upload and indexing."""
    if category not in settings.PHOTO_CATEGORIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown category '{category}'. Expected one of: {', '.join(settings.PHOTO_CATEGORIES)}"
        )

    try:
        sources = []
        for file in files:
            if file.size and file.size > settings.MAX_FILE_SIZE:
                raise HTTPException(status_code=400, detail=f"File {file.filename} exceeds max size")

            content = await file.read()
            if not content:
                raise HTTPException(status_code=400, detail=f"File {file.filename} is empty")

            sources.append(SourceFile(
                name=file.filename or "photo.jpg",
                data=content,
                content_type=file.content_type
            ))

        try:
            batch_id = registry.enqueue(sources, site_id, category, uploaded_by=current_user.user_id)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        logger.info(f"Queued {len(sources)} photos for site {site_id} ({category}) as batch {batch_id}")
        return APIResponse(
            success=True,
            message="Upload queued. Photos are processed in the background.",
            data={"batch_id": batch_id, "total": len(sources)}
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Enqueue failed: {e}")
        return APIResponse(
            success=False,
            message="Upload failed",
            error=str(e)
        )


@router.get("/uploads/batches", response_model=APIResponse)
async def list_active_batches(
    current_user: TokenData = Depends(get_current_user),
    registry: BatchRegistry = Depends(get_registry),
):
    """Batches still uploading plus those that finished within the grace window."""
    return APIResponse(
        success=True,
        message="Upload progress retrieved",
        data=_progress_payload(registry, current_user)
    )


@router.get("/uploads/batches/{batch_id}", response_model=APIResponse)
async def get_batch(
    batch_id: str,
    current_user: TokenData = Depends(get_current_user),
    registry: BatchRegistry = Depends(get_registry),
):
    """Progress of a single batch."""
    batch = registry.get_batch(batch_id)
    if batch is None or batch.uploaded_by != current_user.user_id:
        raise HTTPException(status_code=404, detail="Upload batch not found")

    return APIResponse(
        success=True,
        message="Upload batch retrieved",
        data={"batch": batch.model_dump(mode="json")}
    )


@router.get("/uploads/stream")
async def stream_upload_progress(
    current_user: TokenData = Depends(get_current_user),
    registry: BatchRegistry = Depends(get_registry),
):
    """Server-sent events carrying the caller's upload progress after every change."""
    async def generate_stream():
        async for _ in registry.changes(initial=True):
            yield f"data: {json.dumps(_progress_payload(registry, current_user))}\n\n"

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
    )
