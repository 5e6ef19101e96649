import logging
import os
from pathlib import Path
from typing import Literal

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse

from app.config import settings
from app.dependencies import (
    get_access_code,
    get_actor,
    get_gate,
    get_gateway,
    get_pipeline,
    get_workflow,
    load_session,
    require_user,
)
from app.models.photo import Photo
from app.schemas.photo import BatchRequest, PhotoResponse, PhotoUpdate
from app.services.access_control import AccessControlGate, Actor, Capability
from app.services.ingestion import IngestionPipeline, IngestOptions, RawUpload
from app.services.moderation import ModerationWorkflow
from app.services.object_store import get_object_store
from app.services.persistence import PersistenceGateway
from app.utils.exceptions import AppException, NotFoundError, ValidationError
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["photos"])


async def _load_photo(gateway: PersistenceGateway, photo_id: str) -> Photo:
    photo = await gateway.get_photo(photo_id)
    if photo is None:
        raise NotFoundError("Photo not found")
    return photo


def _validate_upload_fields(files: list[UploadFile], tags: list[str], watermark_text: str | None) -> None:
    if not files:
        raise ValidationError("No files uploaded")
    if len(files) > settings.max_files_per_upload:
        raise ValidationError(f"Too many files: at most {settings.max_files_per_upload} per upload")
    for tag in tags:
        if not 1 <= len(tag) <= 50:
            raise ValidationError("Tags must be between 1 and 50 characters")
    if watermark_text is not None and len(watermark_text) > 255:
        raise ValidationError("Watermark text cannot exceed 255 characters")


@router.post("/sessions/{session_id}/photos", status_code=201)
async def upload_photos(
    session_id: str,
    photos: list[UploadFile] = File(...),
    tags: list[str] = Form(default=[]),
    watermark_text: str | None = Form(default=None, alias="watermarkText"),
    auto_tag: bool = Form(default=False, alias="autoTag"),
    review_required: bool = Form(default=False, alias="reviewRequired"),
    actor: Actor = Depends(require_user),
    access_code: str | None = Depends(get_access_code),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    sess = await load_session(gateway, session_id)
    await gate.require(actor, sess, Capability.UPLOAD, access_code)
    _validate_upload_fields(photos, tags, watermark_text)

    # one byte past the limit is enough for the size check to reject the file
    uploads = [
        RawUpload(
            filename=f.filename or "upload",
            content_type=f.content_type or "",
            data=await f.read(sess.max_file_size + 1),
        )
        for f in photos
    ]
    options = IngestOptions(
        tags=tags,
        watermark_text=watermark_text or None,
        auto_tag=auto_tag,
        review_required=review_required,
    )
    result = await pipeline.ingest_batch(uploads, sess, actor, options)

    data = {
        "photos": [PhotoResponse.from_photo(p, privileged=True).model_dump() for p in result.photos],
        "errors": [e.as_dict() for e in result.errors],
    }
    if not result.photos:
        raise AppException("No files could be processed", status_code=422, data=data)

    logger.info(
        "Upload to session %s by %s: %d ok, %d failed",
        session_id, actor.user_id, len(result.photos), len(result.errors),
    )
    return success_response(data=data, message=f"Uploaded {len(result.photos)} photo(s)")


@router.get("/sessions/{session_id}/photos")
async def list_photos(
    session_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    status: Literal["pending", "published", "rejected"] | None = None,
    tags: str | None = None,
    sort: Literal["asc", "desc"] = "desc",
    actor: Actor = Depends(get_actor),
    access_code: str | None = Depends(get_access_code),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
):
    sess = await load_session(gateway, session_id)
    await gate.require(actor, sess, Capability.VIEW, access_code)

    privileged = actor.can_manage(sess)
    # everyone else only sees published photos
    effective_status = status if privileged else "published"
    tag_filter = [t.strip() for t in tags.split(",") if t.strip()] if tags else None

    result = await gateway.list_photos(
        session_id, status=effective_status, tags=tag_filter, sort=sort, page=page, limit=limit
    )
    return success_response(data={
        "photos": [PhotoResponse.from_photo(p, privileged).model_dump() for p in result.photos],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": result.total,
            "pages": -(-result.total // limit),
        },
        "availableTags": result.available_tags,
    })


@router.get("/photos/{photo_id}")
async def get_photo(
    photo_id: str,
    actor: Actor = Depends(get_actor),
    access_code: str | None = Depends(get_access_code),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
):
    photo = await _load_photo(gateway, photo_id)
    sess = await load_session(gateway, photo.session_id)
    await gate.require(actor, sess, Capability.VIEW, access_code)

    privileged = actor.can_manage(sess)
    if not privileged:
        if photo.status != "published":
            raise NotFoundError("Photo not found")
        await gateway.increment_counter(photo.id, "view_count")
        await gateway.refresh(photo)

    return success_response(data=PhotoResponse.from_photo(photo, privileged).model_dump())


@router.put("/photos/{photo_id}")
async def update_photo(
    photo_id: str,
    payload: PhotoUpdate,
    actor: Actor = Depends(get_actor),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
    workflow: ModerationWorkflow = Depends(get_workflow),
):
    photo = await _load_photo(gateway, photo_id)
    sess = await load_session(gateway, photo.session_id)
    await gate.require(actor, sess, Capability.MODERATE)

    photo = await workflow.update_photo(photo, tags=payload.tags, status=payload.status)
    logger.info("Photo %s updated by %s", photo_id, actor.user_id)
    return success_response(data=PhotoResponse.from_photo(photo, privileged=True).model_dump(), message="Photo updated")


@router.delete("/photos/{photo_id}")
async def delete_photo(
    photo_id: str,
    actor: Actor = Depends(get_actor),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
    workflow: ModerationWorkflow = Depends(get_workflow),
):
    photo = await _load_photo(gateway, photo_id)
    sess = await load_session(gateway, photo.session_id)
    await gate.require(actor, sess, Capability.MODERATE)

    await workflow.delete_photo(photo)
    logger.info("Photo %s deleted from session %s by %s", photo_id, sess.id, actor.user_id)
    return success_response(data={"id": photo_id}, message="Photo deleted")


@router.post("/sessions/{session_id}/photos/batch")
async def batch_photos(
    session_id: str,
    payload: BatchRequest,
    actor: Actor = Depends(get_actor),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
    workflow: ModerationWorkflow = Depends(get_workflow),
):
    sess = await load_session(gateway, session_id)
    await gate.require(actor, sess, Capability.MODERATE)

    count = await workflow.transition(session_id, payload.photo_ids, payload.action, payload.tags)
    return success_response(
        data={"updated_count": count},
        message=f"{payload.action.value}: {count} photo(s) affected",
    )


@router.get("/photos/{photo_id}/download")
async def download_photo(
    photo_id: str,
    size: Literal["original", "medium", "thumbnail", "webp"] = "original",
    actor: Actor = Depends(get_actor),
    access_code: str | None = Depends(get_access_code),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
):
    photo = await _load_photo(gateway, photo_id)
    sess = await load_session(gateway, photo.session_id)
    await gate.require(actor, sess, Capability.DOWNLOAD, access_code)

    privileged = actor.can_manage(sess)
    if not privileged and photo.status != "published":
        raise NotFoundError("Photo not found")

    urls = photo.variant_urls or {}
    variant = size
    if size == "original" and not privileged:
        variant = "medium"
    elif size == "webp" and not urls.get("webp"):
        variant = "medium"

    store = get_object_store()
    path = store.path_for_url(urls.get(variant, ""))
    file_path = store.local_file(path) if path else None
    if not file_path or not os.path.exists(file_path):
        raise NotFoundError("Requested size is not available")

    await gateway.increment_counter(photo.id, "download_count")

    download_name = f"{Path(photo.filename).stem}_{variant}{Path(file_path).suffix}"
    return FileResponse(file_path, media_type="application/octet-stream", filename=download_name)
