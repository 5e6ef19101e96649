"""Turns raw uploads into stored photo variants plus a photo record.

Callers authorize the uploader for ``upload`` before handing files over. Each
file is an independent run: it stages the bytes in a temporary file, renders
and stores the variants, inserts the record and always removes the temporary
file. Failures stay with the file that caused them.
"""
import asyncio
import logging
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models.photo import Photo
from app.models.session import Session
from app.services.access_control import Actor
from app.services.image_processor import RenderedImage, WatermarkSpec, render_variants
from app.services.object_store import ObjectStore
from app.services.persistence import PersistenceGateway, utcnow
from app.services.realtime import NEW_PHOTO, Publisher, photo_payload, safe_publish, session_channel
from app.services.tagging import generate_tags
from app.utils.exceptions import AppException, PersistenceError, ProcessingError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_WATERMARK_POSITION = "bottom-right"
DEFAULT_WATERMARK_OPACITY = 0.7


@dataclass
class RawUpload:
    filename: str
    content_type: str
    data: bytes


@dataclass
class IngestOptions:
    tags: list[str] = field(default_factory=list)
    watermark_text: str | None = None
    auto_tag: bool = False
    review_required: bool = False


@dataclass
class FileError:
    filename: str
    error: str
    message: str

    def as_dict(self) -> dict:
        return {"filename": self.filename, "error": self.error, "message": self.message}


@dataclass
class BatchResult:
    photos: list[Photo] = field(default_factory=list)
    errors: list[FileError] = field(default_factory=list)


def merge_tags(*groups) -> list[str]:
    """Union of tag groups, exact-match dedup, first occurrence wins."""
    merged: dict[str, None] = {}
    for group in groups:
        for tag in group or ():
            merged.setdefault(tag, None)
    return list(merged)


def initial_status(session: Session, options: IngestOptions) -> str:
    return "pending" if session.review_mode or options.review_required else "published"


def watermark_for(session: Session, options: IngestOptions) -> WatermarkSpec | None:
    text = options.watermark_text or session.watermark_text
    if not text:
        return None
    return WatermarkSpec(
        text=text,
        position=session.watermark_position or DEFAULT_WATERMARK_POSITION,
        opacity=session.watermark_opacity if session.watermark_opacity is not None else DEFAULT_WATERMARK_OPACITY,
    )


def validate_upload(upload: RawUpload, session: Session) -> None:
    extension = Path(upload.filename).suffix.lower().lstrip(".")
    allowed = {ext.lower().lstrip(".") for ext in session.allowed_extensions or ()}
    if extension not in allowed and not (upload.content_type or "").startswith("image/"):
        raise ValidationError(f"Unsupported file type: {extension or upload.content_type}")
    if not upload.data:
        raise ValidationError(f"File {upload.filename} is empty")
    if len(upload.data) > session.max_file_size:
        raise ValidationError(f"File {upload.filename} exceeds the {session.max_file_size} byte limit")


class IngestionPipeline:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        object_store: ObjectStore,
        publisher: Publisher,
        temp_dir: str,
        webp_enabled: bool = False,
        workers: int = 2,
    ):
        self.session_factory = session_factory
        self.object_store = object_store
        self.publisher = publisher
        self.temp_dir = temp_dir
        self.webp_enabled = webp_enabled
        self.workers = max(workers, 1)

    async def ingest(self, upload: RawUpload, session: Session, uploader: Actor, options: IngestOptions) -> Photo:
        photo = await self._process(upload, session, uploader, options)
        self._announce(photo)
        return photo

    async def ingest_batch(
        self,
        uploads: list[RawUpload],
        session: Session,
        uploader: Actor,
        options: IngestOptions,
    ) -> BatchResult:
        semaphore = asyncio.Semaphore(self.workers)

        async def run(upload: RawUpload) -> Photo | FileError:
            async with semaphore:
                try:
                    return await self._process(upload, session, uploader, options)
                except AppException as exc:
                    logger.warning("Upload of %s to session %s failed: %s", upload.filename, session.id, exc.message)
                    return FileError(upload.filename, type(exc).__name__, exc.message)
                except Exception:
                    logger.exception("Unexpected failure processing %s for session %s", upload.filename, session.id)
                    return FileError(upload.filename, ProcessingError.__name__, "Unexpected error while processing file")

        outcomes = await asyncio.gather(*(run(upload) for upload in uploads))

        result = BatchResult()
        for outcome in outcomes:
            if isinstance(outcome, FileError):
                result.errors.append(outcome)
            else:
                result.photos.append(outcome)

        # submission order, and only once every record in the batch is committed
        for photo in result.photos:
            self._announce(photo)

        logger.info(
            "Ingested %d/%d files into session %s (uploader=%s)",
            len(result.photos), len(uploads), session.id, uploader.user_id,
        )
        return result

    def _announce(self, photo: Photo) -> None:
        if photo.status == "published":
            safe_publish(self.publisher, session_channel(photo.session_id), NEW_PHOTO, photo_payload(photo))

    async def _process(self, upload: RawUpload, session: Session, uploader: Actor, options: IngestOptions) -> Photo:
        validate_upload(upload, session)
        temp_path = self._temp_path(upload)
        try:
            await asyncio.to_thread(self._stage, upload, temp_path)
            rendered = await asyncio.to_thread(
                render_variants, temp_path, watermark_for(session, options), self.webp_enabled
            )

            auto_tags: list[str] = []
            if options.auto_tag or session.auto_tag_enabled:
                auto_tags = await generate_tags(rendered.variants["thumbnail"])

            photo_id = str(uuid.uuid4())
            urls = await asyncio.to_thread(self._store_variants, session.id, photo_id, rendered)

            now = utcnow()
            photo = Photo(
                id=photo_id,
                session_id=session.id,
                filename=upload.filename,
                variant_urls=urls,
                file_size=len(rendered.variants["original"]),
                tags=merge_tags(options.tags, auto_tags),
                status=initial_status(session, options),
                view_count=0,
                download_count=0,
                photo_metadata={
                    "uploader_id": uploader.user_id,
                    "original_filename": upload.filename,
                    "mime_type": upload.content_type,
                    "uploaded_at": now,
                    "width": rendered.width,
                    "height": rendered.height,
                },
                created_at=now,
                updated_at=now,
            )

            try:
                async with self.session_factory() as db:
                    await PersistenceGateway(db).add_photo(photo)
            except PersistenceError:
                # the record never landed: the variants would be orphans
                await asyncio.to_thread(self._discard, urls)
                raise
            return photo
        finally:
            await asyncio.to_thread(self._unstage, temp_path)

    def _temp_path(self, upload: RawUpload) -> str:
        suffix = Path(upload.filename).suffix.lower()
        return os.path.join(self.temp_dir, f"{uuid.uuid4()}{suffix}")

    def _stage(self, upload: RawUpload, path: str) -> None:
        try:
            os.makedirs(self.temp_dir, exist_ok=True)
            with open(path, "wb") as f:
                f.write(upload.data)
        except OSError as exc:
            raise PersistenceError(f"Failed to stage upload {upload.filename}: {exc}") from exc

    @staticmethod
    def _unstage(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def _store_variants(self, session_id: str, photo_id: str, rendered: RenderedImage) -> dict[str, str]:
        urls: dict[str, str] = {}
        extensions = rendered.extensions
        try:
            for name, data in rendered.variants.items():
                path = f"sessions/{session_id}/{name}/{photo_id}.{extensions[name]}"
                urls[name] = self.object_store.put(data, path)
        except OSError as exc:
            self._discard(urls)
            raise PersistenceError(f"Failed to store image variants: {exc}") from exc
        return urls

    def _discard(self, urls: dict[str, str]) -> None:
        for url in urls.values():
            path = self.object_store.path_for_url(url)
            if path:
                self.object_store.delete(path)
