from typing import Literal

from pydantic import BaseModel, Field

from app.services.moderation import BatchAction


class PhotoResponse(BaseModel):
    id: str
    session_id: str
    filename: str
    thumbnail_url: str | None = None
    medium_url: str | None = None
    original_url: str | None = None
    webp_url: str | None = None
    file_size: int
    tags: list[str]
    status: str | None = None
    view_count: int
    download_count: int
    metadata: dict | None = None
    created_at: str
    updated_at: str

    @classmethod
    def from_photo(cls, photo, privileged: bool) -> "PhotoResponse":
        """Non-privileged viewers get the medium rendition in place of the original."""
        urls = photo.variant_urls or {}
        return cls(
            id=photo.id,
            session_id=photo.session_id,
            filename=photo.filename,
            thumbnail_url=urls.get("thumbnail"),
            medium_url=urls.get("medium"),
            original_url=urls.get("original") if privileged else urls.get("medium"),
            webp_url=urls.get("webp"),
            file_size=photo.file_size,
            tags=list(photo.tags or []),
            status=photo.status if privileged else None,
            view_count=photo.view_count,
            download_count=photo.download_count,
            metadata=photo.photo_metadata if privileged else None,
            created_at=photo.created_at,
            updated_at=photo.updated_at,
        )


class PhotoUpdate(BaseModel):
    tags: list[str] | None = None
    status: Literal["pending", "published", "rejected"] | None = None


class BatchRequest(BaseModel):
    action: BatchAction
    photo_ids: list[str] = Field(alias="photoIds", min_length=1)
    tags: list[str] | None = None

    model_config = {"populate_by_name": True}
