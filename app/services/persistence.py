"""Relational store access for sessions, photos and access-log entries."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.access_log import AccessLogEntry
from app.models.photo import Photo
from app.models.session import Session
from app.utils.exceptions import PersistenceError

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ("view_count", "download_count")


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PhotoChanges:
    """Structured update for a photo row: ``None`` means leave the field alone."""

    tags: list[str] | None = None
    status: str | None = None

    def as_values(self) -> dict:
        values = {name: value for name, value in (("tags", self.tags), ("status", self.status)) if value is not None}
        if values:
            values["updated_at"] = utcnow()
        return values


@dataclass
class PhotoPage:
    photos: list[Photo]
    total: int
    available_tags: list[str]


class PersistenceGateway:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_session(self, session_id: str) -> Session | None:
        return await self.db.get(Session, session_id)

    async def get_photo(self, photo_id: str) -> Photo | None:
        return await self.db.get(Photo, photo_id)

    async def get_photos(self, session_id: str, photo_ids: list[str]) -> list[Photo]:
        if not photo_ids:
            return []
        result = await self.db.execute(
            select(Photo)
            .where(Photo.session_id == session_id, Photo.id.in_(photo_ids))
            .execution_options(populate_existing=True)
        )
        by_id = {p.id: p for p in result.scalars().all()}
        return [by_id[pid] for pid in photo_ids if pid in by_id]

    async def list_photos(
        self,
        session_id: str,
        status: str | None = None,
        tags: list[str] | None = None,
        sort: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> PhotoPage:
        query = select(Photo).where(Photo.session_id == session_id)
        if status:
            query = query.where(Photo.status == status)
        order = Photo.created_at.asc() if sort == "asc" else Photo.created_at.desc()
        result = await self.db.execute(query.order_by(order, Photo.id))
        photos = list(result.scalars().all())

        # tags are a JSON column: filter in Python, any-match
        if tags:
            wanted = set(tags)
            photos = [p for p in photos if wanted.intersection(p.tags or [])]

        offset = (page - 1) * limit
        return PhotoPage(
            photos=photos[offset:offset + limit],
            total=len(photos),
            available_tags=await self.available_tags(session_id),
        )

    async def available_tags(self, session_id: str) -> list[str]:
        result = await self.db.execute(
            select(Photo.tags).where(Photo.session_id == session_id, Photo.status == "published")
        )
        found: set[str] = set()
        for row_tags in result.scalars().all():
            found.update(row_tags or [])
        return sorted(found)

    async def add_photo(self, photo: Photo) -> Photo:
        self.db.add(photo)
        await self.commit()
        return photo

    async def record_access(
        self,
        session_id: str,
        actor_ip: str | None,
        actor_agent: str | None,
        access_code_used: str | None,
        granted: bool,
        client_type: str,
    ) -> AccessLogEntry:
        entry = AccessLogEntry(
            id=str(uuid.uuid4()),
            session_id=session_id,
            actor_ip=actor_ip,
            actor_agent=actor_agent,
            access_code_used=access_code_used,
            granted=granted,
            client_type=client_type,
            created_at=utcnow(),
        )
        self.db.add(entry)
        await self.commit()
        return entry

    async def apply_photo_changes(
        self,
        session_id: str,
        photo_id: str,
        changes: PhotoChanges,
        expected_status: str | None = None,
    ) -> int:
        """Update one photo without committing; returns the affected-row count.

        With ``expected_status`` the row only changes while it still holds that
        status, so concurrent transitions of the same row have a single winner.
        """
        values = changes.as_values()
        if not values:
            return 0
        stmt = update(Photo).where(Photo.id == photo_id, Photo.session_id == session_id)
        if expected_status is not None:
            stmt = stmt.where(Photo.status == expected_status)
        try:
            result = await self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to update photo") from exc
        return result.rowcount

    async def increment_counter(self, photo_id: str, field: str) -> None:
        if field not in COUNTER_FIELDS:
            raise ValueError(f"unknown counter {field!r}")
        column = getattr(Photo, field)
        await self.db.execute(
            update(Photo)
            .where(Photo.id == photo_id)
            .values({field: column + 1})
            .execution_options(synchronize_session=False)
        )
        await self.commit()

    async def delete_photos(self, session_id: str, photo_ids: list[str]) -> int:
        """Delete rows without committing; returns the affected-row count."""
        if not photo_ids:
            return 0
        try:
            result = await self.db.execute(
                delete(Photo)
                .where(Photo.session_id == session_id, Photo.id.in_(photo_ids))
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to delete photos") from exc
        return result.rowcount

    async def refresh(self, instance) -> None:
        await self.db.refresh(instance)

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Commit failed")
            raise PersistenceError("Failed to write to the database") from exc

    async def rollback(self) -> None:
        await self.db.rollback()
