"""Photo publication state and batch operations.

Only ``pending`` photos move, to ``published`` (approve) or ``rejected``
(reject). Each move is a conditional update on ``status = 'pending'`` so two
concurrent approvals of one photo have exactly one winner. Events go out
after the commit.
"""
import asyncio
import logging
from enum import Enum

from app.models.photo import Photo
from app.services.object_store import ObjectStore
from app.services.persistence import PersistenceGateway, PhotoChanges
from app.services.realtime import (
    PHOTO_DELETED,
    PHOTO_PUBLISHED,
    Publisher,
    photo_payload,
    safe_publish,
    session_channel,
)
from app.utils.exceptions import PersistenceError, ValidationError

logger = logging.getLogger(__name__)


class BatchAction(str, Enum):
    ADD_TAGS = "add_tags"
    REMOVE_TAGS = "remove_tags"
    SET_TAGS = "set_tags"
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"


TAG_ACTIONS = (BatchAction.ADD_TAGS, BatchAction.REMOVE_TAGS, BatchAction.SET_TAGS)
STATUS_TARGETS = {BatchAction.APPROVE: "published", BatchAction.REJECT: "rejected"}


def dedupe(values) -> list[str]:
    return list(dict.fromkeys(values or ()))


def retag(current: list[str], action: BatchAction, tags: list[str]) -> list[str]:
    if action == BatchAction.ADD_TAGS:
        return dedupe([*(current or []), *tags])
    if action == BatchAction.REMOVE_TAGS:
        drop = set(tags)
        return [tag for tag in dedupe(current) if tag not in drop]
    return dedupe(tags)


class ModerationWorkflow:
    def __init__(self, gateway: PersistenceGateway, object_store: ObjectStore, publisher: Publisher):
        self.gateway = gateway
        self.object_store = object_store
        self.publisher = publisher

    async def transition(
        self,
        session_id: str,
        photo_ids: list[str],
        action: BatchAction | str,
        tags: list[str] | None = None,
    ) -> int:
        action = BatchAction(action)
        ids = dedupe(photo_ids)

        if action in STATUS_TARGETS:
            count = len(await self._move(session_id, ids, action))
        elif action == BatchAction.DELETE:
            count = len(await self._delete(session_id, ids))
        else:
            if tags is None:
                raise ValidationError(f"Action {action.value} requires tags")
            count = await self._retag(session_id, ids, action, dedupe(tags))

        logger.info("Batch %s on session %s: %d of %d photos affected", action.value, session_id, count, len(ids))
        return count

    async def update_photo(self, photo: Photo, tags: list[str] | None = None, status: str | None = None) -> Photo:
        if tags is None and status is None:
            raise ValidationError("No fields to update")
        if status is not None and status not in STATUS_TARGETS.values():
            raise ValidationError(f"Cannot set status to {status}")

        published = False
        try:
            if status is not None and status != photo.status:
                moved = await self.gateway.apply_photo_changes(
                    photo.session_id, photo.id, PhotoChanges(status=status), expected_status="pending"
                )
                if not moved:
                    raise ValidationError(f"Cannot move photo from {photo.status} to {status}")
                published = status == "published"
            if tags is not None:
                await self.gateway.apply_photo_changes(photo.session_id, photo.id, PhotoChanges(tags=dedupe(tags)))
            await self.gateway.commit()
        except (ValidationError, PersistenceError):
            await self.gateway.rollback()
            raise

        await self.gateway.refresh(photo)
        if published:
            safe_publish(self.publisher, session_channel(photo.session_id), PHOTO_PUBLISHED, photo_payload(photo))
        return photo

    async def delete_photo(self, photo: Photo) -> None:
        await self._delete(photo.session_id, [photo.id])

    async def _move(self, session_id: str, ids: list[str], action: BatchAction) -> list[str]:
        target = STATUS_TARGETS[action]
        moved = []
        try:
            for photo_id in ids:
                if await self.gateway.apply_photo_changes(
                    session_id, photo_id, PhotoChanges(status=target), expected_status="pending"
                ):
                    moved.append(photo_id)
            await self.gateway.commit()
        except PersistenceError:
            await self.gateway.rollback()
            raise

        if action == BatchAction.APPROVE and moved:
            channel = session_channel(session_id)
            for photo in await self.gateway.get_photos(session_id, moved):
                safe_publish(self.publisher, channel, PHOTO_PUBLISHED, photo_payload(photo))
        return moved

    async def _delete(self, session_id: str, ids: list[str]) -> list[Photo]:
        photos = await self.gateway.get_photos(session_id, ids)
        if not photos:
            return []
        try:
            await self.gateway.delete_photos(session_id, [photo.id for photo in photos])
            await self.gateway.commit()
        except PersistenceError:
            await self.gateway.rollback()
            raise

        channel = session_channel(session_id)
        for photo in photos:
            await asyncio.to_thread(self._discard_variants, photo)
            safe_publish(self.publisher, channel, PHOTO_DELETED, {"id": photo.id})
        return photos

    async def _retag(self, session_id: str, ids: list[str], action: BatchAction, tags: list[str]) -> int:
        count = 0
        try:
            for photo in await self.gateway.get_photos(session_id, ids):
                count += await self.gateway.apply_photo_changes(
                    session_id, photo.id, PhotoChanges(tags=retag(photo.tags, action, tags))
                )
            await self.gateway.commit()
        except PersistenceError:
            await self.gateway.rollback()
            raise
        return count

    def _discard_variants(self, photo: Photo) -> None:
        for url in (photo.variant_urls or {}).values():
            path = self.object_store.path_for_url(url)
            if path:
                self.object_store.delete(path)
