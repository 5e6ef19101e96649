import asyncio
import os

import pytest
import pytest_asyncio

from app.database import async_session
from app.models.photo import Photo
from app.services.moderation import BatchAction, ModerationWorkflow, retag
from app.services.object_store import LocalObjectStore
from app.services.persistence import PersistenceGateway
from app.services.realtime import InMemoryPublisher, session_channel
from app.utils.exceptions import ValidationError
from helpers import insert_photo, insert_session


@pytest.fixture
def store(tmp_path):
    return LocalObjectStore(str(tmp_path / "uploads"))


@pytest.fixture
def publisher():
    return InMemoryPublisher()


@pytest_asyncio.fixture
async def gateway():
    async with async_session() as db:
        yield PersistenceGateway(db)


@pytest.fixture
def workflow(gateway, store, publisher):
    return ModerationWorkflow(gateway, store, publisher)


async def _statuses(ids):
    async with async_session() as db:
        return [(await db.get(Photo, pid)).status for pid in ids]


def test_retag_operations():
    assert retag(["a", "b"], BatchAction.ADD_TAGS, ["b", "c"]) == ["a", "b", "c"]
    assert retag(["a", "b", "c"], BatchAction.REMOVE_TAGS, ["b", "x"]) == ["a", "c"]
    assert retag(["a"], BatchAction.SET_TAGS, ["z", "z", "y"]) == ["z", "y"]


@pytest.mark.asyncio
async def test_approve_only_moves_pending_photos(workflow, publisher):
    sess = await insert_session(review_mode=True)
    pending_a = await insert_photo(sess.id, "pending", tags=["x"])
    published = await insert_photo(sess.id, "published")
    rejected = await insert_photo(sess.id, "rejected")
    pending_b = await insert_photo(sess.id, "pending")
    other_sess = await insert_session()
    foreign = await insert_photo(other_sess.id, "pending")

    ids = [pending_a.id, published.id, rejected.id, pending_b.id, foreign.id, "missing-id"]
    async with publisher.subscribe(session_channel(sess.id)) as subscription:
        count = await workflow.transition(sess.id, ids, "approve")
        events = subscription.drain()

    assert count == 2
    assert await _statuses([pending_a.id, published.id, rejected.id, pending_b.id, foreign.id]) == [
        "published", "published", "rejected", "published", "pending",
    ]
    assert [e["event"] for e in events] == ["photo_published", "photo_published"]
    assert [e["data"]["id"] for e in events] == [pending_a.id, pending_b.id]
    assert events[0]["data"]["tags"] == ["x"]
    assert events[0]["data"]["thumbnailUrl"] == pending_a.variant_urls["thumbnail"]


@pytest.mark.asyncio
async def test_second_approval_is_a_no_op(workflow, publisher):
    sess = await insert_session()
    photo = await insert_photo(sess.id, "pending")

    assert await workflow.transition(sess.id, [photo.id], BatchAction.APPROVE) == 1
    async with publisher.subscribe(session_channel(sess.id)) as subscription:
        assert await workflow.transition(sess.id, [photo.id], BatchAction.APPROVE) == 0
        assert subscription.drain() == []


@pytest.mark.asyncio
async def test_concurrent_approvals_have_one_winner(store, publisher):
    sess = await insert_session()
    photo = await insert_photo(sess.id, "pending")

    async def approve():
        async with async_session() as db:
            return await ModerationWorkflow(PersistenceGateway(db), store, publisher).transition(
                sess.id, [photo.id], "approve"
            )

    results = await asyncio.gather(approve(), approve())
    assert sorted(results) == [0, 1]


@pytest.mark.asyncio
async def test_reject_publishes_nothing(workflow, publisher):
    sess = await insert_session()
    photo = await insert_photo(sess.id, "pending")

    async with publisher.subscribe(session_channel(sess.id)) as subscription:
        assert await workflow.transition(sess.id, [photo.id, photo.id], "reject") == 1
        assert subscription.drain() == []
    assert await _statuses([photo.id]) == ["rejected"]


@pytest.mark.asyncio
async def test_delete_removes_rows_variants_and_announces(workflow, store, publisher):
    sess = await insert_session()
    photos = []
    for status in ("published", "rejected"):
        placeholder = await insert_photo(sess.id, status)
        urls = {
            name: store.put(b"data", f"sessions/{sess.id}/{name}/{placeholder.id}.jpg")
            for name in ("original", "medium", "thumbnail", "webp")
        }
        async with async_session() as db:
            row = await db.get(Photo, placeholder.id)
            row.variant_urls = urls
            await db.commit()
        photos.append((placeholder.id, urls))

    async with publisher.subscribe(session_channel(sess.id)) as subscription:
        count = await workflow.transition(sess.id, [pid for pid, _ in photos] + ["missing-id"], "delete")
        events = subscription.drain()

    assert count == 2
    assert events == [{"event": "photo_deleted", "data": {"id": pid}} for pid, _ in photos]
    for pid, urls in photos:
        for url in urls.values():
            assert not os.path.exists(store.local_file(store.path_for_url(url)))
        async with async_session() as db:
            assert await db.get(Photo, pid) is None


@pytest.mark.asyncio
async def test_tag_actions_ignore_status_and_publish_nothing(workflow, publisher):
    sess = await insert_session()
    a = await insert_photo(sess.id, "published", tags=["a"])
    b = await insert_photo(sess.id, "rejected", tags=["b", "shared"])

    async with publisher.subscribe(session_channel(sess.id)) as subscription:
        assert await workflow.transition(sess.id, [a.id, b.id], "add_tags", ["shared"]) == 2
        assert await workflow.transition(sess.id, [b.id], "remove_tags", ["b"]) == 1
        assert subscription.drain() == []

    async with async_session() as db:
        assert (await db.get(Photo, a.id)).tags == ["a", "shared"]
        assert (await db.get(Photo, b.id)).tags == ["shared"]

    assert await workflow.transition(sess.id, [a.id], "set_tags", ["final"]) == 1
    async with async_session() as db:
        assert (await db.get(Photo, a.id)).tags == ["final"]


@pytest.mark.asyncio
async def test_tag_action_requires_tags(workflow):
    sess = await insert_session()
    with pytest.raises(ValidationError):
        await workflow.transition(sess.id, ["any"], "add_tags")


@pytest.mark.asyncio
async def test_update_photo_publishes_on_approval(workflow, gateway, publisher):
    sess = await insert_session()
    photo = await gateway.get_photo((await insert_photo(sess.id, "pending")).id)

    async with publisher.subscribe(session_channel(sess.id)) as subscription:
        updated = await workflow.update_photo(photo, tags=["hero", "hero"], status="published")
        events = subscription.drain()

    assert updated.status == "published"
    assert updated.tags == ["hero"]
    assert [e["event"] for e in events] == ["photo_published"]


@pytest.mark.asyncio
async def test_update_photo_cannot_leave_final_state(workflow, gateway):
    sess = await insert_session()
    photo = await gateway.get_photo((await insert_photo(sess.id, "rejected")).id)

    with pytest.raises(ValidationError):
        await workflow.update_photo(photo, status="published")
    with pytest.raises(ValidationError):
        await workflow.update_photo(photo, status="pending")
    assert await _statuses([photo.id]) == ["rejected"]
