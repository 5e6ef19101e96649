"""Shared builders for the test suite."""
import io
import os
import uuid
from datetime import datetime, timezone

from PIL import Image

from app.config import settings
from app.database import async_session
from app.models.photo import Photo
from app.models.session import Session
from app.seed import SEED_PHOTOGRAPHER_ID

API = "/api/v1"


def make_jpeg(width: int = 640, height: int = 480, color=(200, 60, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG")
    return buf.getvalue()


def user_headers(user_id: str | None = SEED_PHOTOGRAPHER_ID, access_code: str | None = None) -> dict:
    headers = {}
    if user_id:
        headers["X-User-Id"] = user_id
    if access_code:
        headers["X-Access-Code"] = access_code
    return headers


def temp_files() -> list[str]:
    tmp = os.path.join(settings.data_dir, "tmp")
    return os.listdir(tmp) if os.path.isdir(tmp) else []


async def create_session(client, owner_id: str = SEED_PHOTOGRAPHER_ID, **fields) -> dict:
    body = {"title": "Test event", **fields}
    response = await client.post(f"{API}/sessions", json=body, headers=user_headers(owner_id))
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def upload(client, session_id: str, images: list[bytes], user_id=SEED_PHOTOGRAPHER_ID, access_code=None, **form):
    files = [("photos", (f"photo{i}.jpg", data, "image/jpeg")) for i, data in enumerate(images)]
    return await client.post(
        f"{API}/sessions/{session_id}/photos",
        files=files,
        data=form,
        headers=user_headers(user_id, access_code),
    )


async def insert_session(**fields) -> Session:
    """Insert a session row directly, bypassing the API."""
    values = {
        "id": str(uuid.uuid4()),
        "owner_id": SEED_PHOTOGRAPHER_ID,
        "title": "Direct session",
        "visibility": "public",
        "access_code": None,
        "status": "active",
        "review_mode": False,
        "auto_tag_enabled": False,
        "max_file_size": settings.default_max_file_size,
        "allowed_extensions": list(settings.default_allowed_extensions),
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    values.update(fields)
    sess = Session(**values)
    async with async_session() as db:
        db.add(sess)
        await db.commit()
    return sess


async def insert_photo(session_id: str, status: str = "pending", tags=None, variant_urls=None) -> Photo:
    now = datetime.now(timezone.utc).isoformat()
    photo_id = str(uuid.uuid4())
    photo = Photo(
        id=photo_id,
        session_id=session_id,
        filename=f"{photo_id}.jpg",
        variant_urls=variant_urls or {
            "original": f"/uploads/sessions/{session_id}/original/{photo_id}.jpg",
            "medium": f"/uploads/sessions/{session_id}/medium/{photo_id}.jpg",
            "thumbnail": f"/uploads/sessions/{session_id}/thumbnail/{photo_id}.jpg",
        },
        file_size=1234,
        tags=tags or [],
        status=status,
        view_count=0,
        download_count=0,
        photo_metadata={},
        created_at=now,
        updated_at=now,
    )
    async with async_session() as db:
        db.add(photo)
        await db.commit()
    return photo
