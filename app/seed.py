import uuid

import bcrypt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


def _user_id(name: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, f"user-{name}"))


SEED_USERS = [
    {"id": _user_id("photographer"), "username": "photographer", "password": "photographer123", "role": "photographer"},
    {"id": _user_id("second-photographer"), "username": "assistant", "password": "assistant123", "role": "photographer"},
    {"id": _user_id("admin"), "username": "admin", "password": "admin123", "role": "admin"},
    {"id": _user_id("viewer"), "username": "viewer", "password": "viewer123", "role": "viewer"},
]

SEED_PHOTOGRAPHER_ID = SEED_USERS[0]["id"]
SEED_OTHER_PHOTOGRAPHER_ID = SEED_USERS[1]["id"]
SEED_ADMIN_ID = SEED_USERS[2]["id"]
SEED_VIEWER_ID = SEED_USERS[3]["id"]


async def seed_data(session: AsyncSession) -> None:
    result = await session.execute(select(User).limit(1))
    if result.scalars().first() is not None:
        return

    for u in SEED_USERS:
        password_hash = bcrypt.hashpw(u["password"].encode(), bcrypt.gensalt()).decode()
        session.add(User(id=u["id"], username=u["username"], password_hash=password_hash, role=u["role"]))

    await session.commit()
