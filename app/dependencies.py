import os

from fastapi import Depends, Header, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import async_session, get_db
from app.models.session import Session
from app.models.user import User
from app.services.access_control import AccessControlGate, Actor, ReasonCode
from app.services.ingestion import IngestionPipeline
from app.services.moderation import ModerationWorkflow
from app.services.object_store import get_object_store
from app.services.persistence import PersistenceGateway
from app.services.realtime import publisher
from app.utils.exceptions import AuthorizationError, NotFoundError


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")


def get_gateway(db: AsyncSession = Depends(get_db)) -> PersistenceGateway:
    return PersistenceGateway(db)


async def get_actor(
    request: Request,
    x_user_id: str | None = Header(default=None),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> Actor:
    ip = request.client.host if request.client else None
    agent = request.headers.get("user-agent", "")
    if not x_user_id:
        return Actor(ip=ip, user_agent=agent)
    user = await gateway.db.get(User, x_user_id)
    if user is None:
        raise AuthorizationError("Unknown user", ReasonCode.NOT_AUTHENTICATED.value)
    return Actor(user_id=user.id, role=user.role, ip=ip, user_agent=agent)


async def require_user(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_authenticated:
        raise AuthorizationError("Login required", ReasonCode.NOT_AUTHENTICATED.value)
    return actor


def get_access_code(
    x_access_code: str | None = Header(default=None),
    access_code: str | None = Query(default=None, alias="accessCode"),
) -> str | None:
    return x_access_code or access_code


def get_gate(gateway: PersistenceGateway = Depends(get_gateway)) -> AccessControlGate:
    return AccessControlGate(gateway)


def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline(
        session_factory=async_session,
        object_store=get_object_store(),
        publisher=publisher,
        temp_dir=os.path.join(settings.data_dir, "tmp"),
        webp_enabled=settings.webp_enabled,
        workers=settings.upload_workers,
    )


def get_workflow(gateway: PersistenceGateway = Depends(get_gateway)) -> ModerationWorkflow:
    return ModerationWorkflow(gateway, get_object_store(), publisher)


async def load_session(gateway: PersistenceGateway, session_id: str) -> Session:
    session = await gateway.get_session(session_id)
    if session is None:
        raise NotFoundError("Session not found", ReasonCode.SESSION_NOT_FOUND.value)
    return session
