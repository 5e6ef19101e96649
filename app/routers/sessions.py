import logging
import secrets
import uuid as uuid_mod
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies import get_access_code, get_actor, get_gate, get_gateway, load_session, require_user
from app.models.session import Session
from app.schemas.session import OwnerSessionResponse, SessionCreate, SessionResponse
from app.services.access_control import AccessControlGate, Actor, Capability
from app.services.persistence import PersistenceGateway
from app.utils.exceptions import ValidationError
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _session_data(sess: Session, actor: Actor) -> dict:
    schema = OwnerSessionResponse if actor.can_manage(sess) else SessionResponse
    return schema.model_validate(sess).model_dump()


@router.post("", status_code=201)
async def create_session(
    payload: SessionCreate,
    actor: Actor = Depends(require_user),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    session_id = payload.id or str(uuid_mod.uuid4())

    # Check if session already exists (idempotent create)
    existing = await gateway.get_session(session_id)
    if existing:
        if not actor.can_manage(existing):
            raise ValidationError("Session id already in use")
        return success_response(data=_session_data(existing, actor))

    access_code = payload.access_code
    if payload.visibility == "private" and not access_code:
        access_code = secrets.token_hex(3).upper()

    extensions = payload.allowed_extensions or settings.default_allowed_extensions
    watermark = payload.watermark

    new_session = Session(
        id=session_id,
        owner_id=actor.user_id,
        title=payload.title,
        visibility=payload.visibility,
        access_code=access_code if payload.visibility == "private" else None,
        status=payload.status,
        review_mode=payload.review_mode,
        auto_tag_enabled=payload.auto_tag_enabled,
        watermark_text=(watermark.text or settings.default_watermark_text) if watermark else None,
        watermark_position=watermark.position if watermark else None,
        watermark_opacity=watermark.opacity if watermark else None,
        max_file_size=payload.max_file_size or settings.default_max_file_size,
        allowed_extensions=[ext.lower().lstrip(".") for ext in extensions],
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    gateway.db.add(new_session)
    await gateway.commit()
    logger.info("Session %s created by %s (%s)", session_id, actor.user_id, payload.visibility)

    return success_response(data=_session_data(new_session, actor))


@router.get("/{session_id}")
async def get_session(
    session_id: str,
    actor: Actor = Depends(get_actor),
    access_code: str | None = Depends(get_access_code),
    gateway: PersistenceGateway = Depends(get_gateway),
    gate: AccessControlGate = Depends(get_gate),
):
    sess = await load_session(gateway, session_id)
    await gate.require(actor, sess, Capability.VIEW, access_code)
    return success_response(data=_session_data(sess, actor))
