import asyncio
import logging

from fastapi import APIRouter, WebSocket

from app.database import async_session
from app.models.user import User
from app.services.access_control import AccessControlGate, Actor, Capability
from app.services.persistence import PersistenceGateway
from app.services.realtime import publisher, session_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

POLICY_VIOLATION = 1008


async def _forward(websocket: WebSocket, subscription) -> None:
    async for message in subscription:
        await websocket.send_json(message)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # clients only listen; anything they send is ignored
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/sessions/{session_id}")
async def session_events(websocket: WebSocket, session_id: str):
    code = websocket.headers.get("x-access-code") or websocket.query_params.get("accessCode")
    user_id = websocket.headers.get("x-user-id")
    ip = websocket.client.host if websocket.client else None

    async with async_session() as db:
        gateway = PersistenceGateway(db)
        sess = await gateway.get_session(session_id)
        if sess is None:
            await websocket.close(code=POLICY_VIOLATION, reason="SESSION_NOT_FOUND")
            return
        user = await gateway.db.get(User, user_id) if user_id else None
        actor = Actor(
            user_id=user.id if user else None,
            role=user.role if user else "guest",
            ip=ip,
            user_agent=websocket.headers.get("user-agent", ""),
        )
        decision = await AccessControlGate(gateway).authorize(actor, sess, Capability.VIEW, code)

    if not decision.allowed:
        await websocket.close(code=POLICY_VIOLATION, reason=decision.reason.value)
        return

    await websocket.accept()
    channel = session_channel(session_id)
    async with publisher.subscribe(channel) as subscription:
        await websocket.send_json({"event": "session_joined", "data": {"sessionId": session_id}})
        forward = asyncio.create_task(_forward(websocket, subscription))
        disconnect = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            await asyncio.wait({forward, disconnect}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (forward, disconnect):
                task.cancel()
            await asyncio.gather(forward, disconnect, return_exceptions=True)
    logger.debug("Subscriber left %s", channel)
