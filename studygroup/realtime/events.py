"""Socket.IO handlers. Importing this module registers them on ``sio``."""
from typing import Optional

import structlog
from jose import JWTError

from studygroup.core.errors import ServiceError
from studygroup.core.security import decode_access_token
from studygroup.database import AsyncSessionLocal
from studygroup.models import GroupMemberStatus, MessageType
from studygroup.realtime.sio import group_room, publish, sio
from studygroup.repositories import GroupMemberRepository, UserRepository
from studygroup.services.chat import ChatService, MessageDraft

logger = structlog.get_logger(__name__)


def _group_id(data) -> Optional[int]:
    try:
        return int((data or {}).get("group_id"))
    except (TypeError, ValueError):
        return None


@sio.event
async def connect(sid, environ, auth):
    token: Optional[str] = None
    if isinstance(auth, dict):
        token = auth.get("token")

    if not token:
        return False

    try:
        user_id = int(decode_access_token(token))
    except (JWTError, ValueError):
        return False

    async with AsyncSessionLocal() as db:
        user = await UserRepository(db).get(user_id)
        if not user:
            return False

    await sio.save_session(sid, {"user_id": user_id})
    logger.info("socket_connected", sid=sid, user_id=user_id)
    return True


@sio.event
async def disconnect(sid):
    logger.info("socket_disconnected", sid=sid)


@sio.event
async def subscribe(sid, data):
    session = await sio.get_session(sid)
    user_id = session.get("user_id")

    group_id = _group_id(data)
    if group_id is None:
        await sio.emit("error", {"message": "Missing group_id"}, to=sid)
        return

    async with AsyncSessionLocal() as db:
        member = await GroupMemberRepository(db).get(group_id, user_id)
    if member is None or member.status != GroupMemberStatus.ACTIVE:
        await sio.emit("error", {"message": "Not authorized for room"}, to=sid)
        return

    room = group_room(group_id)
    await sio.enter_room(sid, room)
    await sio.emit("subscribed", {"room": room}, to=sid)


@sio.event
async def unsubscribe(sid, data):
    group_id = _group_id(data)
    if group_id is None:
        await sio.emit("error", {"message": "Missing group_id"}, to=sid)
        return

    room = group_room(group_id)
    await sio.leave_room(sid, room)
    await sio.emit("unsubscribed", {"room": room}, to=sid)


@sio.event
async def send_message(sid, data):
    # the sender is whoever authenticated this socket, never the payload
    session = await sio.get_session(sid)
    user_id = session.get("user_id")
    data = data or {}

    group_id = _group_id(data)
    if group_id is None:
        await sio.emit("error", {"message": "Missing group_id"}, to=sid)
        return

    try:
        draft = MessageDraft(
            content=data.get("content"),
            type=MessageType(data.get("type") or MessageType.TEXT),
            file_url=data.get("file_url"),
            file_name=data.get("file_name"),
            file_type=data.get("file_type"),
            file_size=data.get("file_size"),
        )
        async with AsyncSessionLocal() as db:
            await ChatService(db, publish).send_message(user_id, group_id, draft)
    except ServiceError as e:
        logger.warning("socket_send_rejected", sid=sid, user_id=user_id, group_id=group_id, error=e.message)
        await sio.emit("error", {"message": e.message}, to=sid)
    except ValueError:
        await sio.emit("error", {"message": "Invalid message type"}, to=sid)
    except Exception:
        logger.exception("socket_send_failed", sid=sid, user_id=user_id, group_id=group_id)
        await sio.emit("error", {"message": "Failed to send message"}, to=sid)
