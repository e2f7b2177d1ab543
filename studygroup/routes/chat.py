from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.database import get_db
from studygroup.deps.auth import get_current_user
from studygroup.models import User
from studygroup.realtime.sio import publish
from studygroup.schemas import (
    ChatMessageCreate,
    ChatMessageOut,
    FileMessageCreate,
    ShareLinkCreate,
    UploadOut,
)
from studygroup.services.chat import ChatService, MessageDraft, SharedFile
from studygroup.services.media import MediaStore, get_media_store

router = APIRouter()


def get_chat_service(db: AsyncSession = Depends(get_db)) -> ChatService:
    return ChatService(db, publish)


@router.get("/{group_id}/messages", response_model=list[ChatMessageOut])
async def get_group_messages(
    group_id: int,
    page: int = Query(0, ge=0),
    size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.history(current_user.id, group_id, page=page, size=size)


@router.post("/{group_id}/messages", response_model=ChatMessageOut, status_code=201)
async def create_group_message(
    group_id: int,
    message: ChatMessageCreate,
    current_user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.send_message(current_user.id, group_id, MessageDraft(**message.model_dump()))


@router.post("/{group_id}/upload", response_model=UploadOut)
async def upload_attachment(
    group_id: int,
    file: UploadFile = File(...),
    caption: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
    media: MediaStore = Depends(get_media_store),
):
    data = await file.read()
    url = await chat.upload_attachment(current_user.id, group_id, media, data, file.filename, file.content_type)
    return {
        "file_url": url,
        "file_name": file.filename,
        "file_type": file.content_type,
        "file_size": len(data),
        "caption": caption,
    }


@router.post("/{group_id}/upload-file", response_model=ChatMessageOut, status_code=201)
async def send_file_message(
    group_id: int,
    body: FileMessageCreate,
    current_user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.send_file(current_user.id, group_id, SharedFile(**body.model_dump()))


@router.post("/{group_id}/share-link", response_model=ChatMessageOut, status_code=201)
async def share_link(
    group_id: int,
    body: ShareLinkCreate,
    current_user: User = Depends(get_current_user),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.share_link(current_user.id, group_id, body.url, body.title)
