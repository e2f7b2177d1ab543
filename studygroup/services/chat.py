"""Chat message pipeline: classify, gate on membership, persist, fan out.

Messages reach the pipeline three ways:

* a plain send with a declared type (``TEXT`` by default); text that looks like
  a URL is stored as ``LINK``,
* a shared file, typed from its MIME type,
* an explicit link share, always ``LINK``.

The membership check and the insert run under the group's lock, so a message
never lands in a group that was left or deleted meanwhile. The message is
committed before it is published to the ``group:{id}`` room, and
a failed publish is logged without touching the stored message.
"""
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from studygroup.core.config import CHAT_FILE_MAX_BYTES
from studygroup.core.errors import GroupNotFoundError, NotAMemberError, ValidationError
from studygroup.models import ChatMessage, GroupMemberStatus, MessageType
from studygroup.realtime.sio import group_room
from studygroup.repositories import ChatMessageRepository, GroupMemberRepository, GroupRepository
from studygroup.schemas import ChatMessageOut
from studygroup.services.groups import GroupLocks, group_locks
from studygroup.services.media import MediaStore

logger = structlog.get_logger(__name__)

Publisher = Callable[[str, dict], Awaitable[None]]

FILE_CAPTION_PLACEHOLDER = "Shared a file"

URL_PATTERN = re.compile(r"^(https?://)?([\w-]+\.)+[\w-]+(/[\w\- ./?%&=]*)?$", re.IGNORECASE)

WORD_MIME_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
EXCEL_MIME_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
POWERPOINT_MIME_TYPES = {
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
}

NON_FILE_TYPES = (MessageType.TEXT, MessageType.LINK)


def is_link(content: Optional[str]) -> bool:
    if not content or not content.strip():
        return False
    text = content.strip()
    return (
        URL_PATTERN.fullmatch(text) is not None
        or text.startswith("http://")
        or text.startswith("https://")
        or text.startswith("www.")
    )


def message_type_for_mime(mime_type: Optional[str]) -> MessageType:
    if not mime_type:
        return MessageType.TEXT

    mime = mime_type.lower()
    if mime.startswith("image/"):
        return MessageType.IMAGE
    if mime == "application/pdf":
        return MessageType.PDF
    if "word" in mime or mime in WORD_MIME_TYPES:
        return MessageType.DOCUMENT
    if "excel" in mime or "spreadsheet" in mime or mime in EXCEL_MIME_TYPES:
        return MessageType.EXCEL
    if "powerpoint" in mime or "presentation" in mime or mime in POWERPOINT_MIME_TYPES:
        return MessageType.POWERPOINT
    return MessageType.TEXT


def resolve_message_type(declared: MessageType, content: Optional[str]) -> MessageType:
    if declared == MessageType.TEXT and is_link(content):
        return MessageType.LINK
    return declared


@dataclass
class MessageDraft:
    content: Optional[str]
    type: MessageType = MessageType.TEXT
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None


@dataclass
class SharedFile:
    file_url: str
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    caption: Optional[str] = None


class ChatService:
    def __init__(self, db: AsyncSession, publish: Publisher, locks: GroupLocks = group_locks):
        self.db = db
        self.publish = publish
        self.locks = locks
        self.groups = GroupRepository(db)
        self.members = GroupMemberRepository(db)
        self.messages = ChatMessageRepository(db)

    async def _require_active_member(self, group_id: int, user_id: int, for_update: bool = False) -> None:
        if for_update:
            group = await self.groups.get_for_update(group_id)
        else:
            group = await self.groups.get(group_id)
        if not group:
            raise GroupNotFoundError()
        member = await self.members.get(group_id, user_id)
        if member is None or member.status != GroupMemberStatus.ACTIVE:
            raise NotAMemberError()

    async def _deliver(self, group_id: int, sender_id: int, build: Callable[[], ChatMessage]) -> ChatMessage:
        # Same lock as the group mutations: a leave, removal or delete cannot
        # land between the membership check and the insert.
        async with self.locks.get(group_id):
            try:
                await self._require_active_member(group_id, sender_id, for_update=True)
                message = build()
                await self.messages.add(message)
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        payload = ChatMessageOut.model_validate(message).model_dump(mode="json")
        try:
            await self.publish(group_room(group_id), payload)
        except Exception:
            logger.exception("chat_broadcast_failed", group_id=group_id, message_id=message.id)

        logger.info(
            "chat_message_sent",
            group_id=group_id,
            sender_id=sender_id,
            message_id=message.id,
            type=message.type.value,
        )
        return message

    async def send_message(self, sender_id: int, group_id: int, draft: MessageDraft) -> ChatMessage:
        def build() -> ChatMessage:
            message_type = resolve_message_type(draft.type, draft.content)
            if message_type in NON_FILE_TYPES and not (draft.content and draft.content.strip()):
                raise ValidationError("Message content is required")

            message = ChatMessage(
                group_id=group_id,
                sender_id=sender_id,
                content=draft.content,
                type=message_type,
            )
            if message_type not in NON_FILE_TYPES:
                message.file_url = draft.file_url
                message.file_name = draft.file_name
                message.file_type = draft.file_type
                message.file_size = draft.file_size
            return message

        return await self._deliver(group_id, sender_id, build)

    async def send_file(self, sender_id: int, group_id: int, shared: SharedFile) -> ChatMessage:
        def build() -> ChatMessage:
            caption = shared.caption if shared.caption and shared.caption.strip() else FILE_CAPTION_PLACEHOLDER
            return ChatMessage(
                group_id=group_id,
                sender_id=sender_id,
                content=caption,
                type=message_type_for_mime(shared.file_type),
                file_url=shared.file_url,
                file_name=shared.file_name,
                file_type=shared.file_type,
                file_size=shared.file_size,
            )

        return await self._deliver(group_id, sender_id, build)

    async def share_link(self, sender_id: int, group_id: int, url: str, title: Optional[str] = None) -> ChatMessage:
        def build() -> ChatMessage:
            if not url or not url.strip():
                raise ValidationError("Link URL is required")
            message = ChatMessage(
                group_id=group_id,
                sender_id=sender_id,
                content=url.strip(),
                type=MessageType.LINK,
            )
            # the title rides in file_name for display
            if title and title.strip():
                message.file_name = title.strip()
            return message

        return await self._deliver(group_id, sender_id, build)

    async def history(self, user_id: int, group_id: int, page: int = 0, size: int = 50) -> Sequence[ChatMessage]:
        await self._require_active_member(group_id, user_id)
        return await self.messages.page_for_group(group_id, page, size)

    async def upload_attachment(
        self,
        user_id: int,
        group_id: int,
        media: MediaStore,
        data: bytes,
        filename: Optional[str],
        content_type: Optional[str],
    ) -> str:
        """Store a chat attachment and return its URL; no message is created."""
        await self._require_active_member(group_id, user_id)
        if not data:
            raise ValidationError("File is empty")
        if len(data) > CHAT_FILE_MAX_BYTES:
            raise ValidationError("File size must be less than 10MB")

        url = await media.store(data, content_type or "application/octet-stream", filename, folder="study-group-chat")
        logger.info("chat_file_uploaded", group_id=group_id, user_id=user_id, size=len(data))
        return url
