from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from .errors import ValidationError
from .models import Message, MessageType, User, new_id, utcnow
from .schemas import MessageOut

MAX_CONTENT_LENGTH = 5000
DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 200


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return min(max(limit, 1), MAX_LIST_LIMIT)


def sender_display_name(sender: User | None) -> str:
    if sender is None:
        return "Unknown"
    return sender.display_name or sender.username or sender.name or "Unknown"


def sender_avatar_url(sender: User | None) -> str | None:
    if sender is None:
        return None
    return sender.avatar_url or sender.image or None


def to_message_out(message: Message, sender: User | None) -> MessageOut:
    return MessageOut(
        id=message.id,
        room_id=message.room_id,
        sender_id=message.sender_id,
        sender_name=sender_display_name(sender),
        sender_avatar_url=sender_avatar_url(sender),
        type=message.type,
        content=message.content,
        created_at=message.created_at,
    )


class MessageStore:
    """Persists and lists room messages. Performs no authorization."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory
        # room_id -> last assigned created_at, keeps per-room ordering strict
        self._last_created: dict[str, datetime] = {}

    def _next_created_at(self, room_id: str) -> datetime:
        now = utcnow()
        last = self._last_created.get(room_id)
        if last is not None and now <= last:
            now = last + timedelta(microseconds=1)
        self._last_created[room_id] = now
        return now

    async def list_messages(self, room_id: str, limit: int | None = None) -> list[MessageOut]:
        async with self.session_factory() as db:
            res = await db.execute(
                select(Message)
                .where(Message.room_id == room_id)
                .order_by(Message.created_at.asc())
                .limit(clamp_limit(limit))
            )
            return [to_message_out(m, m.sender) for m in res.scalars().all()]

    async def create_message(
        self,
        room_id: str,
        sender_id: str,
        content: str,
        type: MessageType = MessageType.TEXT,
    ) -> MessageOut:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError("Message content exceeds maximum length")

        message = Message(
            id=new_id(),
            room_id=room_id,
            sender_id=sender_id,
            type=type or MessageType.TEXT,
            content=content,
            created_at=self._next_created_at(room_id),
        )
        async with self.session_factory() as db:
            db.add(message)
            await db.commit()
            # display fields are taken from the sender row as it is right now
            sender = await db.get(User, sender_id)
            return to_message_out(message, sender)
