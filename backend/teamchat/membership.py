from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from .models import Room, RoomMember


class MembershipGate:
    """Single authorization check for reading or writing a room's messages.

    A user is a member iff a RoomMember row exists and the room is not
    soft-deleted. ``hidden_at`` only affects sidebar listing.
    """

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def is_member(self, user_id: str, room_id: str) -> bool:
        if not user_id or not room_id:
            return False
        async with self.session_factory() as db:
            res = await db.execute(
                select(RoomMember.id)
                .join(Room, Room.id == RoomMember.room_id)
                .where(
                    RoomMember.room_id == room_id,
                    RoomMember.user_id == user_id,
                    Room.deleted_at.is_(None),
                )
            )
            return res.first() is not None
