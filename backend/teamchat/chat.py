from .errors import Forbidden
from .membership import MembershipGate
from .models import MessageType
from .realtime import Broadcaster
from .schemas import MessageOut
from .store import MessageStore


class ChatApi:
    """Request/response chat operations: authorize, persist, then fan out."""

    def __init__(self, gate: MembershipGate, store: MessageStore, broadcaster: Broadcaster) -> None:
        self.gate = gate
        self.store = store
        self.broadcaster = broadcaster

    async def _require_member(self, user_id: str, room_id: str) -> None:
        if not await self.gate.is_member(user_id, room_id):
            raise Forbidden("User is not a room member")

    async def list_messages(self, user_id: str, room_id: str, limit: int | None = None) -> list[MessageOut]:
        await self._require_member(user_id, room_id)
        return await self.store.list_messages(room_id, limit)

    async def create_message(
        self,
        user_id: str,
        room_id: str,
        content: str,
        type: MessageType | None = None,
    ) -> MessageOut:
        await self._require_member(user_id, room_id)
        message = await self.store.create_message(room_id, user_id, content, type or MessageType.TEXT)
        # fire-and-forget: the response never waits on delivery
        self.broadcaster.publish(message)
        return message
