from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel

from .models import MessageType, User


class WireModel(BaseModel):
    # JSON on the wire is camelCase (roomId, senderId, ...).
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserIdentity(WireModel):
    id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None


class UserOut(WireModel):
    id: str
    username: str | None
    display_name: str | None
    email: EmailStr | None
    avatar_url: str | None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            email=user.email,
            avatar_url=user.avatar_url or user.image,
            created_at=user.created_at,
        )


class MessageOut(WireModel):
    id: str
    room_id: str
    sender_id: str
    sender_name: str
    sender_avatar_url: str | None
    type: MessageType
    content: str
    created_at: datetime


class MessageCreate(WireModel):
    room_id: str | None = None
    content: str | None = None
    type: MessageType | None = None


class MessageList(WireModel):
    messages: list[MessageOut]


class MessageEnvelope(WireModel):
    message: MessageOut


class RoomCreate(WireModel):
    project_id: str | None = None
    name: str | None = None


class WorkspaceRoomCreate(WireModel):
    name: str | None = None


class RoomVisibility(WireModel):
    visible: bool | None = None


class RoomOut(WireModel):
    id: str
    name: str
    project_id: str
    created_at: datetime


class RoomEnvelope(WireModel):
    room: RoomOut


class SidebarRoom(WireModel):
    id: str
    name: str
    member_role: str


class SidebarProject(WireModel):
    id: str
    name: str
    slug: str
    rooms: list[SidebarRoom]


class SidebarOut(WireModel):
    projects: list[SidebarProject]


class ErrorOut(BaseModel):
    error: str
    details: str | None = None
