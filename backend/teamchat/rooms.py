from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import Forbidden, NotFound
from .models import MemberRole, Project, ProjectMember, Room, RoomMember, utcnow


async def _room_membership(db: AsyncSession, user_id: str, room_id: str) -> RoomMember | None:
    res = await db.execute(select(RoomMember).where(RoomMember.room_id == room_id, RoomMember.user_id == user_id))
    return res.scalar_one_or_none()


async def _project_membership(db: AsyncSession, user_id: str, project_id: str) -> ProjectMember | None:
    res = await db.execute(
        select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
    )
    return res.scalar_one_or_none()


async def create_room_for_project(db: AsyncSession, user_id: str, project_id: str, name: str) -> Room:
    res = await db.execute(
        select(ProjectMember)
        .join(Project, Project.id == ProjectMember.project_id)
        .where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
            Project.deleted_at.is_(None),
        )
    )
    membership = res.scalar_one_or_none()
    if not membership:
        raise Forbidden("User is not a project member")

    room = Room(project_id=project_id, name=name.strip())
    db.add(room)
    await db.flush()
    role = MemberRole.OWNER if membership.role == MemberRole.OWNER else MemberRole.MEMBER
    db.add(RoomMember(room_id=room.id, user_id=user_id, role=role))
    await db.commit()
    return room


async def get_room_for_user(db: AsyncSession, user_id: str, room_id: str) -> Room | None:
    """Return the room if visible to the user, un-hiding it from their sidebar."""
    res = await db.execute(
        select(Room)
        .join(Project, Project.id == Room.project_id)
        .join(RoomMember, RoomMember.room_id == Room.id)
        .where(
            Room.id == room_id,
            Room.deleted_at.is_(None),
            Project.deleted_at.is_(None),
            RoomMember.user_id == user_id,
        )
    )
    room = res.scalar_one_or_none()
    if not room:
        return None

    await db.execute(
        update(ProjectMember)
        .where(
            ProjectMember.project_id == room.project_id,
            ProjectMember.user_id == user_id,
            ProjectMember.hidden_at.is_not(None),
        )
        .values(hidden_at=None)
    )
    await db.execute(
        update(RoomMember)
        .where(RoomMember.room_id == room.id, RoomMember.user_id == user_id, RoomMember.hidden_at.is_not(None))
        .values(hidden_at=None)
    )
    await db.commit()
    return room


async def soft_delete_room(db: AsyncSession, user_id: str, room_id: str) -> None:
    room_membership = await _room_membership(db, user_id, room_id)
    if not room_membership:
        raise Forbidden("User is not a room member")

    room = await db.get(Room, room_id)
    if not room or room.deleted_at is not None:
        raise NotFound("Room not found")

    project_membership = await _project_membership(db, user_id, room.project_id)
    can_delete = room_membership.role == MemberRole.OWNER or (
        project_membership is not None and project_membership.role == MemberRole.OWNER
    )
    if not can_delete:
        raise Forbidden("Only room or project owners can delete a room")

    room.deleted_at = utcnow()
    await db.commit()


async def set_room_visibility(db: AsyncSession, user_id: str, room_id: str, visible: bool) -> None:
    membership = await _room_membership(db, user_id, room_id)
    if not membership:
        raise Forbidden("User is not a room member")
    membership.hidden_at = None if visible else utcnow()
    await db.commit()
