import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import Forbidden, NotFound
from .models import MemberRole, Project, ProjectMember, Room, RoomMember, utcnow
from .rooms import create_room_for_project
from .schemas import SidebarProject, SidebarRoom

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "Getting Started"
DEFAULT_ROOMS = (("General", MemberRole.OWNER), ("Dev Sync", MemberRole.MEMBER))


async def ensure_default_workspace(db: AsyncSession, user_id: str) -> None:
    res = await db.execute(select(ProjectMember.id).where(ProjectMember.user_id == user_id).limit(1))
    if res.first() is not None:
        return

    project = Project(
        name=DEFAULT_PROJECT_NAME,
        slug=f"starter-{user_id}",
        description="Default project workspace",
        created_by_id=user_id,
    )
    db.add(project)
    await db.flush()
    db.add(ProjectMember(project_id=project.id, user_id=user_id, role=MemberRole.OWNER))
    for name, role in DEFAULT_ROOMS:
        room = Room(project_id=project.id, name=name)
        db.add(room)
        await db.flush()
        db.add(RoomMember(room_id=room.id, user_id=user_id, role=role))
    await db.commit()
    logger.info("Created default workspace for %s", user_id)


async def get_sidebar_projects(db: AsyncSession, user_id: str) -> list[SidebarProject]:
    """Projects and rooms the user belongs to, minus hidden and deleted ones."""
    await ensure_default_workspace(db, user_id)

    res = await db.execute(
        select(Project)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(
            ProjectMember.user_id == user_id,
            ProjectMember.hidden_at.is_(None),
            Project.deleted_at.is_(None),
        )
        .order_by(Project.updated_at.desc())
    )
    projects = res.scalars().all()

    rooms_res = await db.execute(
        select(Room, RoomMember.role)
        .join(RoomMember, RoomMember.room_id == Room.id)
        .where(
            Room.project_id.in_([p.id for p in projects]),
            RoomMember.user_id == user_id,
            RoomMember.hidden_at.is_(None),
            Room.deleted_at.is_(None),
        )
        .order_by(Room.created_at.asc())
    )
    rooms_by_project: dict[str, list[SidebarRoom]] = {}
    for room, role in rooms_res.all():
        rooms_by_project.setdefault(room.project_id, []).append(
            SidebarRoom(id=room.id, name=room.name, member_role=role.value)
        )

    return [
        SidebarProject(id=p.id, name=p.name, slug=p.slug, rooms=rooms_by_project.get(p.id, []))
        for p in projects
    ]


async def create_workspace_room(db: AsyncSession, user_id: str, name: str) -> Room:
    """Create a room in the user's most recently updated project."""
    await ensure_default_workspace(db, user_id)
    res = await db.execute(
        select(Project.id)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user_id, Project.deleted_at.is_(None))
        .order_by(Project.updated_at.desc())
        .limit(1)
    )
    project_id = res.scalar_one_or_none()
    if project_id is None:
        raise NotFound("No active project for user")
    return await create_room_for_project(db, user_id, project_id, name)


async def soft_delete_project(db: AsyncSession, user_id: str, project_id: str) -> None:
    res = await db.execute(
        select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
    )
    membership = res.scalar_one_or_none()
    if not membership:
        raise Forbidden("User is not a project member")
    project = await db.get(Project, project_id)
    if not project or project.deleted_at is not None:
        raise NotFound("Project not found")
    if membership.role != MemberRole.OWNER:
        raise Forbidden("Only project owners can delete a project")
    project.deleted_at = utcnow()
    await db.commit()


async def set_project_visibility(db: AsyncSession, user_id: str, project_id: str, visible: bool) -> None:
    res = await db.execute(
        select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
    )
    membership = res.scalar_one_or_none()
    if not membership:
        raise Forbidden("User is not a project member")
    membership.hidden_at = None if visible else utcnow()
    await db.commit()
