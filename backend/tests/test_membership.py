from sqlalchemy import update

from teamchat.membership import MembershipGate
from teamchat.models import RoomMember, utcnow


async def test_members_and_non_members(session_factory, seeded):
    gate = MembershipGate(session_factory)

    assert await gate.is_member(seeded.alice, seeded.general)
    assert await gate.is_member(seeded.bob, seeded.general)
    assert not await gate.is_member(seeded.carol, seeded.general)
    assert not await gate.is_member(seeded.alice, seeded.private)


async def test_unknown_ids_are_not_members(session_factory, seeded):
    gate = MembershipGate(session_factory)

    assert not await gate.is_member("no-such-user", seeded.general)
    assert not await gate.is_member(seeded.alice, "no-such-room")
    assert not await gate.is_member("", seeded.general)
    assert not await gate.is_member(seeded.alice, "")


async def test_deleted_room_denies_access(session_factory, seeded):
    gate = MembershipGate(session_factory)
    assert not await gate.is_member(seeded.alice, seeded.archived)


async def test_hidden_membership_keeps_access(session_factory, seeded):
    async with session_factory() as db:
        await db.execute(
            update(RoomMember)
            .where(RoomMember.room_id == seeded.general, RoomMember.user_id == seeded.bob)
            .values(hidden_at=utcnow())
        )
        await db.commit()

    assert await MembershipGate(session_factory).is_member(seeded.bob, seeded.general)
