"""Room snapshots and the state derived from them.

A snapshot is the whole room read in one go: room row, members, progress.
Everything shown to a member (territories, leaderboard) is re-derived from a
snapshot; nothing is patched incrementally.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.progress import Progress
from app.models.room import Room
from app.models.room_member import RoomMember
from app.models.user import User
from app.schemas.room import (
    MemberOutSchema,
    ProgressOutSchema,
    RoomStateSchema,
    TerritorySchema,
)
from app.services.leaderboard import UNKNOWN_USERNAME, build_leaderboard
from app.services.rooms import get_room, load_syllabus, room_out
from app.services.territory import LINEAR_GRAPH, TerritoryGraph, is_playable


@dataclass(slots=True)
class RoomSnapshot:
    room: Room
    members: list[RoomMember]
    progress: list[Progress]
    usernames: dict[int, str] = field(default_factory=dict)
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


async def load_room_snapshot(db: AsyncSession, room_id: int) -> RoomSnapshot:
    room = await get_room(db, room_id)

    members_result = await db.execute(
        select(RoomMember, User.username)
        .join(User, User.id == RoomMember.user_id)
        .where(RoomMember.room_id == room_id)
        .order_by(RoomMember.id.asc())
    )
    members, usernames = [], {}
    for member, username in members_result.all():
        members.append(member)
        usernames[member.user_id] = username

    progress_result = await db.execute(
        select(Progress).where(Progress.room_id == room_id).order_by(Progress.id.asc())
    )
    return RoomSnapshot(
        room=room,
        members=members,
        progress=list(progress_result.scalars().all()),
        usernames=usernames,
    )


def apply_room_snapshot(old: RoomSnapshot | None, new: RoomSnapshot) -> RoomSnapshot:
    """Replace `old` with `new`, unless `new` is an older read of the same room."""
    if old is None or old.room.id != new.room.id:
        return new
    if new.loaded_at < old.loaded_at:
        return old
    return new


def build_territories(snapshot: RoomSnapshot, user_id: int,
                      graph: TerritoryGraph = LINEAR_GRAPH) -> list[TerritorySchema]:
    syllabus = load_syllabus(snapshot.room)
    territories = []
    for number in graph.chapters:
        chapter = syllabus.chapter(number) if syllabus else None
        status = graph.effective_status(snapshot.progress, user_id, number)
        territories.append(TerritorySchema(
            chapter_number=number,
            title=chapter.title if chapter else None,
            status=status,
            playable=syllabus is not None and is_playable(status),
            next_chapter=graph.next_chapter(number),
            completed_by=graph.completed_by(snapshot.progress, number),
        ))
    return territories


def build_room_state(snapshot: RoomSnapshot, user_id: int,
                     graph: TerritoryGraph = LINEAR_GRAPH) -> RoomStateSchema:
    my_color = next((m.color for m in snapshot.members if m.user_id == user_id), None)
    syllabus = load_syllabus(snapshot.room)
    return RoomStateSchema(
        room=room_out(snapshot.room, my_color),
        members=[
            MemberOutSchema(
                user_id=m.user_id,
                username=snapshot.usernames.get(m.user_id) or UNKNOWN_USERNAME,
                color=m.color,
                joined_at=m.joined_at,
            )
            for m in snapshot.members
        ],
        progress=[ProgressOutSchema.model_validate(p) for p in snapshot.progress],
        territories=build_territories(snapshot, user_id, graph),
        leaderboard=build_leaderboard(snapshot.members, snapshot.progress, snapshot.usernames),
        chapters=syllabus.chapters if syllabus else None,
    )
