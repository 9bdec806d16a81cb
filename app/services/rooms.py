"""Rooms: creation, join-by-code, membership checks and syllabus attachment."""
import logging
import random
import secrets

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StoreWriteError,
)
from app.db.upsert import insert_if_absent
from app.models.progress import Progress
from app.models.room import Room
from app.models.room_member import RoomMember
from app.schemas.room import RoomOutSchema
from app.schemas.syllabus import ChapterSchema, SyllabusSchema
from app.services.territory import AVAILABLE, LINEAR_GRAPH, TerritoryGraph, is_playable

logger = logging.getLogger(__name__)

# No I, O, 0 or 1: codes get read aloud and typed by hand.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ROOM_CODE_LENGTH = 6
ROOM_CODE_ATTEMPTS = 5

USER_COLORS = [
    "#3b82f6", "#10b981", "#f59e0b", "#ef4444",
    "#8b5cf6", "#ec4899", "#06b6d4", "#84cc16",
]


def generate_room_code(rng: random.Random | None = None) -> str:
    pick = rng.choice if rng is not None else secrets.choice
    return "".join(pick(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code: str | None) -> str:
    return (code or "").strip().upper()


def color_for_position(position: int) -> str:
    return USER_COLORS[position % len(USER_COLORS)]


def room_out(room: Room, my_color: str | None = None) -> RoomOutSchema:
    return RoomOutSchema(
        id=room.id,
        name=room.name,
        room_code=room.room_code,
        created_by=room.created_by,
        has_syllabus=room.syllabus_json is not None,
        my_color=my_color,
    )


async def create_room(
    db: AsyncSession,
    name: str,
    user_id: int,
    rng: random.Random | None = None,
) -> Room:
    """Create a room with a fresh code; the creator joins with the first color."""
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("Room name is required")

    for _ in range(ROOM_CODE_ATTEMPTS):
        room = Room(name=name, room_code=generate_room_code(rng), created_by=user_id)
        db.add(room)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.warning("room code collision, retrying")
            continue

        db.add(RoomMember(room_id=room.id, user_id=user_id, color=color_for_position(0)))
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise StoreWriteError("Failed to create room") from exc
        await db.refresh(room)
        logger.info("room %s created by user %s code=%s", room.id, user_id, room.room_code)
        return room

    raise StoreWriteError("Could not allocate a unique room code")


async def join_room_with_code(db: AsyncSession, code: str, user_id: int) -> int:
    """Validate a room code and make the user a member. Returns the room id."""
    code = normalize_room_code(code)
    result = await db.execute(select(Room).where(Room.room_code == code))
    room = result.scalar_one_or_none()
    if room is None:
        raise NotFoundError("Room not found")
    room_id = room.id

    count = await db.scalar(
        select(func.count(RoomMember.id)).where(RoomMember.room_id == room_id)
    )
    try:
        inserted = await insert_if_absent(
            db,
            RoomMember,
            {"room_id": room_id, "user_id": user_id, "color": color_for_position(count or 0)},
            index_elements=["room_id", "user_id"],
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreWriteError("Failed to join room") from exc

    if inserted:
        logger.info("user %s joined room %s", user_id, room_id)
    return room_id


async def list_user_rooms(db: AsyncSession, user_id: int) -> list[RoomOutSchema]:
    result = await db.execute(
        select(Room, RoomMember.color)
        .join(RoomMember, RoomMember.room_id == Room.id)
        .where(RoomMember.user_id == user_id)
        .order_by(RoomMember.id.asc())
    )
    return [room_out(room, color) for room, color in result.all()]


async def get_room(db: AsyncSession, room_id: int) -> Room:
    room = await db.get(Room, room_id)
    if room is None:
        raise NotFoundError("Room not found")
    return room


async def require_member(db: AsyncSession, room_id: int, user_id: int) -> RoomMember:
    result = await db.execute(
        select(RoomMember).where(
            RoomMember.room_id == room_id,
            RoomMember.user_id == user_id,
        )
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise ForbiddenError()
    return member


def load_syllabus(room: Room) -> SyllabusSchema | None:
    if room.syllabus_json is None:
        return None
    return SyllabusSchema.model_validate_json(room.syllabus_json)


async def attach_syllabus(db: AsyncSession, room_id: int, syllabus: SyllabusSchema, user_id: int) -> None:
    """Store the syllabus on the room (once) and open chapter 1 for the uploader."""
    try:
        result = await db.execute(
            update(Room)
            .where(Room.id == room_id, Room.syllabus_json.is_(None))
            .values(syllabus_json=syllabus.model_dump_json(by_alias=True))
        )
        if result.rowcount != 1:
            await db.rollback()
            raise ConflictError("Room already has a syllabus")
        await insert_if_absent(
            db,
            Progress,
            {"user_id": user_id, "room_id": room_id, "chapter_number": 1, "status": AVAILABLE},
            index_elements=["user_id", "room_id", "chapter_number"],
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StoreWriteError("Failed to save syllabus") from exc
    logger.info("syllabus attached to room %s by user %s", room_id, user_id)


async def load_playable_chapter(
    db: AsyncSession,
    room: Room,
    user_id: int,
    chapter_number: int,
    graph: TerritoryGraph = LINEAR_GRAPH,
) -> ChapterSchema:
    """Return the chapter if the user may attempt it now."""
    syllabus = load_syllabus(room)
    if syllabus is None:
        raise ConflictError("Room has no syllabus yet")
    chapter = syllabus.chapter(chapter_number)
    if chapter is None:
        raise NotFoundError("Chapter not found")

    result = await db.execute(
        select(Progress).where(
            Progress.room_id == room.id,
            Progress.user_id == user_id,
            Progress.chapter_number == chapter_number,
        )
    )
    status = graph.effective_status(result.scalars().all(), user_id, chapter_number)
    if not is_playable(status):
        raise ConflictError(f"Chapter {chapter_number} is {status}")
    return chapter
