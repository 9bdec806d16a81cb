import random

import pytest
from sqlalchemy import select

from app.core.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from app.models.progress import Progress
from app.models.room_member import RoomMember
from app.models.user import User
from app.services.rooms import (
    ROOM_CODE_ALPHABET,
    USER_COLORS,
    attach_syllabus,
    create_room,
    generate_room_code,
    get_room,
    join_room_with_code,
    list_user_rooms,
    load_playable_chapter,
    load_syllabus,
    require_member,
)
from tests.helpers import make_syllabus


async def add_user(db, name):
    user = User(email=f"{name}@example.com", username=name, hashed_password="x")
    db.add(user)
    await db.commit()
    return user.id


def test_room_codes_avoid_ambiguous_characters():
    rng = random.Random(7)
    codes = {generate_room_code(rng) for _ in range(200)}
    assert len(ROOM_CODE_ALPHABET) == 32
    for code in codes:
        assert len(code) == 6
        assert set(code) <= set(ROOM_CODE_ALPHABET)
        assert not set(code) & set("IO01")


async def test_creator_joins_with_first_color(db):
    alice = await add_user(db, "alice")
    room = await create_room(db, "  Biology 101 ", alice)

    assert room.name == "Biology 101"
    member = await require_member(db, room.id, alice)
    assert member.color == USER_COLORS[0]
    rooms = await list_user_rooms(db, alice)
    assert [(r.id, r.my_color, r.has_syllabus) for r in rooms] == [(room.id, USER_COLORS[0], False)]


async def test_blank_room_name_rejected(db):
    with pytest.raises(InvalidInputError):
        await create_room(db, "   ", 1)


async def test_code_collision_retries_with_new_code(db):
    alice = await add_user(db, "alice")
    first_code = (await create_room(db, "One", alice, rng=random.Random(3))).room_code
    # same seed: the first candidate collides, the retry draws further along the stream
    second = await create_room(db, "Two", alice, rng=random.Random(3))
    assert second.room_code != first_code
    assert len(await list_user_rooms(db, alice)) == 2


async def test_join_by_code_assigns_next_color_and_is_idempotent(db):
    alice, bob, cara = [await add_user(db, n) for n in ("alice", "bob", "cara")]
    room = await create_room(db, "Physics", alice)

    assert await join_room_with_code(db, room.room_code.lower(), bob) == room.id
    assert await join_room_with_code(db, f" {room.room_code} ", bob) == room.id
    assert await join_room_with_code(db, room.room_code, cara) == room.id

    result = await db.execute(
        select(RoomMember.user_id, RoomMember.color).where(RoomMember.room_id == room.id).order_by(RoomMember.id)
    )
    assert result.all() == [(alice, USER_COLORS[0]), (bob, USER_COLORS[1]), (cara, USER_COLORS[2])]


async def test_unknown_code_and_non_members(db):
    with pytest.raises(NotFoundError):
        await join_room_with_code(db, "ZZZZZZ", 1)
    with pytest.raises(NotFoundError):
        await get_room(db, 404)
    alice = await add_user(db, "alice")
    room = await create_room(db, "Chem", alice)
    with pytest.raises(ForbiddenError):
        await require_member(db, room.id, alice + 1)


async def test_syllabus_attaches_once_and_opens_chapter_one(db):
    alice = await add_user(db, "alice")
    room = await create_room(db, "History", alice)
    room_id = room.id

    await attach_syllabus(db, room_id, make_syllabus(), alice)
    with pytest.raises(ConflictError):
        await attach_syllabus(db, room_id, make_syllabus(time_limit=90), alice)

    room = await get_room(db, room_id)
    await db.refresh(room)
    assert load_syllabus(room).chapter(1).time_limit == 120
    result = await db.execute(select(Progress).where(Progress.room_id == room_id))
    assert [(p.user_id, p.chapter_number, p.status) for p in result.scalars()] == [(alice, 1, "available")]


async def test_only_available_or_contested_chapters_are_playable(db):
    alice = await add_user(db, "alice")
    room = await create_room(db, "Maths", alice)
    room_id = room.id

    with pytest.raises(ConflictError):
        await load_playable_chapter(db, room, alice, 1)

    await attach_syllabus(db, room_id, make_syllabus(), alice)
    room = await get_room(db, room_id)
    await db.refresh(room)

    assert (await load_playable_chapter(db, room, alice, 1)).chapter_number == 1
    with pytest.raises(ConflictError):
        await load_playable_chapter(db, room, alice, 2)

    db.add_all([
        Progress(user_id=alice, room_id=room_id, chapter_number=2, status="contested"),
        Progress(user_id=alice, room_id=room_id, chapter_number=3, status="conquered"),
    ])
    await db.commit()
    assert (await load_playable_chapter(db, room, alice, 2)).chapter_number == 2
    with pytest.raises(ConflictError):
        await load_playable_chapter(db, room, alice, 3)
    with pytest.raises(NotFoundError):
        await load_playable_chapter(db, room, alice, 8)
