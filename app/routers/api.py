"""API routes: rooms, membership, syllabus, scored attempts, leaderboard, live updates."""
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from app.core.exceptions import ConflictError
from app.routers.deps import (
    CurrentUser,
    DbSession,
    get_event_bus,
    get_session_factory,
    get_syllabus_generator,
)
from app.schemas.quiz import AttemptSubmitSchema, ScoreOutcomeSchema
from app.schemas.room import (
    JoinedRoomSchema,
    LeaderboardEntrySchema,
    RoomCreateSchema,
    RoomJoinSchema,
    RoomOutSchema,
    RoomStateSchema,
)
from app.schemas.syllabus import SyllabusUploadSchema
from app.services.leaderboard import build_leaderboard
from app.services.quiz_session import grade_answers
from app.services.realtime import (
    MEMBERS_TABLE,
    PROGRESS_TABLE,
    ROOMS_TABLE,
    RoomEventBus,
    room_event_stream,
)
from app.services.room_state import build_room_state, load_room_snapshot
from app.services.rooms import (
    attach_syllabus,
    color_for_position,
    create_room,
    get_room,
    join_room_with_code,
    list_user_rooms,
    load_playable_chapter,
    require_member,
    room_out,
)
from app.services.scoring import record_quiz_result
from app.services.syllabus import SyllabusGenerator

router = APIRouter(prefix="/api", tags=["api"])

EventBus = Annotated[RoomEventBus, Depends(get_event_bus)]


@router.get("/rooms", response_model=list[RoomOutSchema])
async def my_rooms(db: DbSession, current_user: CurrentUser):
    """Rooms the current user belongs to."""
    return await list_user_rooms(db, current_user.id)


@router.post("/rooms", response_model=RoomOutSchema, status_code=status.HTTP_201_CREATED)
async def new_room(body: RoomCreateSchema, db: DbSession, current_user: CurrentUser):
    user_id = current_user.id
    room = await create_room(db, body.name, user_id)
    return room_out(room, my_color=color_for_position(0))


@router.post("/rooms/join", response_model=JoinedRoomSchema)
async def join_room(body: RoomJoinSchema, db: DbSession, current_user: CurrentUser, bus: EventBus):
    room_id = await join_room_with_code(db, body.code, current_user.id)
    bus.publish(room_id, MEMBERS_TABLE, "INSERT")
    return JoinedRoomSchema(room_id=room_id)


@router.get("/rooms/{room_id}", response_model=RoomStateSchema)
async def room_state(room_id: int, db: DbSession, current_user: CurrentUser):
    """Full room state: members, progress, territories, leaderboard, chapters."""
    user_id = current_user.id
    await require_member(db, room_id, user_id)
    snapshot = await load_room_snapshot(db, room_id)
    return build_room_state(snapshot, user_id)


@router.get("/rooms/{room_id}/leaderboard", response_model=list[LeaderboardEntrySchema])
async def room_leaderboard(room_id: int, db: DbSession, current_user: CurrentUser):
    await require_member(db, room_id, current_user.id)
    snapshot = await load_room_snapshot(db, room_id)
    return build_leaderboard(snapshot.members, snapshot.progress, snapshot.usernames)


@router.post("/rooms/{room_id}/syllabus")
async def upload_syllabus(
    room_id: int,
    body: SyllabusUploadSchema,
    db: DbSession,
    current_user: CurrentUser,
    bus: EventBus,
    generator: Annotated[SyllabusGenerator, Depends(get_syllabus_generator)],
):
    """Generate 7 chapters from the submitted text and attach them to the room."""
    user_id = current_user.id
    room = await get_room(db, room_id)
    await require_member(db, room_id, user_id)
    if room.syllabus_json is not None:
        raise ConflictError("Room already has a syllabus")
    syllabus = await generator.generate(body.content)
    await attach_syllabus(db, room_id, syllabus, user_id)
    bus.publish(room_id, ROOMS_TABLE, "UPDATE")
    return {"success": True, "chapters": len(syllabus.chapters)}


@router.post(
    "/rooms/{room_id}/chapters/{chapter_number}/attempts",
    response_model=ScoreOutcomeSchema,
)
async def submit_attempt(
    room_id: int,
    chapter_number: int,
    body: AttemptSubmitSchema,
    db: DbSession,
    current_user: CurrentUser,
    bus: EventBus,
):
    """Score an attempt timed by the client; return points and any unlock."""
    user_id = current_user.id
    room = await get_room(db, room_id)
    await require_member(db, room_id, user_id)
    chapter = await load_playable_chapter(db, room, user_id, chapter_number)

    outcome = await record_quiz_result(
        db,
        user_id=user_id,
        room_id=room_id,
        chapter_number=chapter_number,
        score=grade_answers(chapter, body.answers),
        time_taken=body.time_taken,
        time_limit=chapter.time_limit,
    )
    bus.publish(room_id, PROGRESS_TABLE, "UPSERT")
    return outcome


@router.get("/rooms/{room_id}/events")
async def room_events(
    room_id: int,
    db: DbSession,
    current_user: CurrentUser,
    bus: EventBus,
    session_factory: Annotated[object, Depends(get_session_factory)],
):
    """Server-sent events: the room state now and after every change."""
    user_id = current_user.id
    await require_member(db, room_id, user_id)
    return StreamingResponse(
        room_event_stream(bus, session_factory, room_id, user_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
