"""Pydantic schemas for rooms, members, progress and the derived room state."""
from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.syllabus import ChapterSchema


class RoomCreateSchema(BaseModel):
    name: str = Field(max_length=255)


class RoomJoinSchema(BaseModel):
    code: str = Field(min_length=1, max_length=16)


class RoomOutSchema(BaseModel):
    id: int
    name: str
    room_code: str
    created_by: int
    has_syllabus: bool
    my_color: str | None = None


class JoinedRoomSchema(BaseModel):
    room_id: int


class MemberOutSchema(BaseModel):
    user_id: int
    username: str
    color: str
    joined_at: datetime | None = None


class ProgressOutSchema(BaseModel):
    user_id: int
    room_id: int
    chapter_number: int
    status: str
    score: int
    completion_time: int | None
    points: int
    completed_at: datetime | None

    class Config:
        from_attributes = True


class TerritorySchema(BaseModel):
    chapter_number: int
    title: str | None
    status: str  # for the requesting user
    playable: bool
    next_chapter: int | None
    completed_by: list[int]  # user ids with a conquered or contested row


class LeaderboardEntrySchema(BaseModel):
    user_id: int
    username: str
    color: str
    total_points: int
    territories_conquered: int


class RoomStateSchema(BaseModel):
    room: RoomOutSchema
    members: list[MemberOutSchema]
    progress: list[ProgressOutSchema]
    territories: list[TerritorySchema]
    leaderboard: list[LeaderboardEntrySchema]
    chapters: list[ChapterSchema] | None = None
