from app.schemas.quiz import AttemptSubmitSchema, ScoreOutcomeSchema
from app.schemas.room import LeaderboardEntrySchema, RoomStateSchema, TerritorySchema
from app.schemas.syllabus import ChapterSchema, QuestionSchema, SyllabusSchema

__all__ = [
    "AttemptSubmitSchema",
    "ChapterSchema",
    "LeaderboardEntrySchema",
    "QuestionSchema",
    "RoomStateSchema",
    "ScoreOutcomeSchema",
    "SyllabusSchema",
    "TerritorySchema",
]
