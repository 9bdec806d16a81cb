"""Pydantic schemas for quiz attempts, live sessions and scoring outcomes."""
from pydantic import BaseModel, Field

from app.schemas.syllabus import QuizQuestionOutSchema


class AttemptSubmitSchema(BaseModel):
    # one entry per question answered so far; null = not answered
    answers: list[int | None]
    time_taken: int = Field(ge=0)  # seconds


class ScoreOutcomeSchema(BaseModel):
    chapter_number: int
    status: str
    score: int
    time_taken: int
    time_bonus: int
    first_bonus: int
    total_points: int
    unlocked_chapter: int | None = None


class QuizStartOutSchema(BaseModel):
    session_id: str
    chapter_number: int
    title: str
    time_limit: int
    questions: list[QuizQuestionOutSchema]


class AnswerSubmitSchema(BaseModel):
    option_index: int = Field(ge=0)


class AnswerFeedbackSchema(BaseModel):
    question_index: int
    selected: int
    correct_index: int
    is_correct: bool
    finished: bool
    outcome: ScoreOutcomeSchema | None = None


class QuizSessionStateSchema(BaseModel):
    session_id: str
    chapter_number: int
    state: str  # in_progress | finished | closed
    question_index: int
    time_left: int
    answers: list[int | None]
    outcome: ScoreOutcomeSchema | None = None
