"""Pydantic schemas for the generated syllabus: 7 chapters x 5 questions x 4 options.

Payloads come from an LLM, so everything is validated here before the scoring
code trusts it. Upstream uses camelCase keys (chapterNumber, correctAnswer,
timeLimit); both spellings are accepted and camelCase is written back out.
"""
from typing import Literal

from pydantic import BaseModel, Field, model_validator

CHAPTER_COUNT = 7
QUESTIONS_PER_CHAPTER = 5
OPTIONS_PER_QUESTION = 4

Difficulty = Literal["easy", "medium", "hard"]


class QuestionSchema(BaseModel):
    question: str = Field(min_length=1)
    options: list[str] = Field(min_length=OPTIONS_PER_QUESTION, max_length=OPTIONS_PER_QUESTION)
    correct_answer: int = Field(alias="correctAnswer", ge=0, lt=OPTIONS_PER_QUESTION)
    difficulty: Difficulty

    class Config:
        populate_by_name = True


class ChapterSchema(BaseModel):
    chapter_number: int = Field(alias="chapterNumber", ge=1, le=CHAPTER_COUNT)
    title: str = Field(min_length=1)
    questions: list[QuestionSchema] = Field(
        min_length=QUESTIONS_PER_CHAPTER, max_length=QUESTIONS_PER_CHAPTER
    )
    time_limit: int = Field(alias="timeLimit", gt=0)  # seconds

    class Config:
        populate_by_name = True


class SyllabusSchema(BaseModel):
    chapters: list[ChapterSchema]

    @model_validator(mode="after")
    def check_chapter_numbers(self):
        numbers = sorted(c.chapter_number for c in self.chapters)
        if numbers != list(range(1, CHAPTER_COUNT + 1)):
            raise ValueError(f"expected chapters numbered 1..{CHAPTER_COUNT}, got {numbers}")
        self.chapters.sort(key=lambda c: c.chapter_number)
        return self

    def chapter(self, chapter_number: int) -> ChapterSchema | None:
        for c in self.chapters:
            if c.chapter_number == chapter_number:
                return c
        return None


class SyllabusUploadSchema(BaseModel):
    content: str


class QuizQuestionOutSchema(BaseModel):
    """A question as shown during a live quiz (no answer key)."""

    question: str
    options: list[str]
    difficulty: Difficulty
