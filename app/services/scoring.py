"""Turn a finished quiz attempt into points, a territory status and an unlock."""
import logging
import math
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, InvalidInputError, StoreReadError, StoreWriteError
from app.db.upsert import insert_if_absent, upsert
from app.models.progress import Progress
from app.schemas.quiz import ScoreOutcomeSchema
from app.schemas.syllabus import QUESTIONS_PER_CHAPTER
from app.services.territory import (
    AVAILABLE,
    COMPLETED_STATUSES,
    CONQUERED,
    CONTESTED,
    LINEAR_GRAPH,
    TerritoryGraph,
    can_transition,
    statuses_leading_to,
)

logger = logging.getLogger(__name__)

# Points: 10 per correct answer, 1 per full 10s left on the clock, 50 for the
# first member of the room to finish a chapter.
CONQUER_THRESHOLD = 3
POINTS_PER_CORRECT = 10
TIME_BONUS_STEP_SECONDS = 10
FIRST_COMPLETION_BONUS = 50

PROGRESS_KEY = ["user_id", "room_id", "chapter_number"]


def compute_status(score: int) -> str:
    """Conquered at 3 or more correct answers, contested below."""
    return CONQUERED if score >= CONQUER_THRESHOLD else CONTESTED


def compute_time_bonus(time_limit: int, time_taken: int) -> int:
    """One point per full 10 seconds left; 0 at or over the limit."""
    return max(0, math.floor((time_limit - time_taken) / TIME_BONUS_STEP_SECONDS))


def has_prior_completion(rows: Iterable, chapter_number: int) -> bool:
    """True if any member already has a conquered or contested row for the chapter."""
    return any(
        r.chapter_number == chapter_number and r.status in COMPLETED_STATUSES
        for r in rows
    )


def validate_attempt(score: int, time_taken: int, time_limit: int, chapter_number: int,
                     graph: TerritoryGraph = LINEAR_GRAPH) -> None:
    if not 0 <= score <= QUESTIONS_PER_CHAPTER:
        raise InvalidInputError(f"score must be between 0 and {QUESTIONS_PER_CHAPTER}")
    if time_taken < 0:
        raise InvalidInputError("time_taken must not be negative")
    if time_limit <= 0:
        raise InvalidInputError("time_limit must be positive")
    if chapter_number not in graph.chapters:
        raise InvalidInputError(f"chapter must be between 1 and {graph.size}")


def score_attempt(
    *,
    chapter_number: int,
    score: int,
    time_taken: int,
    time_limit: int,
    room_rows: Iterable,
) -> ScoreOutcomeSchema:
    """Compute status and points from the room's progress as read before the write."""
    status = compute_status(score)
    time_bonus = compute_time_bonus(time_limit, time_taken)
    first_bonus = 0 if has_prior_completion(room_rows, chapter_number) else FIRST_COMPLETION_BONUS
    return ScoreOutcomeSchema(
        chapter_number=chapter_number,
        status=status,
        score=score,
        time_taken=time_taken,
        time_bonus=time_bonus,
        first_bonus=first_bonus,
        total_points=score * POINTS_PER_CORRECT + time_bonus + first_bonus,
    )


async def record_quiz_result(
    db: AsyncSession,
    *,
    user_id: int | None,
    room_id: int | None,
    chapter_number: int,
    score: int,
    time_taken: int,
    time_limit: int,
    graph: TerritoryGraph = LINEAR_GRAPH,
) -> ScoreOutcomeSchema | None:
    """Score an attempt, upsert the member's progress row and unlock the next chapter.

    The first-completion check reads then writes without a lock: two members
    finishing the same chapter at the same moment can both get the bonus.
    The unlock insert runs after the progress row is committed and its failure
    is only logged.

    A result may only move the member's row along the status graph: a
    conquered (or still locked) chapter raises `ConflictError` and keeps its row.
    """
    if not user_id or not room_id:
        return None
    validate_attempt(score, time_taken, time_limit, chapter_number, graph)

    try:
        result = await db.execute(
            select(Progress).where(
                Progress.room_id == room_id,
                Progress.chapter_number == chapter_number,
            )
        )
        room_rows = result.scalars().all()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("progress read failed room=%s chapter=%s: %s", room_id, chapter_number, exc)
        raise StoreReadError() from exc

    outcome = score_attempt(
        chapter_number=chapter_number,
        score=score,
        time_taken=time_taken,
        time_limit=time_limit,
        room_rows=room_rows,
    )
    current = graph.effective_status(room_rows, user_id, chapter_number)
    if not can_transition(current, outcome.status):
        raise ConflictError(f"Chapter {chapter_number} is {current}")

    try:
        # the row may have moved on since the read above
        written = await upsert(
            db,
            Progress,
            {
                "user_id": user_id,
                "room_id": room_id,
                "chapter_number": chapter_number,
                "status": outcome.status,
                "score": score,
                "completion_time": time_taken,
                "points": outcome.total_points,
                "completed_at": datetime.now(timezone.utc),
            },
            index_elements=PROGRESS_KEY,
            update_columns=["status", "score", "completion_time", "points", "completed_at"],
            where=Progress.status.in_(statuses_leading_to(outcome.status)),
        )
        if not written:
            await db.rollback()
            raise ConflictError(f"Chapter {chapter_number} changed during the attempt")
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("progress upsert failed room=%s user=%s chapter=%s: %s",
                     room_id, user_id, chapter_number, exc)
        raise StoreWriteError() from exc

    logger.info(
        "scored room=%s user=%s chapter=%s status=%s points=%s (first_bonus=%s)",
        room_id, user_id, chapter_number, outcome.status, outcome.total_points, outcome.first_bonus,
    )

    next_chapter = graph.next_chapter(chapter_number) if outcome.status == CONQUERED else None
    if next_chapter is not None:
        try:
            inserted = await insert_if_absent(
                db,
                Progress,
                {
                    "user_id": user_id,
                    "room_id": room_id,
                    "chapter_number": next_chapter,
                    "status": AVAILABLE,
                },
                index_elements=PROGRESS_KEY,
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("unlock of chapter %s failed room=%s user=%s: %s",
                           next_chapter, room_id, user_id, exc)
        else:
            if inserted:
                outcome.unlocked_chapter = next_chapter

    return outcome
