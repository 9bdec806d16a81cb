"""Live quiz routes: the server runs the countdown and scores the attempt."""
from typing import Annotated

from fastapi import APIRouter, Depends, status

from app.routers.deps import CurrentUser, DbSession, get_quiz_manager
from app.schemas.quiz import (
    AnswerFeedbackSchema,
    AnswerSubmitSchema,
    QuizSessionStateSchema,
    QuizStartOutSchema,
)
from app.schemas.syllabus import QuizQuestionOutSchema
from app.services.quiz_session import LiveQuiz, QuizSessionManager
from app.services.rooms import get_room, load_playable_chapter, require_member

router = APIRouter(prefix="/api", tags=["quiz"])

Manager = Annotated[QuizSessionManager, Depends(get_quiz_manager)]


def _state(live: LiveQuiz) -> QuizSessionStateSchema:
    session = live.session
    return QuizSessionStateSchema(
        session_id=session.id,
        chapter_number=session.chapter.chapter_number,
        state=session.state,
        question_index=session.question_index,
        time_left=session.time_left,
        answers=session.answers,
        outcome=live.outcome,
    )


@router.post(
    "/rooms/{room_id}/chapters/{chapter_number}/quiz",
    response_model=QuizStartOutSchema,
    status_code=status.HTTP_201_CREATED,
)
async def start_quiz(
    room_id: int,
    chapter_number: int,
    db: DbSession,
    current_user: CurrentUser,
    manager: Manager,
):
    """Start a timed attempt. Questions are sent without the answer key."""
    user_id = current_user.id
    room = await get_room(db, room_id)
    await require_member(db, room_id, user_id)
    chapter = await load_playable_chapter(db, room, user_id, chapter_number)

    session = manager.start(chapter, user_id, room_id)
    return QuizStartOutSchema(
        session_id=session.id,
        chapter_number=chapter.chapter_number,
        title=chapter.title,
        time_limit=chapter.time_limit,
        questions=[
            QuizQuestionOutSchema(question=q.question, options=q.options, difficulty=q.difficulty)
            for q in chapter.questions
        ],
    )


@router.get("/quiz/{session_id}", response_model=QuizSessionStateSchema)
async def quiz_state(session_id: str, current_user: CurrentUser, manager: Manager):
    return _state(manager.get(session_id, current_user.id))


@router.post("/quiz/{session_id}/answer", response_model=AnswerFeedbackSchema)
async def answer_question(
    session_id: str,
    body: AnswerSubmitSchema,
    current_user: CurrentUser,
    manager: Manager,
):
    """Lock in an answer; reveals correctness. The last answer also returns the score."""
    live = manager.get(session_id, current_user.id)
    feedback = live.session.answer(body.option_index)
    outcome = await manager.wait_outcome(live) if feedback.finished else None
    return AnswerFeedbackSchema(
        question_index=feedback.question_index,
        selected=feedback.selected,
        correct_index=feedback.correct_index,
        is_correct=feedback.is_correct,
        finished=feedback.finished,
        outcome=outcome,
    )


@router.post("/quiz/{session_id}/finish", response_model=QuizSessionStateSchema)
async def finish_quiz(session_id: str, current_user: CurrentUser, manager: Manager):
    """Submit now; unanswered questions count as wrong."""
    live = manager.get(session_id, current_user.id)
    live.session.finish()
    await manager.wait_outcome(live)
    return _state(live)


@router.delete("/quiz/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_quiz(session_id: str, current_user: CurrentUser, manager: Manager):
    """Leave the quiz. An unfinished attempt is dropped without a score."""
    manager.close(session_id, current_user.id)
