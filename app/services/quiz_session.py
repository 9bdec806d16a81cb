"""Timed quiz attempts.

A `QuizSession` walks one chapter's questions and ends either when the last
question is answered or when its countdown reaches zero, whichever comes first.
It reports exactly one result. `QuizSessionManager` owns the live sessions of
the service and hands each result to the scoring engine.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    AppError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    StoreWriteError,
)
from app.schemas.quiz import ScoreOutcomeSchema
from app.schemas.syllabus import ChapterSchema
from app.services.realtime import PROGRESS_TABLE, RoomEventBus
from app.services.scoring import record_quiz_result
from app.services.territory import LINEAR_GRAPH, TerritoryGraph

logger = logging.getLogger(__name__)

IN_PROGRESS = "in_progress"
FINISHED = "finished"
CLOSED = "closed"

TICK_SECONDS = 1.0
FINISHED_RETENTION_SECONDS = 300.0


def grade_answers(chapter: ChapterSchema, answers: Sequence[int | None]) -> int:
    """Count correct answers; None (unanswered) counts as wrong."""
    if len(answers) > len(chapter.questions):
        raise InvalidInputError(
            f"got {len(answers)} answers for {len(chapter.questions)} questions"
        )
    for answer, question in zip(answers, chapter.questions):
        if answer is not None and not 0 <= answer < len(question.options):
            raise InvalidInputError(f"answer {answer} is not a valid option")
    return sum(
        1 for answer, question in zip(answers, chapter.questions)
        if answer == question.correct_answer
    )


@dataclass(slots=True)
class AnswerFeedback:
    question_index: int
    selected: int
    correct_index: int
    is_correct: bool
    finished: bool = False


@dataclass(frozen=True, slots=True)
class QuizResult:
    chapter_number: int
    time_limit: int
    score: int
    time_taken: int
    timed_out: bool


class QuizSession:
    """One attempt at one chapter: InProgress(index, answers) -> Finished(score, time)."""

    def __init__(
        self,
        chapter: ChapterSchema,
        on_complete: Callable[[QuizResult], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid4().hex
        self.chapter = chapter
        self._on_complete = on_complete
        self._clock = clock
        self._started_at = clock()
        self._answers: list[int | None] = [None] * len(chapter.questions)
        self._index = 0
        self._time_left = chapter.time_limit
        self._state = IN_PROGRESS
        self._result: QuizResult | None = None
        self._timer_task: asyncio.Task | None = None

    @property
    def state(self) -> str:
        return self._state

    @property
    def question_index(self) -> int:
        return self._index

    @property
    def time_left(self) -> int:
        return self._time_left

    @property
    def answers(self) -> list[int | None]:
        return list(self._answers)

    @property
    def result(self) -> QuizResult | None:
        return self._result

    def answer(self, option_index: int) -> AnswerFeedback:
        """Lock in an option for the current question and move on."""
        if self._state != IN_PROGRESS:
            raise ConflictError("Quiz session is not in progress")
        question = self.chapter.questions[self._index]
        if not 0 <= option_index < len(question.options):
            raise InvalidInputError(f"option {option_index} does not exist")

        self._answers[self._index] = option_index
        feedback = AnswerFeedback(
            question_index=self._index,
            selected=option_index,
            correct_index=question.correct_answer,
            is_correct=option_index == question.correct_answer,
        )
        if self._index == len(self.chapter.questions) - 1:
            self.finish()
            feedback.finished = True
        else:
            self._index += 1
        return feedback

    def tick(self) -> None:
        """Advance the countdown by one second."""
        if self._state != IN_PROGRESS:
            return
        self._time_left = max(0, self._time_left - 1)
        if self._time_left == 0:
            logger.info("quiz session %s ran out of time", self.id)
            self._finish(timed_out=True)

    def finish(self) -> QuizResult:
        """End the attempt now. Calling it again returns the same result."""
        if self._state == CLOSED:
            raise ConflictError("Quiz session was closed")
        return self._finish(timed_out=False)

    def close(self) -> None:
        """Abandon the attempt: stop the clock, report nothing."""
        if self._state == IN_PROGRESS:
            self._state = CLOSED
            self._cancel_timer()

    def start_timer(self) -> asyncio.Task:
        if self._timer_task is None:
            self._timer_task = asyncio.get_running_loop().create_task(self._run_timer())
        return self._timer_task

    async def _run_timer(self) -> None:
        while self._state == IN_PROGRESS:
            await asyncio.sleep(TICK_SECONDS)
            self.tick()

    def _cancel_timer(self) -> None:
        task = self._timer_task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # the timer task ends its own loop once the state changes
        if task is not current:
            task.cancel()

    def _finish(self, timed_out: bool) -> QuizResult:
        if self._result is not None:
            return self._result
        self._state = FINISHED
        self._cancel_timer()
        self._result = QuizResult(
            chapter_number=self.chapter.chapter_number,
            time_limit=self.chapter.time_limit,
            score=grade_answers(self.chapter, self._answers),
            time_taken=max(0, math.floor(self._clock() - self._started_at)),
            timed_out=timed_out,
        )
        if self._on_complete is not None:
            self._on_complete(self._result)
        return self._result


@dataclass
class LiveQuiz:
    session: QuizSession
    user_id: int
    room_id: int
    settle_task: asyncio.Task | None = None
    outcome: ScoreOutcomeSchema | None = None
    error: AppError | None = field(default=None, repr=False)
    expiry: asyncio.TimerHandle | None = field(default=None, repr=False)


class QuizSessionManager:
    """Live quiz sessions, at most one per (user, room).

    A finished session stays readable for FINISHED_RETENTION_SECONDS after its
    result is stored, then it is dropped.
    """

    def __init__(
        self,
        session_factory: Callable,
        bus: RoomEventBus | None = None,
        graph: TerritoryGraph = LINEAR_GRAPH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._bus = bus
        self._graph = graph
        self._clock = clock
        self._live: dict[str, LiveQuiz] = {}

    def __len__(self) -> int:
        return len(self._live)

    def start(self, chapter: ChapterSchema, user_id: int, room_id: int) -> QuizSession:
        for session_id, live in list(self._live.items()):
            if live.user_id == user_id and live.room_id == room_id:
                self._discard(session_id)

        session_id = uuid4().hex
        session = QuizSession(
            chapter,
            on_complete=lambda result: self._on_complete(session_id, result),
            clock=self._clock,
            session_id=session_id,
        )
        self._live[session_id] = LiveQuiz(session=session, user_id=user_id, room_id=room_id)
        session.start_timer()
        logger.info("quiz session %s started room=%s user=%s chapter=%s",
                    session_id, room_id, user_id, chapter.chapter_number)
        return session

    def get(self, session_id: str, user_id: int) -> LiveQuiz:
        live = self._live.get(session_id)
        if live is None or live.user_id != user_id:
            raise NotFoundError("Quiz session not found")
        return live

    def close(self, session_id: str, user_id: int) -> None:
        self.get(session_id, user_id)
        self._discard(session_id)

    async def wait_outcome(self, live: LiveQuiz) -> ScoreOutcomeSchema | None:
        """Wait until the finished session's result is stored; re-raise its failure."""
        if live.settle_task is None:
            return None
        await live.settle_task
        if live.error is not None:
            raise live.error
        return live.outcome

    def _discard(self, session_id: str) -> None:
        live = self._live.pop(session_id, None)
        if live is None:
            return
        live.session.close()
        if live.expiry is not None:
            live.expiry.cancel()

    def _expire(self, session_id: str, live: LiveQuiz) -> None:
        if self._live.get(session_id) is live:
            del self._live[session_id]
            logger.debug("quiz session %s expired", session_id)

    def _on_complete(self, session_id: str, result: QuizResult) -> None:
        live = self._live.get(session_id)
        if live is None or live.settle_task is not None:
            return
        live.settle_task = asyncio.get_running_loop().create_task(self._settle(live, result))

    async def _settle(self, live: LiveQuiz, result: QuizResult) -> None:
        try:
            async with self._session_factory() as db:
                live.outcome = await record_quiz_result(
                    db,
                    user_id=live.user_id,
                    room_id=live.room_id,
                    chapter_number=result.chapter_number,
                    score=result.score,
                    time_taken=result.time_taken,
                    time_limit=result.time_limit,
                    graph=self._graph,
                )
        except SQLAlchemyError as exc:
            logger.error("could not record quiz session %s: %s", live.session.id, exc)
            live.error = StoreWriteError()
        except AppError as exc:
            logger.error("could not record quiz session %s: %s", live.session.id, exc.detail)
            live.error = exc
        else:
            if self._bus is not None:
                self._bus.publish(live.room_id, PROGRESS_TABLE, "UPSERT")
        finally:
            live.expiry = asyncio.get_running_loop().call_later(
                FINISHED_RETENTION_SECONDS, self._expire, live.session.id, live,
            )

    async def shutdown(self) -> None:
        pending = []
        for live in self._live.values():
            live.session.close()
            if live.settle_task is not None:
                pending.append(live.settle_task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for live in self._live.values():
            if live.expiry is not None:
                live.expiry.cancel()
        self._live.clear()
