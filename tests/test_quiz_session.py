import asyncio

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.exceptions import ConflictError, InvalidInputError, NotFoundError, StoreReadError
from app.models.progress import Progress
from app.services import quiz_session
from app.services.quiz_session import QuizSession, QuizSessionManager, grade_answers
from app.services.realtime import RoomEventBus
from app.services.scoring import record_quiz_result
from app.schemas.syllabus import ChapterSchema
from tests.helpers import answers_with_correct, correct_index, make_chapter_payload


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def chapter(time_limit=120) -> ChapterSchema:
    return ChapterSchema.model_validate(make_chapter_payload(1, time_limit))


def test_grade_answers_counts_unanswered_as_wrong():
    ch = chapter()
    assert grade_answers(ch, answers_with_correct(5)) == 5
    assert grade_answers(ch, answers_with_correct(2)) == 2
    assert grade_answers(ch, [correct_index(0), None, correct_index(2)]) == 2
    assert grade_answers(ch, []) == 0


@pytest.mark.parametrize("answers", [[0] * 6, [4], [-1]])
def test_grade_answers_rejects_malformed_attempts(answers):
    with pytest.raises(InvalidInputError):
        grade_answers(chapter(), answers)


def test_answering_every_question_finishes_once():
    clock = FakeClock()
    results = []
    session = QuizSession(chapter(), on_complete=results.append, clock=clock)

    for i, option in enumerate(answers_with_correct(4)):
        assert session.question_index == i
        clock.now += 7
        feedback = session.answer(option)
        assert feedback.question_index == i
        assert feedback.correct_index == correct_index(i)
        assert feedback.is_correct is (i < 4)

    assert feedback.finished
    assert session.state == "finished"
    assert len(results) == 1
    assert results[0].score == 4
    assert results[0].time_taken == 35
    assert not results[0].timed_out

    assert session.finish() is results[0]
    assert len(results) == 1
    with pytest.raises(ConflictError):
        session.answer(0)


def test_countdown_finishes_with_partial_answers():
    clock = FakeClock()
    results = []
    session = QuizSession(chapter(time_limit=5), on_complete=results.append, clock=clock)
    session.answer(correct_index(0))
    session.answer(correct_index(1))
    session.answer((correct_index(2) + 1) % 4)

    for _ in range(5):
        clock.now += 1
        session.tick()
    assert session.time_left == 0
    assert session.state == "finished"
    assert results[0].score == 2
    assert results[0].time_taken == 5
    assert results[0].timed_out

    session.tick()
    assert len(results) == 1


def test_invalid_option_leaves_question_open():
    session = QuizSession(chapter())
    with pytest.raises(InvalidInputError):
        session.answer(4)
    assert session.question_index == 0
    assert session.answers == [None] * 5


def test_close_reports_nothing():
    results = []
    session = QuizSession(chapter(), on_complete=results.append)
    session.answer(0)
    session.close()
    assert session.state == "closed"
    session.tick()
    assert results == []
    with pytest.raises(ConflictError):
        session.finish()


async def test_timer_task_fires_exactly_once(monkeypatch):
    monkeypatch.setattr(quiz_session, "TICK_SECONDS", 0.001)
    results = []
    session = QuizSession(chapter(time_limit=3), on_complete=results.append)
    task = session.start_timer()
    await asyncio.wait_for(task, timeout=2)
    assert session.state == "finished"
    assert len(results) == 1
    assert results[0].timed_out


async def test_finishing_by_answer_cancels_the_timer():
    results = []
    session = QuizSession(chapter(time_limit=600), on_complete=results.append)
    task = session.start_timer()
    for option in answers_with_correct(5):
        session.answer(option)
    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(results) == 1
    assert results[0].score == 5


async def test_manager_records_result_and_notifies_room(session_factory):
    bus = RoomEventBus()
    manager = QuizSessionManager(session_factory, bus)
    async with bus.subscribe(1) as queue:
        session = manager.start(chapter(), user_id=10, room_id=1)
        live = manager.get(session.id, 10)
        for option in answers_with_correct(3):
            session.answer(option)
        outcome = await manager.wait_outcome(live)
        event = queue.get_nowait()

    assert outcome.status == "conquered"
    assert outcome.first_bonus == 50
    assert outcome.unlocked_chapter == 2
    assert event.table == "progress"

    async with session_factory() as db:
        result = await db.execute(select(Progress).where(Progress.user_id == 10))
        assert {r.chapter_number: r.status for r in result.scalars()} == {1: "conquered", 2: "available"}
    await manager.shutdown()


async def test_late_session_result_cannot_undo_a_conquest(session_factory):
    manager = QuizSessionManager(session_factory)
    session = manager.start(chapter(), user_id=10, room_id=1)
    live = manager.get(session.id, 10)

    async with session_factory() as db:
        direct = await record_quiz_result(
            db, user_id=10, room_id=1, chapter_number=1, score=5, time_taken=0, time_limit=120,
        )
    for option in answers_with_correct(0):
        session.answer(option)

    with pytest.raises(ConflictError):
        await manager.wait_outcome(live)
    assert live.outcome is None

    async with session_factory() as db:
        result = await db.execute(
            select(Progress.status, Progress.points).where(Progress.user_id == 10, Progress.chapter_number == 1)
        )
        assert result.all() == [("conquered", direct.total_points)]
    await manager.shutdown()


class UnreachableStore:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))

    async def rollback(self):
        pass


async def test_store_failure_is_reported_to_the_waiting_client():
    manager = QuizSessionManager(UnreachableStore)
    session = manager.start(chapter(), user_id=10, room_id=1)
    live = manager.get(session.id, 10)
    session.finish()

    with pytest.raises(StoreReadError):
        await manager.wait_outcome(live)
    assert isinstance(live.error, StoreReadError)
    await manager.shutdown()


async def test_finished_sessions_are_dropped_after_retention(session_factory, monkeypatch):
    monkeypatch.setattr(quiz_session, "FINISHED_RETENTION_SECONDS", 0.01)
    manager = QuizSessionManager(session_factory)
    session = manager.start(chapter(), user_id=10, room_id=1)
    live = manager.get(session.id, 10)
    session.finish()
    await manager.wait_outcome(live)

    assert manager.get(session.id, 10) is live
    await asyncio.sleep(0.05)
    assert len(manager) == 0
    with pytest.raises(NotFoundError):
        manager.get(session.id, 10)
    await manager.shutdown()


async def test_manager_keeps_one_session_per_member_and_room(session_factory):
    manager = QuizSessionManager(session_factory)
    first = manager.start(chapter(), user_id=10, room_id=1)
    second = manager.start(chapter(), user_id=10, room_id=1)
    other_room = manager.start(chapter(), user_id=10, room_id=2)

    assert first.state == "closed"
    assert len(manager) == 2
    with pytest.raises(NotFoundError):
        manager.get(first.id, 10)
    with pytest.raises(NotFoundError):
        manager.get(second.id, 99)

    manager.close(other_room.id, 10)
    assert other_room.state == "closed"
    await manager.shutdown()
    assert second.state == "closed"
