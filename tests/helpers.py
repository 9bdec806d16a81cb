"""Builders shared by the tests: syllabus payloads and a fake chat-completions client."""
import json
from types import SimpleNamespace

from app.schemas.syllabus import SyllabusSchema


def correct_index(question_index: int) -> int:
    return question_index % 4


def make_chapter_payload(number: int, time_limit: int = 120) -> dict:
    return {
        "chapterNumber": number,
        "title": f"Chapter {number}",
        "timeLimit": time_limit,
        "questions": [
            {
                "question": f"Q{number}.{i}?",
                "options": ["A", "B", "C", "D"],
                "correctAnswer": correct_index(i),
                "difficulty": "easy" if number <= 2 else "medium" if number <= 5 else "hard",
            }
            for i in range(5)
        ],
    }


def make_syllabus_payload(time_limit: int = 120) -> dict:
    return {"chapters": [make_chapter_payload(n, time_limit) for n in range(1, 8)]}


def make_syllabus(time_limit: int = 120) -> SyllabusSchema:
    return SyllabusSchema.model_validate(make_syllabus_payload(time_limit))


def answers_with_correct(count: int, total: int = 5) -> list[int]:
    """Answer list where exactly the first `count` answers are right."""
    return [
        correct_index(i) if i < count else (correct_index(i) + 1) % 4
        for i in range(total)
    ]


def tool_call_response(payload) -> SimpleNamespace:
    arguments = payload if isinstance(payload, str) else json.dumps(payload)
    message = SimpleNamespace(
        content=None,
        tool_calls=[SimpleNamespace(function=SimpleNamespace(name="create_syllabus", arguments=arguments))],
    )
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def content_response(text: str) -> SimpleNamespace:
    message = SimpleNamespace(content=text, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeCompletions:
    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


class FakeOpenAI:
    def __init__(self, response=None, error: Exception | None = None):
        self.completions = FakeCompletions(response, error)
        self.chat = SimpleNamespace(completions=self.completions)
