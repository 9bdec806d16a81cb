"""Syllabus generation: raw study material in, seven validated quiz chapters out."""
import json
import logging

import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from app.core.config import Settings
from app.core.exceptions import (
    InvalidInputError,
    MalformedUpstreamError,
    UpstreamError,
    UpstreamQuotaExhaustedError,
    UpstreamRateLimitedError,
)
from app.schemas.syllabus import (
    CHAPTER_COUNT,
    OPTIONS_PER_QUESTION,
    QUESTIONS_PER_CHAPTER,
    SyllabusSchema,
)

logger = logging.getLogger(__name__)

TOOL_NAME = "create_syllabus"

SYSTEM_PROMPT = f"""You are an educational content parser. Given a syllabus or study material, create exactly {CHAPTER_COUNT} chapters/levels. For each chapter generate exactly {QUESTIONS_PER_CHAPTER} multiple-choice questions with {OPTIONS_PER_QUESTION} options each. Return ONLY valid JSON with this exact structure (no markdown, no code blocks):
{{
  "chapters": [
    {{
      "chapterNumber": 1,
      "title": "Short Chapter Title",
      "questions": [
        {{
          "question": "Question text?",
          "options": ["Option A", "Option B", "Option C", "Option D"],
          "correctAnswer": 0,
          "difficulty": "easy"
        }}
      ],
      "timeLimit": 180
    }}
  ]
}}

Rules:
- Exactly {CHAPTER_COUNT} chapters
- Exactly {QUESTIONS_PER_CHAPTER} questions per chapter
- correctAnswer is the 0-based index of the correct option
- difficulty: "easy" for chapters 1-2, "medium" for 3-5, "hard" for 6-7
- timeLimit: 180 for easy, 120 for medium, 90 for hard
- Questions should test understanding, not just memorization
- Make questions progressively harder"""

SYLLABUS_TOOL = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": f"Create a structured syllabus with {CHAPTER_COUNT} chapters and quiz questions",
        "parameters": {
            "type": "object",
            "properties": {
                "chapters": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "chapterNumber": {"type": "number"},
                            "title": {"type": "string"},
                            "questions": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "question": {"type": "string"},
                                        "options": {"type": "array", "items": {"type": "string"}},
                                        "correctAnswer": {"type": "number"},
                                        "difficulty": {"type": "string", "enum": ["easy", "medium", "hard"]},
                                    },
                                    "required": ["question", "options", "correctAnswer", "difficulty"],
                                    "additionalProperties": False,
                                },
                            },
                            "timeLimit": {"type": "number"},
                        },
                        "required": ["chapterNumber", "title", "questions", "timeLimit"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["chapters"],
            "additionalProperties": False,
        },
    },
}


def _strip_code_fence(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("```")[1]
        if raw.startswith("json"):
            raw = raw[4:]
    return raw.strip()


def parse_syllabus_response(response) -> SyllabusSchema:
    """Pull the syllabus out of a chat completion: tool call first, message text second."""
    if not response.choices:
        raise MalformedUpstreamError("AI returned no choices")
    message = response.choices[0].message
    tool_calls = message.tool_calls or []
    if tool_calls:
        raw = tool_calls[0].function.arguments
    else:
        raw = _strip_code_fence(message.content or "")

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedUpstreamError() from exc

    try:
        return SyllabusSchema.model_validate(data)
    except ValidationError as exc:
        logger.warning("syllabus failed validation: %s", exc.errors()[:3])
        raise MalformedUpstreamError() from exc


class SyllabusGenerator:
    def __init__(self, client: AsyncOpenAI, model: str, max_chars: int = 8000):
        self._client = client
        self.model = model
        self.max_chars = max_chars

    @classmethod
    def from_settings(cls, settings: Settings) -> "SyllabusGenerator":
        if not settings.ai_api_key:
            raise UpstreamError("AI service is not configured")
        client = AsyncOpenAI(
            api_key=settings.ai_api_key,
            base_url=settings.ai_base_url,
            timeout=settings.ai_timeout_seconds,
        )
        return cls(client, settings.ai_model, settings.syllabus_max_chars)

    async def generate(self, content: str | None) -> SyllabusSchema:
        if not content or not content.strip():
            raise InvalidInputError("Missing content")
        text = content[: self.max_chars]
        logger.info("generating syllabus from %d chars (%d submitted)", len(text), len(content))

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": f"Parse this syllabus into {CHAPTER_COUNT} chapters with quiz questions:\n\n{text}",
                    },
                ],
                tools=[SYLLABUS_TOOL],
                tool_choice={"type": "function", "function": {"name": TOOL_NAME}},
            )
        except openai.RateLimitError as exc:
            if exc.code == "insufficient_quota":
                raise UpstreamQuotaExhaustedError() from exc
            raise UpstreamRateLimitedError() from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 402:
                raise UpstreamQuotaExhaustedError() from exc
            logger.error("AI error: %s %s", exc.status_code, exc.message)
            raise UpstreamError() from exc
        except openai.APIError as exc:
            logger.error("AI request failed: %s", exc)
            raise UpstreamError() from exc

        syllabus = parse_syllabus_response(response)
        logger.info("syllabus generated: %d chapters", len(syllabus.chapters))
        return syllabus
