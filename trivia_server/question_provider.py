"""Question generators consumed by the room engine.

Both generators expose ``async generate(topic, difficulty, count)`` and either
return exactly ``count`` validated questions or raise ``UpstreamFailure``.
"""

import json
import logging
import random
import re
import time
from pathlib import Path
from typing import List

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from trivia_server.config import Settings
from trivia_server.errors import UpstreamFailure
from trivia_server.models import Question

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You write multiple choice trivia questions. Reply with a JSON array only, "
    "no prose. Each item must look like "
    '{"id": "<short unique id>", "question": "<text>", '
    '"options": ["<a>", "<b>", "<c>", "<d>"], "correctAnswer": <0-3>}. '
    "Every question has exactly 4 options and correctAnswer is the 0-based "
    "index of the right one."
)


def parse_questions(text: str, difficulty: str, count: int) -> List[Question]:
    """Pull the JSON array out of a model reply and validate every item."""
    match = re.search(r'\[[\s\S]*\]', text or '')
    if not match:
        raise UpstreamFailure("Question generator returned no questions")
    try:
        data = json.loads(match.group())
    except json.JSONDecodeError as e:
        raise UpstreamFailure("Question generator returned malformed JSON") from e

    stamp = int(time.time() * 1000)
    questions = []
    for index, item in enumerate(data):
        try:
            questions.append(Question(
                id=str(item.get('id') or f"q_{stamp}_{index}"),
                question=item['question'],
                options=item['options'],
                correct_answer=item.get('correctAnswer', item.get('correct_answer')),
                difficulty=difficulty,
            ))
        except (AttributeError, KeyError, TypeError, ValidationError) as e:
            raise UpstreamFailure("Question generator returned an invalid question") from e

    if len(questions) != count:
        raise UpstreamFailure(f"Expected {count} questions, got {len(questions)}")
    return questions


class OpenAIQuestionGenerator:
    """Questions from any OpenAI-compatible chat completion endpoint."""

    def __init__(self, api_key: str = None, base_url: str = None,
                 model: str = "gemini-2.0-flash", client=None,
                 timeout: float = 30.0, max_retries: int = 1):
        # The room stays locked to one generation until this call returns
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.model = model

    async def generate(self, topic: str, difficulty: str, count: int) -> List[Question]:
        prompt = (
            f"Generate {count} multiple choice questions about {topic} with "
            f"{difficulty} difficulty level. The questions should be educational, "
            f"well-formed, and distinct."
        )
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {'role': 'system', 'content': SYSTEM_PROMPT},
                    {'role': 'user', 'content': prompt},
                ],
                temperature=0.8,
            )
            text = response.choices[0].message.content
        except OpenAIError as e:
            logger.error(f"❌ Question generation failed for topic={topic!r}: {e}")
            raise UpstreamFailure() from e

        questions = parse_questions(text, difficulty, count)
        logger.info(f"✅ Generated {len(questions)} questions about {topic!r} ({difficulty})")
        return questions


class FileQuestionGenerator:
    """
    Questions sampled from a local JSON bank, for offline play.

    The file holds ``{"questions": [...]}``; items may carry ``topic`` and
    ``difficulty``. Items matching the requested topic are preferred, and
    within those the requested difficulty.
    """

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> List[dict]:
        if not self.path.exists():
            raise UpstreamFailure(f"Question bank {self.path} not found")
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise UpstreamFailure(f"Question bank {self.path} is not valid JSON") from e
        return data.get('questions', [])

    async def generate(self, topic: str, difficulty: str, count: int) -> List[Question]:
        items = self.load()
        pool = [q for q in items if str(q.get('topic', '')).lower() == topic.lower()] or items
        preferred = [q for q in pool if q.get('difficulty') == difficulty]
        if len(preferred) >= count:
            pool = preferred
        if len(pool) < count:
            raise UpstreamFailure(f"Question bank only has {len(pool)} questions")

        picked = random.sample(pool, count)
        return parse_questions(json.dumps(picked), difficulty, count)


def build_question_generator(settings: Settings):
    if settings.question_api_key:
        return OpenAIQuestionGenerator(
            api_key=settings.question_api_key,
            base_url=settings.question_base_url,
            model=settings.question_model,
            timeout=settings.question_timeout,
            max_retries=settings.question_max_retries,
        )
    logger.warning("QUESTION_API_KEY not set, serving questions from the local bank")
    return FileQuestionGenerator(settings.questions_file or "questions.json")
