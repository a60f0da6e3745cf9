import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from trivia_server.config import Settings
from trivia_server.errors import UpstreamFailure
from trivia_server.question_provider import (
    FileQuestionGenerator,
    OpenAIQuestionGenerator,
    build_question_generator,
    parse_questions,
)


def question_items(count, **extra):
    return [
        {
            "id": f"x{i}",
            "question": f"Q{i}?",
            "options": ["a", "b", "c", "d"],
            "correctAnswer": i % 4,
            **extra,
        }
        for i in range(count)
    ]


class StubCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def stub_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class TestParseQuestions:

    def test_array_inside_prose(self):
        text = "Sure! Here you go:\n```json\n" + json.dumps(question_items(2)) + "\n```"
        questions = parse_questions(text, "hard", 2)

        assert [q.id for q in questions] == ["x0", "x1"]
        assert questions[1].correct_answer == 1
        assert all(q.difficulty == "hard" for q in questions)

    def test_missing_id_gets_generated_one(self):
        items = question_items(1)
        del items[0]["id"]
        questions = parse_questions(json.dumps(items), "easy", 1)
        assert questions[0].id.startswith("q_")
        assert questions[0].id.endswith("_0")

    def test_snake_case_answer_accepted(self):
        items = [{"question": "?", "options": ["a", "b", "c", "d"], "correct_answer": 3}]
        assert parse_questions(json.dumps(items), "easy", 1)[0].correct_answer == 3

    @pytest.mark.parametrize("text", [
        "",
        "no json here",
        "[not json]",
        json.dumps([{"question": "?", "options": ["a", "b"], "correctAnswer": 0}]),
        json.dumps([{"question": "?", "options": ["a", "b", "c", "d"], "correctAnswer": 4}]),
        json.dumps([{"options": ["a", "b", "c", "d"], "correctAnswer": 0}]),
        json.dumps(["just a string"]),
    ])
    def test_bad_replies_are_upstream_failures(self, text):
        with pytest.raises(UpstreamFailure):
            parse_questions(text, "easy", 1)

    def test_wrong_count(self):
        with pytest.raises(UpstreamFailure) as exc:
            parse_questions(json.dumps(question_items(3)), "easy", 2)
        assert exc.value.message == "Expected 2 questions, got 3"


class TestOpenAIQuestionGenerator:

    @pytest.mark.asyncio
    async def test_generate_sends_topic_and_parses_reply(self):
        completions = StubCompletions(content=json.dumps(question_items(3)))
        generator = OpenAIQuestionGenerator(model="test-model", client=stub_client(completions))

        questions = await generator.generate("Space", "easy", 3)

        assert len(questions) == 3
        assert completions.kwargs["model"] == "test-model"
        user_prompt = completions.kwargs["messages"][-1]["content"]
        assert "3 multiple choice questions about Space" in user_prompt
        assert "easy difficulty" in user_prompt

    @pytest.mark.asyncio
    async def test_api_error_becomes_upstream_failure(self):
        generator = OpenAIQuestionGenerator(client=stub_client(StubCompletions(error=OpenAIError("boom"))))
        with pytest.raises(UpstreamFailure) as exc:
            await generator.generate("Space", "easy", 3)
        assert exc.value.message == "Failed to generate questions"

    @pytest.mark.asyncio
    async def test_short_reply_is_upstream_failure(self):
        generator = OpenAIQuestionGenerator(client=stub_client(StubCompletions(content=json.dumps(question_items(2)))))
        with pytest.raises(UpstreamFailure):
            await generator.generate("Space", "easy", 3)


class TestFileQuestionGenerator:

    @pytest.fixture
    def bank(self, tmp_path):
        items = (
            question_items(3, topic="Space", difficulty="easy")
            + [dict(item, id=f"m{i}") for i, item in enumerate(question_items(2, topic="Space", difficulty="hard"))]
            + [dict(item, id=f"g{i}") for i, item in enumerate(question_items(2, topic="Geography", difficulty="easy"))]
        )
        path = tmp_path / "bank.json"
        path.write_text(json.dumps({"questions": items}), encoding="utf-8")
        return path

    @pytest.mark.asyncio
    async def test_prefers_topic_and_difficulty(self, bank):
        questions = await FileQuestionGenerator(bank).generate("space", "easy", 3)
        assert sorted(q.id for q in questions) == ["x0", "x1", "x2"]

    @pytest.mark.asyncio
    async def test_mixes_difficulties_when_short(self, bank):
        questions = await FileQuestionGenerator(bank).generate("Space", "hard", 4)
        assert len(questions) == 4
        assert len({q.id for q in questions}) == 4

    @pytest.mark.asyncio
    async def test_unknown_topic_uses_whole_bank(self, bank):
        questions = await FileQuestionGenerator(bank).generate("Cooking", "easy", 7)
        assert len(questions) == 7

    @pytest.mark.asyncio
    async def test_too_few_questions(self, bank):
        with pytest.raises(UpstreamFailure):
            await FileQuestionGenerator(bank).generate("Geography", "easy", 5)

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(UpstreamFailure):
            await FileQuestionGenerator(tmp_path / "missing.json").generate("Space", "easy", 1)

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text("{nope", encoding="utf-8")
        with pytest.raises(UpstreamFailure):
            await FileQuestionGenerator(path).generate("Space", "easy", 1)


class TestBuildQuestionGenerator:

    def test_api_key_selects_openai(self):
        generator = build_question_generator(Settings(question_api_key="sk-test", question_model="m"))
        assert isinstance(generator, OpenAIQuestionGenerator)
        assert generator.model == "m"

    def test_openai_client_is_bounded(self):
        generator = build_question_generator(Settings(
            question_api_key="sk-test",
            question_timeout=12.5,
            question_max_retries=0,
        ))
        assert generator.client.timeout == 12.5
        assert generator.client.max_retries == 0

    def test_without_key_falls_back_to_bank(self, tmp_path):
        path = tmp_path / "bank.json"
        generator = build_question_generator(Settings(questions_file=str(path)))
        assert isinstance(generator, FileQuestionGenerator)
        assert generator.path == path
