import asyncio
from types import SimpleNamespace

import pytest
from google.genai import errors

from quizforge.engine.models import LanguageOption, TestInputMethod
from quizforge.services.generation_service import (
    ApiKeyRing,
    GeminiGenerator,
    GenerationError,
    build_questions_prompt,
    parse_json_from_markdown,
    questions_from_payload,
)

from conftest import make_mcq


def test_parse_plain_and_fenced_json() -> None:
    assert parse_json_from_markdown('[{"a": 1}]') == [{"a": 1}]
    assert parse_json_from_markdown('```json\n[{"a": 1}]\n```') == [{"a": 1}]
    assert parse_json_from_markdown('```\n{"b": 2}\n```') == {"b": 2}


def test_parse_repairs_missing_comma_after_array() -> None:
    text = '[{"options": ["x", "y"] "correctAnswerIndex": 1, "questionText": "Q"}]'
    assert parse_json_from_markdown(text)[0]["correctAnswerIndex"] == 1


def test_parse_failure_returns_none() -> None:
    assert parse_json_from_markdown("Sorry, I cannot help.") is None
    assert parse_json_from_markdown("") is None


def test_questions_from_payload() -> None:
    questions = questions_from_payload(
        [
            {
                "passageText": "Read this.",
                "questionText": "Pick one",
                "options": ["a", "b", "c", "d"],
                "correctAnswerIndex": "2",
            },
            {"questionText": "Capital of France: ___", "correctAnswerText": "Paris"},
        ]
    )
    mcq, tita = questions
    assert mcq.id.startswith("q-") and mcq.id.endswith("-0")
    assert tita.id.endswith("-1")
    assert mcq.passage_text == "Read this."
    assert mcq.correct_answer_index == 2
    assert tita.options is None
    assert tita.correct_answer_text == "Paris"


@pytest.mark.parametrize(
    "payload",
    [
        {"questionText": "not a list"},
        [{"options": ["a"]}],
        [{"questionText": "Q", "options": ["a", "b"], "correctAnswerIndex": 5}],
        [{"questionText": "Q", "options": ["a", "b"]}],
    ],
)
def test_questions_from_payload_rejects_invalid_data(payload) -> None:
    with pytest.raises(GenerationError):
        questions_from_payload(payload)


def test_prompt_for_document_extraction() -> None:
    prompt = build_questions_prompt(TestInputMethod.DOCUMENT, "Chapter text", 0)
    assert "Extract ALL identifiable unique questions (only MCQ)" in prompt
    assert "the source document's primary language" in prompt
    assert "Chapter text" in prompt


def test_prompt_for_topic_with_options() -> None:
    prompt = build_questions_prompt(
        TestInputMethod.TOPIC,
        "Photosynthesis",
        0,
        language=LanguageOption.HINDI,
        difficulty_level=4,
        custom_instructions="Focus on light reactions",
        tita_enabled=True,
    )
    assert "Generate EXACTLY 10 unique questions (both MCQ and TITA)" in prompt
    assert "strictly in Hindi" in prompt
    assert "Difficulty Level: 4" in prompt
    assert "Focus on light reactions" in prompt
    assert "Do NOT generate any type-in-the-answer" not in prompt


def test_prompt_ignores_difficulty_for_documents() -> None:
    prompt = build_questions_prompt(
        TestInputMethod.DOCUMENT, "text", 5, difficulty_level=3, custom_instructions="x"
    )
    assert "Generate EXACTLY 5 unique questions (only MCQ)" in prompt
    assert "Difficulty Level" not in prompt
    assert "Custom Instructions" not in prompt
    assert "Do NOT generate any type-in-the-answer" in prompt


def test_key_ring_rotation() -> None:
    ring = ApiKeyRing(["k1", "", "k2"])
    assert len(ring) == 2
    assert ring.current() == "k1"
    assert not ring.rotate_on(RuntimeError("invalid argument"))
    assert ring.current() == "k1"
    assert ring.rotate_on(RuntimeError("429 Too Many Requests"))
    assert ring.current() == "k2"
    assert ring.rotate_on(RuntimeError("The model is overloaded"))
    assert ring.current() == "k1"


def test_empty_key_ring_reports_configuration_error() -> None:
    with pytest.raises(GenerationError, match="GEMINI_API_KEY"):
        ApiKeyRing([]).current()


def _generator_with_reply(monkeypatch, reply=None, error=None) -> GeminiGenerator:
    generator = GeminiGenerator(ApiKeyRing(["k1", "k2"]), model="test-model")
    calls = []

    async def generate_content(model, contents, config):
        calls.append((model, contents, config))
        if error is not None:
            raise error
        return SimpleNamespace(text=reply)

    client = SimpleNamespace(aio=SimpleNamespace(models=SimpleNamespace(generate_content=generate_content)))
    monkeypatch.setattr(generator, "_client", lambda: client)
    generator.calls = calls
    return generator


def test_generate_questions_parses_reply(monkeypatch) -> None:
    reply = '```json\n[{"questionText": "Q1", "options": ["a", "b", "c", "d"], "correctAnswerIndex": 1}]\n```'
    generator = _generator_with_reply(monkeypatch, reply=reply)

    questions = asyncio.run(
        generator.generate_questions(TestInputMethod.TOPIC, "Cells", 1)
    )
    assert [q.question_text for q in questions] == ["Q1"]
    model, prompt, config = generator.calls[0]
    assert model == "test-model"
    assert "Cells" in prompt
    assert config.temperature == 0.3
    assert config.response_mime_type == "application/json"


def test_generate_questions_rejects_empty_reply(monkeypatch) -> None:
    generator = _generator_with_reply(monkeypatch, reply="[]")
    with pytest.raises(GenerationError, match="empty list"):
        asyncio.run(generator.generate_questions(TestInputMethod.TOPIC, "Cells", 1))


def test_rate_limit_error_rotates_key(monkeypatch) -> None:
    error = errors.APIError(
        429,
        {"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}},
    )
    generator = _generator_with_reply(monkeypatch, error=error)
    with pytest.raises(GenerationError):
        asyncio.run(generator.generate_explanation(make_mcq("q1", answer=2)))
    assert generator.key_ring.current() == "k2"
