import os
import tempfile

# quizforge.config reads these on import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("QUIZFORGE_DATA_DIR", tempfile.mkdtemp(prefix="quizforge-tests-"))
os.environ.setdefault("GEMINI_API_KEY", "test-key")

from datetime import datetime, timezone
from pathlib import Path

import pytest

from quizforge.database import Base, SessionLocal, engine, init_db
from quizforge.engine.models import (
    HistoryEntry,
    NegativeMarkingSettings,
    Question,
    QuestionStatus,
    TestConfig,
    TestInputMethod,
    TimeSettings,
)
from quizforge.services.generation_service import GenerationError
from quizforge.utils import paths


def make_mcq(
    qid: str = "q1",
    correct: int = 0,
    answer: int | None = None,
    status: QuestionStatus | None = None,
) -> Question:
    if status is None:
        status = QuestionStatus.ATTEMPTED if answer is not None else QuestionStatus.UNVISITED
    return Question(
        id=qid,
        question_text=f"Question {qid}?",
        options=["A", "B", "C", "D"],
        correct_answer_index=correct,
        user_answer_index=answer,
        status=status,
    )


def make_tita(
    qid: str = "t1",
    correct: str = "Paris",
    answer: str | None = None,
    status: QuestionStatus | None = None,
) -> Question:
    if status is None:
        status = QuestionStatus.ATTEMPTED if answer is not None else QuestionStatus.UNVISITED
    return Question(
        id=qid,
        question_text="The capital of France is ___.",
        correct_answer_text=correct,
        user_answer_text=answer,
        status=status,
    )


def make_config(
    method: TestInputMethod = TestInputMethod.TOPIC,
    content: str = "Photosynthesis",
    num_questions: int = 3,
    time_settings: TimeSettings | None = None,
    negative_marking: NegativeMarkingSettings | None = None,
    **kwargs,
) -> TestConfig:
    return TestConfig(
        input_method=method,
        content=content,
        num_questions=num_questions,
        time_settings=time_settings or TimeSettings.untimed(),
        negative_marking=negative_marking or NegativeMarkingSettings(),
        **kwargs,
    )


def make_entry(
    entry_id: str = "s1",
    test_name: str = "Midterm",
    score: float = 50.0,
    attempted: int = 2,
    total: int = 4,
    config: TestConfig | None = None,
    questions: tuple = (),
) -> HistoryEntry:
    config = config or make_config(test_name=test_name)
    return HistoryEntry(
        id=entry_id,
        test_name=test_name,
        date_completed=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        score_percentage=score,
        total_questions=total,
        correct_answers=min(attempted, round(score * total / 100)),
        attempted_questions=attempted,
        negative_marking=config.negative_marking,
        original_config=config,
        questions=questions,
    )


def sample_questions() -> list[Question]:
    return [
        make_mcq("q1", correct=0),
        make_mcq("q2", correct=1),
        make_tita("q3", correct="Paris"),
    ]


class FakeChat:
    def __init__(self, question: Question, explanation: str | None):
        self.question = question
        self.explanation = explanation

    async def stream(self, message: str):
        yield "You asked: "
        yield message


class FakeGenerator:
    """Stands in for GeminiGenerator without network calls."""

    def __init__(self, questions: list[Question] | None = None, error: str | None = None):
        self.questions = questions if questions is not None else sample_questions()
        self.error = error
        self.generated: list[tuple[TestConfig, str]] = []
        self.extracted: list[tuple[bytes, str]] = []
        self.chats: list[FakeChat] = []

    async def generate_for_config(self, config: TestConfig, content: str) -> list[Question]:
        self.generated.append((config, content))
        if self.error:
            raise GenerationError(self.error)
        return list(self.questions)

    async def extract_text(self, data: bytes, mime_type: str) -> str:
        self.extracted.append((data, mime_type))
        return "Extracted text"

    async def generate_explanation(self, question: Question) -> str:
        return f"Explanation for {question.id}"

    def open_follow_up_chat(self, question: Question, explanation: str | None = None) -> FakeChat:
        chat = FakeChat(question, explanation)
        self.chats.append(chat)
        return chat


@pytest.fixture
def db():
    """Fresh tables in the shared in-memory database."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def snapshots_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "snapshots"
    monkeypatch.setattr(paths, "SNAPSHOTS_DIR", root)
    return root
