import asyncio
import threading
from pathlib import Path

import pytest

from quizforge.engine.models import TestInputMethod, TestPhase, TimeSettings
from quizforge.engine.state_machine import (
    SAVED_TEST_MESSAGE,
    ChooseInputMethod,
    GoHome,
    SaveAndExit,
    SelectOption,
    StartTest,
    SubmitConfig,
    SubmitTest,
)
from quizforge.services import auth_service, persistence_service, snapshot_service
from quizforge.services.session_service import (
    SAVE_RESULT_FAILED_MESSAGE,
    SessionController,
)
from quizforge.utils.time_utils import utc_now

from conftest import FakeGenerator, make_config, make_mcq


@pytest.fixture
def user_id(db, snapshots_dir: Path) -> int:
    return auth_service.create_user(db, "Ada Lovelace", "ada@example.com", "secret123").id


async def _start(controller: SessionController, user_id: int, config=None) -> None:
    await controller.dispatch(user_id, ChooseInputMethod(TestInputMethod.TOPIC))
    await controller.dispatch(user_id, SubmitConfig(config or make_config()))
    await controller.dispatch(user_id, StartTest("session-1"))


def test_new_user_starts_at_home(user_id: int) -> None:
    controller = SessionController(FakeGenerator())
    assert controller.state(user_id).phase == TestPhase.HOME
    assert controller.pending_snapshot(user_id) is None


def test_generation_feeds_back_into_machine(user_id: int) -> None:
    generator = FakeGenerator()
    controller = SessionController(generator)

    async def scenario():
        await controller.dispatch(user_id, ChooseInputMethod(TestInputMethod.TOPIC))
        return await controller.dispatch(user_id, SubmitConfig(make_config(content="Cells")))

    state = asyncio.run(scenario())
    assert state.phase == TestPhase.CONFIRMATION
    assert len(state.questions) == 3
    assert generator.generated[0][1] == "Cells"


def test_generation_error_returns_to_setup(user_id: int) -> None:
    controller = SessionController(FakeGenerator(error="All API keys are exhausted"))

    async def scenario():
        await controller.dispatch(user_id, ChooseInputMethod(TestInputMethod.TOPIC))
        return await controller.dispatch(user_id, SubmitConfig(make_config()))

    state = asyncio.run(scenario())
    assert state.phase == TestPhase.SETUP
    assert state.error == "All API keys are exhausted"


def test_running_test_is_mirrored_and_recorded(user_id: int) -> None:
    controller = SessionController(FakeGenerator())

    async def scenario():
        await _start(controller, user_id)
        await controller.dispatch(user_id, SelectOption(0, 0))
        mirrored = snapshot_service.read_snapshot(user_id)
        state = await controller.dispatch(user_id, SubmitTest())
        return mirrored, state

    mirrored, state = asyncio.run(scenario())
    assert mirrored.session_id == "session-1"
    assert mirrored.questions[0].user_answer_index == 0

    assert state.phase == TestPhase.COMPLETED
    assert snapshot_service.read_snapshot(user_id) is None
    history = controller.history(user_id)
    assert [entry.id for entry in history] == ["session-1"]
    assert history[0].correct_answers == 1


def test_countdown_submits_when_time_runs_out(user_id: int) -> None:
    controller = SessionController(FakeGenerator(), tick_interval=0.01)
    config = make_config(time_settings=TimeSettings.timed(3))

    async def scenario():
        await _start(controller, user_id, config)
        for _ in range(200):
            if controller.state(user_id).phase == TestPhase.COMPLETED:
                break
            await asyncio.sleep(0.01)
        await controller.shutdown()

    asyncio.run(scenario())
    state = controller.state(user_id)
    assert state.phase == TestPhase.COMPLETED
    assert state.time_remaining_seconds == 0
    assert len(controller.history(user_id)) == 1


def test_failed_result_write_raises_alert(user_id: int, monkeypatch) -> None:
    monkeypatch.setattr(persistence_service, "save_session", lambda *args, **kwargs: None)
    controller = SessionController(FakeGenerator())

    async def scenario():
        await _start(controller, user_id)
        await controller.dispatch(user_id, SubmitTest())

    asyncio.run(scenario())
    assert controller.pop_alert(user_id) == SAVE_RESULT_FAILED_MESSAGE
    assert controller.pop_alert(user_id) is None


def test_save_and_exit_then_resume(db, user_id: int) -> None:
    controller = SessionController(FakeGenerator())

    async def save():
        await _start(controller, user_id)
        await controller.dispatch(user_id, SelectOption(1, 1))
        return await controller.dispatch(user_id, SaveAndExit("saved-1", utc_now()))

    state = asyncio.run(save())
    assert state.phase == TestPhase.HOME
    assert state.notice == SAVED_TEST_MESSAGE
    assert snapshot_service.read_snapshot(user_id) is None

    saved = persistence_service.get_saved_test(db, user_id, "saved-1")
    assert saved.questions[1].user_answer_index == 1

    state = asyncio.run(controller.resume_saved_test(user_id, saved))
    assert state.phase == TestPhase.IN_PROGRESS
    assert state.session_id == "session-1"
    db.expire_all()
    assert persistence_service.get_saved_tests(db, user_id) == []


def test_snapshot_survives_restart(user_id: int) -> None:
    first = SessionController(FakeGenerator())
    asyncio.run(_start(first, user_id))

    second = SessionController(FakeGenerator())
    assert second.pending_snapshot(user_id) is not None
    state = asyncio.run(second.resume_snapshot(user_id))
    assert state.phase == TestPhase.IN_PROGRESS
    assert state.session_id == "session-1"


def test_resume_without_snapshot(user_id: int) -> None:
    controller = SessionController(FakeGenerator())
    with pytest.raises(LookupError):
        asyncio.run(controller.resume_snapshot(user_id))


def test_explanations_and_chat_after_submit(user_id: int) -> None:
    generator = FakeGenerator()
    controller = SessionController(generator)

    async def scenario():
        await _start(controller, user_id)
        with pytest.raises(ValueError):
            await controller.explain(user_id, 0)
        await controller.dispatch(user_id, SubmitTest())
        state = await controller.explain(user_id, 0)
        chunks = [chunk async for chunk in controller.chat(user_id, 0, "Why A?")]
        again = [chunk async for chunk in controller.chat(user_id, 0, "And B?")]
        return state, chunks, again

    state, chunks, again = asyncio.run(scenario())
    assert state.questions[0].explanation == "Explanation for q1"
    assert "".join(chunks) == "You asked: Why A?"
    assert "".join(again) == "You asked: And B?"
    # one chat per question, seeded with the explanation
    assert len(generator.chats) == 1
    assert generator.chats[0].explanation == "Explanation for q1"


def test_sign_out_forgets_the_user(user_id: int) -> None:
    controller = SessionController(FakeGenerator())

    async def scenario():
        await _start(controller, user_id)
        await controller.sign_out(user_id)

    asyncio.run(scenario())
    assert snapshot_service.read_snapshot(user_id) is None
    assert controller.state(user_id).phase == TestPhase.HOME


class _HeldGenerator(FakeGenerator):
    """Holds the request for content "A" until released."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()

    async def generate_for_config(self, config, content):
        if content == "A":
            self.generated.append((config, content))
            await self.release.wait()
            return [make_mcq("fromA", correct=0)]
        return await super().generate_for_config(config, content)


def test_late_result_of_abandoned_generation_is_dropped(user_id: int) -> None:
    generator = _HeldGenerator()
    controller = SessionController(generator)

    async def scenario():
        await controller.dispatch(user_id, ChooseInputMethod(TestInputMethod.TOPIC))
        first = asyncio.create_task(
            controller.dispatch(user_id, SubmitConfig(make_config(content="A")))
        )
        while not generator.generated:
            await asyncio.sleep(0)
        await controller.dispatch(user_id, GoHome())
        await controller.dispatch(user_id, ChooseInputMethod(TestInputMethod.TOPIC))
        await controller.dispatch(user_id, SubmitConfig(make_config(content="B")))
        generator.release.set()
        await first

    asyncio.run(scenario())
    state = controller.state(user_id)
    assert state.phase == TestPhase.CONFIRMATION
    assert state.config.content == "B"
    assert [q.id for q in state.questions] == ["q1", "q2", "q3"]


def test_snapshot_writes_leave_the_event_loop_in_order(user_id: int, monkeypatch) -> None:
    writer_threads = []
    real_write = snapshot_service.write_snapshot

    def recording_write(uid, snapshot):
        writer_threads.append(threading.get_ident())
        real_write(uid, snapshot)

    monkeypatch.setattr(snapshot_service, "write_snapshot", recording_write)
    controller = SessionController(FakeGenerator(), tick_interval=0.001)
    config = make_config(time_settings=TimeSettings.timed(600))

    async def scenario():
        await _start(controller, user_id, config)
        while len(writer_threads) < 5:
            await asyncio.sleep(0.001)
        await controller.dispatch(user_id, SubmitTest())
        await controller.shutdown()

    asyncio.run(scenario())
    assert threading.get_ident() not in writer_threads
    assert controller.state(user_id).phase == TestPhase.COMPLETED
    assert snapshot_service.read_snapshot(user_id) is None
