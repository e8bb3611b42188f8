"""
Session controller: one test session state machine per signed-in user.

The machine decides; this module carries out the effects it returns. The
countdown runs as an asyncio task per user, generation and persistence
results are fed back into the machine as events, and every persistence
write is followed by a fresh read of the user's history.
"""
import asyncio
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import AsyncIterator, Callable

from sqlalchemy.orm import Session as DBSession

from quizforge.config import TICK_INTERVAL_SECONDS
from quizforge.database import SessionLocal
from quizforge.engine.models import HistoryEntry, Question, SavedTest, TestPhase
from quizforge.engine.state_machine import (
    ClearSnapshot,
    DeleteSavedTest,
    Effect,
    Event,
    ExplanationReady,
    GenerateQuestions,
    GenerationFailed,
    GenerationSucceeded,
    MirrorSnapshot,
    RecordResult,
    ResumeSavedTest,
    ResumeSnapshot,
    SavedTestStored,
    SessionState,
    SignedIn,
    SignedOut,
    StartTimer,
    StopTimer,
    StoreSavedTest,
    TestSessionMachine,
    Tick,
)
from quizforge.services import persistence_service, snapshot_service
from quizforge.services.document_service import resolve_source_text
from quizforge.services.generation_service import (
    FollowUpChat,
    GenerationError,
    GeminiGenerator,
)
from quizforge.serialization import questions_to_list

logger = logging.getLogger(__name__)

SAVE_RESULT_FAILED_MESSAGE = (
    "Failed to save your test results. Your history may be out of date."
)
DELETE_SAVED_FAILED_MESSAGE = "Failed to remove the saved test after resuming."


def new_id() -> str:
    return uuid.uuid4().hex


class SessionController:
    """Owns the per-user machines, countdown tasks and follow-up chats."""

    def __init__(
        self,
        generator: GeminiGenerator,
        session_factory: Callable[[], DBSession] = SessionLocal,
        tick_interval: float = TICK_INTERVAL_SECONDS,
    ):
        self.generator = generator
        self.session_factory = session_factory
        self.tick_interval = tick_interval
        self._machines: dict[int, TestSessionMachine] = {}
        self._timers: dict[int, asyncio.Task] = {}
        self._chats: dict[tuple[int, str], FollowUpChat] = {}
        self._history: dict[int, list[HistoryEntry]] = {}
        self._alerts: dict[int, str] = {}
        # one worker keeps snapshot file writes in submission order
        self._snapshot_writer = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="snapshot-writer"
        )

    # ---- machine access ----

    def machine(self, user_id: int) -> TestSessionMachine:
        """Machine of a user; an authenticated user is past the auth phase."""
        machine = self._machines.get(user_id)
        if machine is None:
            machine = TestSessionMachine()
            machine.dispatch(SignedIn())
            self._machines[user_id] = machine
        return machine

    def state(self, user_id: int) -> SessionState:
        return self.machine(user_id).state

    def pop_alert(self, user_id: int) -> str | None:
        return self._alerts.pop(user_id, None)

    def history(self, user_id: int) -> list[HistoryEntry]:
        """Last history read for the user, loading it on first use."""
        if user_id not in self._history:
            self.refresh_history(user_id)
        return self._history[user_id]

    def refresh_history(self, user_id: int) -> list[HistoryEntry]:
        with self.session_factory() as db:
            self._history[user_id] = persistence_service.get_history(db, user_id)
        return self._history[user_id]

    def pending_snapshot(self, user_id: int):
        """Snapshot to offer for resume, only while nothing else is running."""
        if self.state(user_id).phase in (TestPhase.IN_PROGRESS, TestPhase.GENERATING):
            return None
        return snapshot_service.read_snapshot(user_id)

    # ---- dispatch ----

    async def dispatch(self, user_id: int, event: Event) -> SessionState:
        """Apply an event and carry out the resulting effects."""
        machine = self.machine(user_id)
        was_running = machine.phase == TestPhase.IN_PROGRESS
        effects = machine.dispatch(event)
        if machine.phase == TestPhase.IN_PROGRESS and not was_running:
            # a new attempt, earlier follow-up chats are stale
            self._drop_chats(user_id)
        await self._apply(user_id, effects)
        return machine.state

    async def sign_in(self, user_id: int) -> SessionState:
        return await self.dispatch(user_id, SignedIn())

    async def sign_out(self, user_id: int) -> None:
        machine = self._machines.get(user_id)
        if machine is not None:
            await self.dispatch(user_id, SignedOut())
        else:
            snapshot_service.clear_snapshot(user_id)
        self._cancel_timer(user_id)
        self._machines.pop(user_id, None)
        self._history.pop(user_id, None)
        self._alerts.pop(user_id, None)
        self._drop_chats(user_id)

    async def resume_snapshot(self, user_id: int) -> SessionState:
        snapshot = snapshot_service.read_snapshot(user_id)
        if snapshot is None:
            raise LookupError("No in-progress test to resume")
        return await self.dispatch(user_id, ResumeSnapshot(snapshot))

    async def resume_saved_test(self, user_id: int, saved: SavedTest) -> SessionState:
        return await self.dispatch(user_id, ResumeSavedTest(saved))

    async def _apply(self, user_id: int, effects: tuple[Effect, ...]) -> None:
        for effect in effects:
            if isinstance(effect, StartTimer):
                self._start_timer(user_id)
            elif isinstance(effect, StopTimer):
                self._cancel_timer(user_id)
            elif isinstance(effect, MirrorSnapshot):
                await self._snapshot_io(snapshot_service.write_snapshot, user_id, effect.snapshot)
            elif isinstance(effect, ClearSnapshot):
                await self._snapshot_io(snapshot_service.clear_snapshot, user_id)
            elif isinstance(effect, GenerateQuestions):
                await self._generate(user_id, effect)
            elif isinstance(effect, RecordResult):
                self._record_result(user_id, effect)
            elif isinstance(effect, StoreSavedTest):
                await self._store_saved_test(user_id, effect)
            elif isinstance(effect, DeleteSavedTest):
                self._delete_saved_test(user_id, effect)
            else:
                raise TypeError(f"Unknown effect: {effect!r}")

    # ---- effects ----

    async def _snapshot_io(self, func: Callable, user_id: int, *args) -> None:
        """Run a snapshot file operation on the writer thread."""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self._snapshot_writer, func, user_id, *args)

    def _start_timer(self, user_id: int) -> None:
        self._cancel_timer(user_id)
        if self.state(user_id).time_remaining_seconds is None:
            return
        self._timers[user_id] = asyncio.create_task(
            self._run_timer(user_id), name=f"countdown-{user_id}"
        )

    def _cancel_timer(self, user_id: int) -> None:
        task = self._timers.pop(user_id, None)
        # the countdown stops itself once the phase changes
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_timer(self, user_id: int) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            machine = self._machines.get(user_id)
            if machine is None or machine.phase != TestPhase.IN_PROGRESS:
                return
            state = await self.dispatch(user_id, Tick())
            if not state.time_remaining_seconds:
                return

    async def _generate(self, user_id: int, effect: GenerateQuestions) -> None:
        config = effect.config
        try:
            content = await resolve_source_text(config, self.generator)
            questions = await self.generator.generate_for_config(config, content)
        except GenerationError as e:
            logger.error(f"Test generation failed for user {user_id}: {e}")
            await self.dispatch(user_id, GenerationFailed(str(e), config))
            return
        except Exception as e:
            logger.exception(f"Unexpected generation error for user {user_id}")
            await self.dispatch(
                user_id,
                GenerationFailed(
                    f"An unknown error occurred during test generation: {e}",
                    config,
                ),
            )
            return
        await self.dispatch(user_id, GenerationSucceeded(tuple(questions), config))

    def _record_result(self, user_id: int, effect: RecordResult) -> None:
        with self.session_factory() as db:
            saved_id = persistence_service.save_session(
                db,
                user_id,
                effect.session_id,
                effect.test_name,
                effect.config,
                questions_to_list(effect.questions),
                effect.score,
                effect.was_corrected_by_user,
            )
        if saved_id is None:
            self._alerts[user_id] = SAVE_RESULT_FAILED_MESSAGE
        self.refresh_history(user_id)

    async def _store_saved_test(self, user_id: int, effect: StoreSavedTest) -> None:
        with self.session_factory() as db:
            ok = persistence_service.save_saved_test(db, user_id, effect.saved_test)
        await self.dispatch(user_id, SavedTestStored(ok))

    def _delete_saved_test(self, user_id: int, effect: DeleteSavedTest) -> None:
        with self.session_factory() as db:
            ok = persistence_service.delete_saved_test(
                db, user_id, effect.saved_test_id
            )
        if not ok:
            self._alerts[user_id] = DELETE_SAVED_FAILED_MESSAGE

    # ---- review tools ----

    def _review_question(self, user_id: int, index: int) -> Question:
        state = self.state(user_id)
        if state.phase not in (TestPhase.REVIEW, TestPhase.COMPLETED):
            raise ValueError("Explanations are available after the test is submitted")
        if not 0 <= index < len(state.questions):
            raise ValueError(f"Question index {index} out of range")
        return state.questions[index]

    async def explain(self, user_id: int, index: int) -> SessionState:
        """Generate an explanation and store it on the question."""
        question = self._review_question(user_id, index)
        explanation = await self.generator.generate_explanation(question)
        return await self.dispatch(user_id, ExplanationReady(index, explanation))

    def follow_up_chat(self, user_id: int, index: int) -> FollowUpChat:
        question = self._review_question(user_id, index)
        key = (user_id, question.id)
        chat = self._chats.get(key)
        if chat is None:
            chat = self.generator.open_follow_up_chat(question, question.explanation)
            self._chats[key] = chat
        return chat

    async def chat(self, user_id: int, index: int, message: str) -> AsyncIterator[str]:
        chat = self.follow_up_chat(user_id, index)
        async for chunk in chat.stream(message):
            yield chunk

    def _drop_chats(self, user_id: int) -> None:
        for key in [key for key in self._chats if key[0] == user_id]:
            del self._chats[key]

    # ---- lifecycle ----

    async def shutdown(self) -> None:
        """Cancel every countdown task and flush pending snapshot writes."""
        tasks = list(self._timers.values())
        self._timers.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._snapshot_writer.shutdown(wait=True)
        logger.info(f"Session controller stopped ({len(tasks)} countdowns cancelled)")
