"""Test session routes: one endpoint per session event."""
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import StreamingResponse

from quizforge.config import NUM_QUESTIONS_AI_DECIDES
from quizforge.dependencies.auth import get_current_user
from quizforge.dependencies.session import get_session_controller
from quizforge.engine.models import (
    LanguageOption,
    NegativeMarkingSettings,
    TestConfig,
    TestInputMethod,
    TimeSettings,
)
from quizforge.engine.state_machine import (
    NO_INPUT_METHOD_MESSAGE,
    ApplyCorrections,
    BackToResults,
    CancelInProgress,
    ChooseInputMethod,
    ClearSelection,
    EditSettings,
    EnterReview,
    GoHome,
    InputAnswerText,
    InvalidTransitionError,
    NavigateQuestion,
    OpenHistory,
    OpenLeaderboard,
    OpenProfile,
    OverrideCorrectAnswer,
    SaveAndExit,
    SelectOption,
    StartTest,
    SubmitConfig,
    SubmitTest,
    ToggleMarkForReview,
)
from quizforge.models.db.user import User
from quizforge.models.session import (
    ChatRequest,
    CorrectionRequest,
    InputMethodRequest,
    NavigateRequest,
    OptionAnswerRequest,
    SessionStateResponse,
    StartTestRequest,
    TestConfigModel,
    TextAnswerRequest,
)
from quizforge.routes.common import dispatch_event, state_response
from quizforge.services.document_service import read_upload
from quizforge.services.generation_service import GenerationError
from quizforge.services.session_service import SessionController, new_id
from quizforge.utils.time_utils import utc_now

router = APIRouter(prefix="/api/session", tags=["session"])

CurrentUser = Annotated[User, Depends(get_current_user)]
Controller = Annotated[SessionController, Depends(get_session_controller)]


@router.get("", response_model=SessionStateResponse)
async def get_session(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    """Current session state; resume_available offers the in-progress snapshot."""
    return state_response(controller, user.id)


@router.post("/input-method", response_model=SessionStateResponse)
async def choose_input_method(
    data: InputMethodRequest, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, ChooseInputMethod(data.method))


def _input_method_for(controller: SessionController, user_id: int) -> TestInputMethod | None:
    state = controller.state(user_id)
    if state.input_method is not None:
        return state.input_method
    return state.config.input_method if state.config else None


@router.post("/config", response_model=SessionStateResponse)
async def submit_config(
    data: TestConfigModel, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    """Submit the setup form; generates questions unless they can be reused."""
    method = _input_method_for(controller, user.id) or data.input_method
    if method is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NO_INPUT_METHOD_MESSAGE)
    return await dispatch_event(controller, user.id, SubmitConfig(data.to_config(method)))


@router.post("/upload", response_model=SessionStateResponse)
async def upload_document(
    user: CurrentUser,
    controller: Controller,
    file: UploadFile = File(...),
    num_questions: int = Form(NUM_QUESTIONS_AI_DECIDES, ge=0),
    time_limit_seconds: int | None = Form(None, ge=0),
    negative_marking: float | None = Form(None, ge=0),
    selected_language: LanguageOption | None = Form(None),
    tita_enabled: bool = Form(False),
) -> SessionStateResponse:
    """
    Build a document configuration from an uploaded file and submit it.
    The test is named after the file; it can be renamed before starting.
    """
    content, mime_type, file_name = await read_upload(file)
    config = TestConfig(
        input_method=TestInputMethod.DOCUMENT,
        content=content,
        num_questions=num_questions,
        time_settings=(
            TimeSettings.timed(time_limit_seconds)
            if time_limit_seconds is not None
            else TimeSettings.untimed()
        ),
        negative_marking=NegativeMarkingSettings(
            enabled=negative_marking is not None,
            marks_per_question=negative_marking or 0.0,
        ),
        mime_type=mime_type,
        original_file_name=file_name,
        selected_language=selected_language,
        tita_enabled=tita_enabled,
    )
    return await dispatch_event(controller, user.id, SubmitConfig(config))


@router.post("/edit-settings", response_model=SessionStateResponse)
async def edit_settings(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, EditSettings())


@router.post("/start", response_model=SessionStateResponse)
async def start_test(
    user: CurrentUser, controller: Controller, data: StartTestRequest | None = None
) -> SessionStateResponse:
    """Start the confirmed test, optionally renaming it."""
    test_name = data.test_name if data else None
    return await dispatch_event(controller, user.id, StartTest(new_id(), test_name))


@router.post("/answers/{index}/option", response_model=SessionStateResponse)
async def select_option(
    index: int, data: OptionAnswerRequest, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, SelectOption(index, data.option_index))


@router.post("/answers/{index}/text", response_model=SessionStateResponse)
async def input_answer_text(
    index: int, data: TextAnswerRequest, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, InputAnswerText(index, data.text))


@router.post("/answers/{index}/mark", response_model=SessionStateResponse)
async def toggle_mark_for_review(
    index: int, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, ToggleMarkForReview(index))


@router.post("/answers/{index}/clear", response_model=SessionStateResponse)
async def clear_selection(
    index: int, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, ClearSelection(index))


@router.post("/navigate", response_model=SessionStateResponse)
async def navigate(
    data: NavigateRequest, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, NavigateQuestion(data.index))


@router.post("/submit", response_model=SessionStateResponse)
async def submit_test(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    """Submit the running test for scoring."""
    return await dispatch_event(controller, user.id, SubmitTest())


@router.post("/review", response_model=SessionStateResponse)
async def enter_review(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, EnterReview())


@router.post("/back", response_model=SessionStateResponse)
async def back_to_results(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, BackToResults())


@router.post("/corrections/apply", response_model=SessionStateResponse)
async def apply_corrections(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    """Re-score with the corrected answers and update the history entry."""
    return await dispatch_event(controller, user.id, ApplyCorrections())


@router.post("/corrections/{index}", response_model=SessionStateResponse)
async def override_correct_answer(
    index: int, data: CorrectionRequest, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    return await dispatch_event(
        controller, user.id, OverrideCorrectAnswer(index, data.option_index, data.text)
    )


@router.post("/explanations/{index}", response_model=SessionStateResponse)
async def generate_explanation(
    index: int, user: CurrentUser, controller: Controller
) -> SessionStateResponse:
    """Ask the generator to explain a question's answer."""
    try:
        await controller.explain(user.id, index)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GenerationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return state_response(controller, user.id)


@router.post("/chat/{index}")
async def follow_up_chat(
    index: int, data: ChatRequest, user: CurrentUser, controller: Controller
) -> StreamingResponse:
    """Stream the reply to a follow-up question as plain text."""
    try:
        controller.follow_up_chat(user.id, index)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GenerationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return StreamingResponse(
        controller.chat(user.id, index, data.message),
        media_type="text/plain; charset=utf-8",
    )


@router.post("/save-exit", response_model=SessionStateResponse)
async def save_and_exit(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    """Store the running test as a saved test and return home."""
    return await dispatch_event(controller, user.id, SaveAndExit(new_id(), utc_now()))


@router.post("/resume", response_model=SessionStateResponse)
async def resume_in_progress(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    """Resume the test left running in an earlier session."""
    try:
        await controller.resume_snapshot(user.id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return state_response(controller, user.id)


@router.post("/cancel", response_model=SessionStateResponse)
async def cancel_in_progress(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    """Discard the in-progress snapshot without saving it."""
    return await dispatch_event(controller, user.id, CancelInProgress())


@router.post("/home", response_model=SessionStateResponse)
async def go_home(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, GoHome())


@router.post("/history", response_model=SessionStateResponse)
async def open_history(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, OpenHistory())


@router.post("/profile", response_model=SessionStateResponse)
async def open_profile(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, OpenProfile())


@router.post("/leaderboard", response_model=SessionStateResponse)
async def open_leaderboard(user: CurrentUser, controller: Controller) -> SessionStateResponse:
    return await dispatch_event(controller, user.id, OpenLeaderboard())
