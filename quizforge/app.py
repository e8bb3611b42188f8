"""Main FastAPI application with modularized routes."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizforge import __version__
from quizforge.config import GEMINI_API_KEYS
from quizforge.database import init_db
from quizforge.logging_setup import setup_console_logging
from quizforge.routes import auth, history, leaderboard, saved_tests, session, users
from quizforge.services.cleanup_service import schedule_cleanup
from quizforge.services.generation_service import ApiKeyRing, GeminiGenerator
from quizforge.services.session_service import SessionController


def create_app(
    generator: GeminiGenerator | None = None,
    start_cleanup: bool = True,
) -> FastAPI:
    """Build the application; the session controller lives for its lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db()
        if start_cleanup:
            schedule_cleanup()
        controller = SessionController(
            generator or GeminiGenerator(ApiKeyRing(GEMINI_API_KEYS))
        )
        app.state.session_controller = controller
        try:
            yield
        finally:
            await controller.shutdown()

    app = FastAPI(title="QuizForge API", version=__version__, lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def index() -> dict[str, str]:
        return {"name": "QuizForge", "version": __version__}

    # Include routers
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(session.router)
    app.include_router(history.router)
    app.include_router(saved_tests.router)
    app.include_router(leaderboard.router)
    return app


setup_console_logging()

app = create_app()
