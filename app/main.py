"""Territory Quest - FastAPI app entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.exceptions import AppError
from app.core.logging import configure_logging
from app.db.base import Base
from app.db.session import engine, AsyncSessionLocal
from app.routers import api, auth, quiz
from app.services.quiz_session import QuizSessionManager
from app.services.realtime import RoomEventBus

settings = get_settings()
logger = configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s started", settings.app_name)

    yield

    await app.state.quiz_manager.shutdown()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Study rooms where members conquer syllabus chapters by quiz",
    lifespan=lifespan,
)

app.state.session_factory = AsyncSessionLocal
app.state.event_bus = RoomEventBus()
app.state.quiz_manager = QuizSessionManager(AsyncSessionLocal, app.state.event_bus)
app.state.syllabus_generator = None


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.include_router(auth.router)
app.include_router(api.router)
app.include_router(quiz.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
