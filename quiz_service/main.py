import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from shared.database import Base, make_engine, make_session_factory

from . import models  # noqa: F401  (register tables on Base.metadata)
from .config import Settings
from .errors import AccessDeniedError, QuizServiceError
from .notifications import Notifier
from .routes import build_router
from .service import QuizService

logger = logging.getLogger("quiz-service")


async def quiz_service_error_handler(request: Request, exc: QuizServiceError) -> JSONResponse:
    content = {"detail": exc.detail}
    if isinstance(exc, AccessDeniedError):
        content["reason"] = exc.reason
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app(settings: Settings | None = None, SessionLocal=None,
               notifier: Notifier | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    if SessionLocal is None:
        engine = make_engine(settings.database_url)
        Base.metadata.create_all(bind=engine)
        SessionLocal = make_session_factory(engine)

    notifier = notifier or Notifier(settings.notification_service_url, timeout=settings.notification_timeout)
    service = QuizService(settings, notifier)

    app = FastAPI(title="Quiz Service", version="1.0.0")

    # Browsers reject "*" with credentials
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(QuizServiceError, quiz_service_error_handler)
    app.include_router(build_router(SessionLocal, service), prefix="/quizzes", tags=["Quiz"])

    @app.get("/health", operation_id="health_check", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "service": "quiz-service"}

    logger.info(
        "Quiz service ready (strict_batch_resolution=%s, enforce_schedule_window=%s)",
        settings.strict_batch_resolution, settings.enforce_schedule_window,
    )
    return app


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "8004"))
    uvicorn.run(create_app(), host="0.0.0.0", port=port)
