from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from visa_interview.api.api import api_router
from visa_interview.api.deps import shutdown_use_case
from visa_interview.config.logging_config import setup_logging
from visa_interview.config.settings import settings
from visa_interview.core.exceptions import InterviewError
from visa_interview.system.exceptions import BaseHTTPException, common_exception_handler, interview_exception_handler

setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    yield
    shutdown_use_case()


def prepare_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Adaptive visa interview practice engine",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")
    app.add_exception_handler(BaseHTTPException, common_exception_handler)
    app.add_exception_handler(InterviewError, interview_exception_handler)

    return app


def start_service() -> None:
    uvicorn.run(
        prepare_app(),
        host=settings.APP_ADDRESS,
        port=settings.APP_PORT,
    )


app = prepare_app()

if __name__ == "__main__":
    start_service()
