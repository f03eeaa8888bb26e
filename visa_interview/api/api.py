from fastapi import APIRouter, Depends

from visa_interview.api.deps import get_use_case
from visa_interview.api.endpoints.interview import interview_router
from visa_interview.core.use_case import InterviewUseCase

api_router = APIRouter()

api_router.include_router(interview_router, prefix="/interview", tags=["interview"])


@api_router.get("/health", tags=["system"])
async def health(use_case: InterviewUseCase = Depends(get_use_case)):
    return {
        "status": "ok",
        "app": use_case.settings.APP_NAME,
        "sessions": len(use_case.list_sessions()),
        "questions": len(use_case.catalog)
    }
