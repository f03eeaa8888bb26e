from visa_interview.config.settings import settings
from visa_interview.core.catalog import QuestionCatalog
from visa_interview.core.use_case import InterviewUseCase
from visa_interview.storages.session_storage import SessionStorage

_catalog: QuestionCatalog | None = None
_storage: SessionStorage | None = None
_use_case: InterviewUseCase | None = None


def get_catalog() -> QuestionCatalog:
    global _catalog
    if _catalog is None:
        if settings.QUESTION_BANK_PATH:
            _catalog = QuestionCatalog.from_json(settings.QUESTION_BANK_PATH)
        else:
            _catalog = QuestionCatalog.default()
    return _catalog


def get_storage() -> SessionStorage:
    global _storage
    if _storage is None:
        _storage = SessionStorage()
    return _storage


def get_use_case() -> InterviewUseCase:
    global _use_case
    if _use_case is None:
        _use_case = InterviewUseCase(settings, get_catalog(), get_storage())
    return _use_case


def shutdown_use_case() -> None:
    if _use_case is not None:
        _use_case.shutdown()
