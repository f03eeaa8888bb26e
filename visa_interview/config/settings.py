from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Visa Interview Engine"
    APP_ADDRESS: str = "0.0.0.0"
    APP_PORT: int = 8000

    MISTRAL_API_KEY: str | None = None
    MISTRAL_MODEL: str = "mistral-large-latest"
    MISTRAL_FALLBACK_MODEL: str | None = "mistral-small-latest"
    SCORER_TIMEOUT_SECONDS: float = 20.0

    DEFAULT_MODE: str = "standard"
    DEFAULT_ROUTE: str = "usa_f1"
    ENABLE_FOLLOW_UPS: bool = False
    QUESTION_BANK_PATH: str | None = None

    PREP_SECONDS: float = 30.0
    ANSWER_SECONDS: float = 30.0
    MAX_ANSWER_SECONDS: float = 15.0
    SILENCE_SECONDS: float = 3.0
    TICK_INTERVAL_SECONDS: float | None = 0.25

    PERSIST_MAX_RETRIES: int = 3

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str | None = None

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


settings = Settings()
