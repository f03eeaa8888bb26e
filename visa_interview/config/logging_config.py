import logging
import sys
from pathlib import Path

QUIET_LOGGERS = ("uvicorn.access", "httpx", "mistralai")


def setup_logging(level: str | int = logging.INFO, log_dir: str | None = None) -> logging.Logger:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path / "service.log", encoding="utf-8"))

    logging.basicConfig(
        level=level.upper() if isinstance(level, str) else level,
        format='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("visa_interview")
