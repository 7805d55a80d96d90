import logging
from pathlib import Path
from typing import Optional

from .config import Settings, get_settings


def _resolve_level(raw: str) -> int:
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure the root logger from LOG_LEVEL / LOG_FILE.

    Writes to LOG_FILE when set, otherwise to stderr. Safe to call more than once;
    previously installed root handlers are replaced.
    """
    settings = settings or get_settings()
    level = _resolve_level(settings.log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path, encoding="utf-8")
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(formatter)
    handler.setLevel(level)
    root_logger.addHandler(handler)
