import json
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from clinassist.config.settings import settings

_BASE_LOGGER_NAME = "clinassist"
_CONFIGURED = False
_FILE_HANDLER_MARK = "_clinassist_debug_file"


def _resolve_log_level(level_name: str, fallback: int) -> int:
    level = getattr(logging, (level_name or "").strip().upper(), None)
    if isinstance(level, int):
        return level
    return fallback


def _ensure_debug_file_handler(base_logger: logging.Logger) -> None:
    for handler in base_logger.handlers:
        if getattr(handler, _FILE_HANDLER_MARK, False):
            return

    backup_count = settings.LOG_FILE_BACKUP_COUNT
    if backup_count < 0:
        base_logger.warning(
            "[logger] Invalid LOG_FILE_BACKUP_COUNT '%s', fallback to 7",
            backup_count,
        )
        backup_count = 7

    file_level = _resolve_log_level(settings.LOG_FILE_LEVEL, logging.DEBUG)

    try:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=str(log_dir / settings.LOG_FILE_NAME),
            when=settings.LOG_FILE_WHEN,
            interval=settings.LOG_FILE_INTERVAL,
            backupCount=backup_count,
            encoding=settings.LOG_FILE_ENCODING,
        )
    except OSError as exc:
        base_logger.warning(
            "[logger] Failed to configure debug file logging at '%s': %s",
            settings.LOG_DIR,
            exc,
        )
        return

    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))
    setattr(file_handler, _FILE_HANDLER_MARK, True)
    base_logger.addHandler(file_handler)
    # File handler takes DEBUG, so the logger itself must let DEBUG through.
    base_logger.setLevel(min(base_logger.level, file_level))


def configure_logging() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    base_logger = logging.getLogger(_BASE_LOGGER_NAME)
    log_level = _resolve_log_level(settings.LOG_LEVEL, logging.INFO)

    if not base_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(log_level)
        handler.setFormatter(logging.Formatter(settings.LOG_FORMAT))
        base_logger.addHandler(handler)
        base_logger.propagate = False
    base_logger.setLevel(log_level)

    if log_level == logging.INFO and settings.LOG_LEVEL.strip().upper() != "INFO":
        base_logger.warning(
            "[logger] Invalid LOG_LEVEL '%s', fallback to INFO",
            settings.LOG_LEVEL,
        )

    _ensure_debug_file_handler(base_logger)

    _CONFIGURED = True


def get_logger(name: str | None = None) -> logging.Logger:
    configure_logging()
    base_logger = logging.getLogger(_BASE_LOGGER_NAME)
    if not name:
        return base_logger
    if name.startswith(f"{_BASE_LOGGER_NAME}."):
        name = name[len(_BASE_LOGGER_NAME) + 1:]
    return base_logger.getChild(name)


def _stringify_log_content(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, BaseModel):
        return json.dumps(content.model_dump(mode="json", by_alias=True), ensure_ascii=False)
    if isinstance(content, (dict, list)):
        return json.dumps(content, ensure_ascii=False, default=str)
    return str(content)


def log_stage(logger: logging.Logger, stage: str, content: Any) -> None:
    text = _stringify_log_content(content)

    if not text:
        logger.info("[%s] output:\n[EMPTY]", stage)
        return

    limit = settings.LOG_TRUNCATE
    if len(text) <= limit:
        truncated = text
    else:
        truncated = f"{text[:limit]} ...[truncated {len(text) - limit} chars]"

    logger.info("[%s] output:\n%s", stage, truncated)
