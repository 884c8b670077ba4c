"""Logging setup, date-stamped log files, and error reporting helpers."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .config import PROJECT_ROOT, Settings

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


class DateStampedFileHandler(logging.FileHandler):
    """File handler writing to `<directory>/<YYYY-MM-DD>/<prefix>_<time>_UTC.log`."""

    def __init__(
        self,
        directory: str | Path,
        *,
        prefix: str = "app",
        encoding: str | None = "utf-8",
        mode: str = "a",
        delay: bool = False,
        errors: Optional[str] = None,
        current_time: datetime | None = None,
    ) -> None:
        timestamp = (current_time or datetime.now(timezone.utc)).astimezone(
            timezone.utc
        )
        date_folder = timestamp.strftime("%Y-%m-%d")
        human_time = timestamp.strftime("%Y-%m-%d_%H-%M-%S")
        log_path = (Path(directory) / date_folder / f"{prefix}_{human_time}_UTC.log").resolve()

        log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path = log_path
        super().__init__(
            log_path,
            mode=mode,
            encoding=encoding,
            delay=delay,
            errors=errors,
        )


def _remove_empty_dirs(root: Path) -> None:
    for child in root.iterdir():
        if child.is_dir() and not any(child.iterdir()):
            try:
                child.rmdir()
            except OSError as exc:
                logger.debug("Could not remove %s: %s", child, exc)


def cleanup_old_logs(
    log_directories: list[str | Path],
    retention_hours: int,
) -> tuple[int, int]:
    """Delete `*.log` files whose mtime is older than `retention_hours`.

    Date folders left empty are removed as well. A retention of 0 disables
    cleanup. Returns `(files_deleted, errors)`.
    """
    if retention_hours <= 0:
        return (0, 0)

    cutoff = (datetime.now(timezone.utc) - timedelta(hours=retention_hours)).timestamp()
    deleted = errors = 0

    for root in (Path(d).resolve() for d in log_directories):
        if not root.is_dir():
            continue
        for log_file in root.rglob("*.log"):
            try:
                if log_file.stat().st_mtime >= cutoff:
                    continue
                log_file.unlink()
            except OSError as exc:
                errors += 1
                logger.warning("Failed to delete %s: %s", log_file, exc)
            else:
                deleted += 1
                logger.debug("Deleted old log file: %s", log_file)
        _remove_empty_dirs(root)

    if deleted:
        logger.info("Log cleanup removed %d file(s), %d error(s)", deleted, errors)
    return (deleted, errors)


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from settings (console plus optional files)."""

    # Load .env so LOG_* variables set there are honoured for early loggers too
    load_dotenv()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    handlers: list[logging.Handler] = []
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_dir = settings.log_dir
    if log_dir is not None:
        if not log_dir.is_absolute():
            log_dir = PROJECT_ROOT / log_dir
        file_handler = DateStampedFileHandler(log_dir, prefix="search_assistant")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("search_assistant").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    if log_dir is not None:
        cleanup_old_logs([log_dir], settings.log_retention_hours)


def log_error(error: BaseException, tag: str) -> None:
    """Record an error raised while serving a turn, tagged by its origin."""

    logging.getLogger(f"search_assistant.errors.{tag}").error(
        "[%s] %s: %s",
        tag,
        type(error).__name__,
        error,
        exc_info=(type(error), error, error.__traceback__),
    )


__all__ = [
    "DateStampedFileHandler",
    "cleanup_old_logs",
    "configure_logging",
    "log_error",
]
