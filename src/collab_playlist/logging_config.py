import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
LOG_FILE_NAME = "collab_playlist.log"

# spotipy and its HTTP stack log every request at DEBUG/INFO.
NOISY_LOGGERS = ("spotipy", "urllib3", "requests")


def resolve_level(level: Union[int, str]) -> int:
    """Accept a logging level as int or name ("debug", "INFO"); unknown names mean INFO."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[Path] = None,
    logger_name: Optional[str] = None,
) -> logging.Logger:
    """
    Attach console and rotating-file handlers to the root (or named) logger.

    Calling it again on an already configured logger is a no-op.
    """
    target = logging.getLogger(logger_name)
    if target.handlers:
        return target

    numeric_level = resolve_level(level)
    log_dir = log_dir or LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    ))

    # Console output is read interactively next to the CLI's own output.
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    for handler in (file_handler, console_handler):
        handler.setLevel(numeric_level)
        target.addHandler(handler)
    target.setLevel(numeric_level)

    if numeric_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    if logger_name is None:
        logging.captureWarnings(True)
    return target


__all__ = ["setup_logging", "resolve_level", "LOG_DIR", "LOG_FILE_NAME"]
