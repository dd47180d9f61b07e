import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_DIR_ENV_VAR = "ICARSTOK_LOG_DIR"
LOG_FILE_NAME = "icarstok.log"


def resolve_log_dir() -> Path:
    """Return the directory for the rotating log file.

    ``ICARSTOK_LOG_DIR`` wins when set; otherwise logs go to ``.logs`` under
    the working directory, next to the ``config.ini`` the CLI discovers there.
    """

    override = os.environ.get(LOG_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser().resolve()
    return Path.cwd() / ".logs"


def _configure_logging(name: str = __name__, log_dir: Optional[Path] = None) -> logging.Logger:
    """Configure package-wide logging with file and console handlers."""

    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_dir = log_dir or resolve_log_dir()
    log_file = log_dir / LOG_FILE_NAME
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as exc:
        print(
            f"Warning: unable to initialize log file at '{log_file}': {exc}",
            file=sys.stderr,
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


log = _configure_logging()
log.debug("Logger initialized for the 'icarstok' package.")
