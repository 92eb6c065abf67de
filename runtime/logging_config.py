"""Shared ``theseus`` logger setup used by the CLI and by tests."""

import logging
from typing import Optional

LOGGER_NAME = "theseus"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)


def setup_logging(
    log_file: Optional[str] = None,
    *,
    quiet: bool = False,
    debug: bool = False,
) -> logging.Logger:
    """Configure and return the shared `theseus` logger.

    No file is written unless ``log_file`` is given. With ``debug`` the
    console also shows per-evaluation and per-restart DEBUG records.
    """
    logger = logging.getLogger(LOGGER_NAME)
    # pytest's caplog hooks the root logger.
    logger.propagate = True

    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file:
        try:
            _attach(logger, logging.FileHandler(log_file, mode="w"), level)
        except OSError as exc:
            print(f"[logging] Could not open log file '{log_file}': {exc}")

    if not quiet:
        _attach(logger, logging.StreamHandler(), level)

    return logger
