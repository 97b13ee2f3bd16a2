"""Logging for the daily signal job: colored console plus rotating file."""

import logging
import logging.handlers
import sys
from pathlib import Path

from colorama import Fore, Style, init as colorama_init

LOGGER_NAME = "horsai"


class ColoredFormatter(logging.Formatter):
    """Console formatter with color-coded log levels."""

    COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record):
        # Colour a copy so the file handler still sees the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelno, "")
        colored.levelname = f"{color}{record.levelname}{Style.RESET_ALL}"
        return super().format(colored)


class RunDateFilter(logging.Filter):
    """Stamps every record with the run date of the batch in progress."""

    def __init__(self):
        super().__init__()
        self.run_date = "-"

    def filter(self, record):
        record.run_date = self.run_date
        return True


_run_filter = RunDateFilter()


def set_run_date(run_date) -> None:
    """Tag subsequent log lines with *run_date* ("-" when idle)."""
    _run_filter.run_date = str(run_date) if run_date else "-"


def setup_logging(log_dir: Path, level: str = "INFO") -> logging.Logger:
    """Configure the horsai logger with console and rotating file handlers."""
    colorama_init()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ColoredFormatter("%(levelname)s [%(run_date)s] %(name)s: %(message)s"))
    console.addFilter(_run_filter)
    logger.addHandler(console)

    # 5MB x 5 backups, full detail
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / "horsai.log", maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.addFilter(_run_filter)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s run=%(run_date)s %(name)s "
        "[%(filename)s:%(lineno)d] %(message)s"
    ))
    logger.addHandler(file_handler)

    return logger
