"""
Megapool Logging
================

Process-wide logging for the ledger. The root logger is set up once, on
first import, with a rich console handler (or a plain stream handler when
highlighting is off) and an optional rotating file handler. Settings come
from ``.env`` through ``megapool.constants``.

Usage:
    >>> from megapool.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("validator #3 dissolved")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    DEFAULT_LOG_DATE_FORMAT,
    DEFAULT_LOG_FORMAT,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)


LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "megapool.log"

LEDGER_THEME = Theme({
    "ledger.amount":    "bold cyan",
    "ledger.error":     "bold red",
    "ledger.warning":   "bold yellow",
    "ledger.info":      "bold green",
    "ledger.debug":     "dim",
    "ledger.module":    "magenta",
    "ledger.state":     "bold white",
    "ledger.tag":       "bold magenta",
    "ledger.time":      "cyan",
    "ledger.validator": "bold blue",
})


class LedgerLogHighlighter(RegexHighlighter):
    """Colors amounts, validator references and states in ledger logs."""

    base_style = "ledger."
    highlights = [
        r"(?P<time>^\S+ UTC)",
        r"(?P<error>\b(ERROR|CRITICAL)\b)",
        r"(?P<warning>\bWARNING\b)",
        r"(?P<info>\bINFO\b)",
        r"(?P<debug>\bDEBUG\b)",
        r" - (?P<module>megapool[\w.]*) - ",
        r"(?P<amount>-?\+?\d+ g?wei\b)",
        r"(?P<validator>validator #\d+)",
        r"(?P<state>\b(QUEUED|ACTIVE|DISSOLVED|EXITING|EXITED)\b)",
        r"(?P<tag>\[[^\]]*\])",
    ]


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that drops escape sequences and control characters, since
    messages carry values decoded from beacon proofs.
    """

    _escapes = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _controls = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        return cls._controls.sub("", cls._escapes.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


def _checked_format(log_format: str) -> str:
    """Return ``log_format`` if it formats a record cleanly, else the default."""
    try:
        logging.Formatter(fmt=log_format, validate=True).format(
            logging.makeLogRecord({"msg": "format check"})
        )
        return log_format
    except (ValueError, KeyError, TypeError) as e:
        print(f"megapool.logger: bad LOG_FORMAT ({e}), using default", file=sys.stderr)
        return DEFAULT_LOG_FORMAT


def _checked_date_format(date_format: str) -> str:
    """Return ``date_format`` if it has a strftime directive, else the default."""
    if re.search(r"%[a-zA-Z]", date_format):
        try:
            time.strftime(date_format)
            return date_format
        except ValueError:
            pass
    print("megapool.logger: bad LOG_DATE_FORMAT, using default", file=sys.stderr)
    return DEFAULT_LOG_DATE_FORMAT


class LogManager:
    """
    Singleton owning the root logger setup.

    ``configure`` is idempotent; only the first call installs handlers.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._configured = False
        return cls._instance

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Install handlers on the root logger.

        Args:
            log_level: Level name, defaults to LOG_LEVEL
            log_file: Rotating log file, defaults to logs/megapool.log
            console_output: Log to stdout
            file_output: Log to ``log_file``, defaults to LOG_FILE_OUTPUT
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger()
            root.setLevel(level)
            root.handlers.clear()
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("asyncio").setLevel(logging.WARNING)

            formatter = TerminalSafeFormatter(
                fmt=_checked_format(LOG_FORMAT),
                datefmt=_checked_date_format(LOG_DATE_FORMAT) + " UTC",
            )
            formatter.converter = time.gmtime

            handlers = []
            if console_output and LOG_CONSOLE_HIGHLIGHTING:
                handlers.append(RichHandler(
                    console=Console(theme=LEDGER_THEME, highlight=False),
                    highlighter=LedgerLogHighlighter(),
                    show_time=False,
                    show_level=False,
                    show_path=False,
                    markup=False,
                    rich_tracebacks=True,
                ))
            elif console_output:
                handlers.append(logging.StreamHandler(sys.stdout))

            if LOG_FILE_OUTPUT if file_output is None else file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                handlers.append(logging.handlers.RotatingFileHandler(
                    str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                ))

            for handler in handlers:
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            self._configured = True

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Module logger, configuring the process on first use."""
    return _manager.get_logger(name)


_manager.configure()
