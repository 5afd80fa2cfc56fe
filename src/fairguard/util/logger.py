import logging
from logging.handlers import RotatingFileHandler
import os
import re
import sys
from pathlib import Path
from datetime import datetime
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# Session logs land in FAIRGUARD_LOG_DIR (default: <repo>/logs)
LOGS_DIR: Path = Path(os.getenv("FAIRGUARD_LOG_DIR", Path(__file__).parents[3] / "logs")).resolve()
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LOG_COLORS = {
    "DEBUG": "\033[36m",      # Cyan
    "INFO": "\033[32m",       # Green
    "WARNING": "\033[33m",    # Yellow
    "ERROR": "\033[31m",      # Red
    "CRITICAL": "\033[38;5;88m",  # Dark Red (ANSI 256-color)
}
RESET_COLOR = "\033[0m"

REDACTED = "[REDACTED]"

# Patterns for credentials that may show up in exception text or request dumps
SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    re.compile(r"(?i)((?:api[_-]?key|key|token|secret|password)\s*[=:]\s*)[^\s&\"',]+"),
    re.compile(r"\bsk-[A-Za-z0-9_\-]{16,}\b"),
    re.compile(r"\bsk-ant-[A-Za-z0-9_\-]{16,}\b"),
    re.compile(r"\bAIza[0-9A-Za-z_\-]{30,}\b"),
    # Discord bot tokens: base64 user id, timestamp and HMAC separated by dots
    re.compile(r"\b[MNO][A-Za-z\d_\-]{23,25}\.[A-Za-z\d_\-]{6}\.[A-Za-z\d_\-]{27,}\b"),
]

# Exact secret values registered at runtime (API keys, bot token)
_registered_secrets: set[str] = set()

LOG_FILEPATH: Path | None = None


def register_secret(value: str | None) -> None:
    """Mark a literal value as sensitive so every handler masks it.

    Values shorter than 6 characters are ignored to avoid masking common words.
    """
    if value and len(value) >= 6:
        _registered_secrets.add(value)


def redact(text: str) -> str:
    """Return ``text`` with registered secrets and known credential shapes masked."""
    for secret in sorted(_registered_secrets, key=len, reverse=True):
        if secret in text:
            text = text.replace(secret, REDACTED)
    for pattern in SENSITIVE_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda m: f"{m.group(1)}{REDACTED}", text)
        else:
            text = pattern.sub(REDACTED, text)
    return text


# -------------------- Filters & Formatters --------------------
class RedactingFilter(logging.Filter):
    """
    Logging filter that masks sensitive substrings before a record reaches a sink.

    The record message is rendered with its arguments first so secrets passed as
    %-style parameters are caught too; the rendered text then replaces ``msg``
    and ``args`` is cleared.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        redacted = redact(message)
        if redacted != message or record.args:
            record.msg = redacted
            record.args = None
        if record.exc_info and record.exc_info[1] is not None and not record.exc_text:
            record.exc_text = redact(logging.Formatter().formatException(record.exc_info))
        return True


class ColorFormatter(logging.Formatter):
    """Wraps each console line in the ANSI colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        color = LOG_COLORS.get(record.levelname, "")
        message = super().format(record)
        return f"{color}{message}{RESET_COLOR}" if color else message


class PromptToolkitHandler(logging.Handler):
    """Console sink writing through prompt_toolkit, which renders the ANSI colours portably."""

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            print_formatted_text(ANSI(msg))
        except Exception:
            self.handleError(record)


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


def should_use_color() -> bool:
    """Return True when stderr is attached to a terminal."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


color_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


# -------------------- Session log file and logger factory --------------------

def get_log_filepath() -> Path:
    """Session log file shared by every FairGuard logger.

    Quick restarts (previous file from today touched under a minute ago)
    append to the same file; otherwise a timestamped file is started.
    """
    global LOG_FILEPATH

    if LOG_FILEPATH is None:
        today_prefix = datetime.now().strftime("%Y-%m-%d")
        existing_logs = sorted(LOGS_DIR.glob(f"{today_prefix}*.log"), key=lambda p: p.stat().st_mtime, reverse=True)

        if existing_logs and datetime.now().timestamp() - existing_logs[0].stat().st_mtime < 60:
            LOG_FILEPATH = existing_logs[0]
        else:
            LOG_FILEPATH = LOGS_DIR / (datetime.now().strftime(DATE_FORMAT) + ".log")

    return LOG_FILEPATH


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and rotating file handlers, both behind the redacting filter.

    The console honours FAIRGUARD_LOG_LEVEL; the file always records DEBUG.
    Calling it twice for the same name returns the already-configured logger.
    """
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        return logger

    base_level = getattr(logging, os.getenv("FAIRGUARD_LOG_LEVEL", "DEBUG").upper(), logging.DEBUG)
    logger.setLevel(base_level)
    logger.propagate = False

    redacting_filter = RedactingFilter()

    console_handler = PromptToolkitHandler(formatter=color_formatter)
    console_handler.setLevel(base_level)
    console_handler.addFilter(redacting_filter)
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=5 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(plain_formatter)
    file_handler.addFilter(redacting_filter)
    logger.addHandler(file_handler)

    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Retrieve a logger configured for FairGuard, creating it if necessary."""
    return setup_logger(logger_name)


# -------------------- Uncaught exceptions --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    Global exception hook that logs uncaught exceptions.

    KeyboardInterrupt is passed to the default hook so Ctrl+C still terminates
    the process normally.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
    else:
        get_logger("uncaught").error(
            "Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback)
        )


# SDK and driver loggers: errors only
NOISY_LOGGERS = [
    "discord", "discord.gateway", "discord.http",
    "aiosqlite", "httpx", "httpcore", "openai", "anthropic", "google_genai",
    "websockets", "aiohttp",
]

for noisy_logger in NOISY_LOGGERS:
    lg = logging.getLogger(noisy_logger)
    lg.setLevel(logging.ERROR)
    lg.propagate = False
    lg.handlers = []
