"""
Utility functions and helpers for FairGuard.

This package provides reusable utilities:

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, per-session log files and secret redaction applied
  before any sink. Suppresses noise from verbose libraries (Discord, HTTP and
  provider SDK internals). Uses prompt_toolkit for non-blocking console I/O.

- **validation.py**: Input validation for moderator- and user-supplied values
  (user ids, reasons, words, log ids, numeric options). Raises
  ``ValidationError`` before any side effect happens.

- **time_utils.py**: Millisecond clock and identifier helpers shared by the
  repositories and services.
"""
