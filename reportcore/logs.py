"""Diagnostic log for errors that must not be shown raw to the operator."""

from __future__ import annotations

import datetime
import sys
import traceback
from pathlib import Path

from reportcore.errors import KnownError, UnknownError


DEFAULT_LOGS_DIR = Path(".reportcore") / "logs"


def log_error(message: str, error: BaseException | None, logs_dir: str | Path) -> Path:
    """Append a timestamped entry to today's log file and point the user at it.

    Args:
        message: Short description of what failed.
        error: The underlying exception, if any; its stack is logged.
        logs_dir: Directory holding one ``<YYYY-MM-DD>.log`` file per day.

    Returns:
        Path of the log file written to.
    """
    now = datetime.datetime.now()
    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    path = logs_dir / f"{now.date().isoformat()}.log"

    with open(path, "a", encoding="utf-8") as f:
        f.write(f"[{now.isoformat(timespec='seconds')}] {message}\n")
        stack = _stack(error)
        if stack:
            f.write(stack.rstrip("\n"))
            f.write("\n")
        f.write("\n")

    print(f"{message}. Check logs for more details: {path}", file=sys.stderr)
    return path


def report_error(message: str, error: BaseException, logs_dir: str | Path) -> Path | None:
    """Show a known error verbatim; send anything else to the diagnostic log."""
    if isinstance(error, KnownError):
        print(f"{message}: {error.message}", file=sys.stderr)
        return None
    return log_error(message, error, logs_dir)


def _stack(error: BaseException | None) -> str:
    if error is None:
        return ""
    if isinstance(error, UnknownError) and error.stack:
        return f"{error.message}\n{error.stack}"
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))
