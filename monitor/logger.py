"""
Logging setup for the bot.

Three outputs share one root logger:
  - stderr: colored one-line console output, fills and alerts highlighted
  - logs/run_YYYYMMDD_HHMMSS.log: every record at DEBUG, for post-mortems
  - optional ndjson file: one JSON object per record

Every record is stamped with the scan it was emitted in (0 = outside any
scan), so a fill in the JSON log can be matched to the scan that placed it.
"""

from __future__ import annotations

import contextvars
import glob
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[31m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_MAGENTA = "\033[35m"
_CYAN = "\033[36m"
_WHITE = "\033[37m"

_LEVEL_STYLES = {
    "DEBUG": (_DIM, "DBG"),
    "INFO": (_CYAN, "INF"),
    "WARNING": (_YELLOW, "WRN"),
    "ERROR": (_RED, "ERR"),
    "CRITICAL": (_RED + _BOLD, "CRT"),
}

# Message prefixes worth spotting in a scrolling console
_EVENT_STYLES = (
    ("BUY FILLED", _GREEN + _BOLD),
    ("SELL FILLED", _GREEN + _BOLD),
    (">>> ALERT", _MAGENTA + _BOLD),
)

_NOISY_LOGGERS = ("httpx", "httpcore", "py_clob_client", "asyncio")

_RUN_LOG_PATTERN = "run_*.log"

_current_scan: contextvars.ContextVar[int] = contextvars.ContextVar("current_scan", default=0)


def set_scan(scan: int) -> None:
    """Stamp records logged from here on with this scan number."""
    _current_scan.set(scan)


class ScanContextFilter(logging.Filter):
    """Adds record.scan. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.scan = _current_scan.get()
        return True


class ConsoleFormatter(logging.Formatter):

    def __init__(self, use_color: bool = True, dry_run: bool = False):
        super().__init__()
        self._use_color = use_color and _supports_color()
        self._dry_run = dry_run

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        color, tag = _LEVEL_STYLES.get(record.levelname, (_WHITE, "???"))
        msg = record.getMessage()
        mode = "DRY " if self._dry_run else ""
        error = record.exc_info[1] if record.exc_info else None

        if not self._use_color:
            line = f"{ts} {mode}{tag} {msg}"
            return f"{line}\n     {error!r}" if error else line

        for prefix, style in _EVENT_STYLES:
            if msg.startswith(prefix):
                msg = f"{style}{msg}{_RESET}"
                break
        if mode:
            mode = f"{_MAGENTA}{mode}{_RESET}"
        line = f"{_DIM}{ts}{_RESET} {mode}{color}{tag}{_RESET} {msg}"
        return f"{line}\n{_RED}     {error!r}{_RESET}" if error else line


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "scan": getattr(record, "scan", 0),
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, separators=(",", ":"))


def prune_run_logs(log_dir: str, keep: int) -> int:
    """Delete all but the newest *keep* run logs. Returns how many were removed."""
    paths = sorted(glob.glob(os.path.join(log_dir, _RUN_LOG_PATTERN)))
    removed = 0
    for path in paths[: max(0, len(paths) - keep)]:
        try:
            os.remove(path)
        except OSError as e:
            logger.debug("Could not remove old run log %s: %s", path, e)
            continue
        removed += 1
    return removed


def setup_logging(
    level: str = "INFO",
    json_log_file: str | None = None,
    log_dir: str | None = None,
    dry_run: bool = False,
    keep_run_logs: int = 20,
) -> str:
    """
    Replace the root logger's handlers with console, verbose-file and
    (optional) JSON handlers. Returns the verbose log path.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    context = ScanContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ConsoleFormatter(dry_run=dry_run))
    console.addFilter(context)
    root.addHandler(console)

    log_dir = log_dir or os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")
    os.makedirs(log_dir, exist_ok=True)
    prune_run_logs(log_dir, keep=max(0, keep_run_logs - 1))
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(log_dir, f"run_{stamp}.log")

    verbose = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    verbose.setLevel(logging.DEBUG)
    verbose.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s [scan %(scan)d] %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    verbose.addFilter(context)
    root.addHandler(verbose)

    if json_log_file:
        machine = logging.FileHandler(json_log_file, mode="a", encoding="utf-8")
        machine.setFormatter(JSONFormatter())
        machine.addFilter(context)
        root.addHandler(machine)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
