"""
Logging for vaultlock.

Every module logs through ``get_logger(area)``, a child of the ``vaultlock``
logger. ``setup_logging()`` attaches the handlers once, on that parent:

- console: ``[area] HH:MM:SS LEVEL message``, colored per top-level area
- file: one timestamped file per run, with ``latest.log`` pointing at it

Until ``setup_logging()`` runs, records propagate to the root logger as usual.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "vaultlock"
DEFAULT_LOG_DIR = Path.home() / ".vaultlock" / "logs"

RESET = "\033[0m"
DIM = "\033[2m"

# Keyed by the first segment of the area, so "lock.gate" uses "lock"
AREA_COLORS = {
    "main": "\033[96m",
    "api": "\033[92m",
    "auth": "\033[32m",
    "lock": "\033[95m",
    "storage": "\033[36m",
    "config": "\033[36m",
    "events": "\033[37m",
    "database": "\033[94m",
    "biometric": "\033[91m",
}

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;91m",
}

# Passed through ``extra=`` and appended to file lines
CONTEXT_FIELDS = ("user_id", "lock_type")


def area_of(record: logging.LogRecord) -> str:
    prefix = ROOT_LOGGER + "."
    return record.name[len(prefix):] if record.name.startswith(prefix) else record.name


class ConsoleFormatter(logging.Formatter):
    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        area = area_of(record)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            area_color = AREA_COLORS.get(area.split(".")[0], "")
            level_color = LEVEL_COLORS.get(record.levelno, "")
            line = (
                f"{area_color}[{area}]{RESET} {DIM}{timestamp}{RESET} "
                f"{level_color}{level}{RESET} {record.getMessage()}"
            )
        else:
            line = f"[{area}] {timestamp} {level} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class FileFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        context = "".join(
            f" {name}={getattr(record, name)}" for name in CONTEXT_FIELDS if hasattr(record, name)
        )
        line = f"{timestamp} [{area_of(record)}] {record.levelname}: {record.getMessage()}{context}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _point_latest(log_dir: Path, filename: str) -> None:
    latest = log_dir / "latest.log"
    try:
        if latest.is_symlink() or latest.exists():
            latest.unlink()
        latest.symlink_to(filename)
    except OSError as e:
        # Some filesystems refuse symlinks; the dated file is still written
        get_logger("main").debug(f"Could not update {latest}: {e}")


def setup_logging(
    log_dir: Optional[str] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Attach console and file handlers to the ``vaultlock`` logger.

    Calling it again replaces the handlers from the previous call.

    Args:
        log_dir: Directory for log files. Defaults to ~/.vaultlock/logs
        console_level: Minimum level for console output
        file_level: Minimum level for the log file

    Returns:
        The log directory
    """
    directory = Path(log_dir).expanduser() if log_dir else DEFAULT_LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / datetime.now().strftime("vaultlock_%Y%m%d_%H%M%S.log")

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(ConsoleFormatter(color=sys.stdout.isatty()))

    log_file = logging.FileHandler(log_path, encoding="utf-8")
    log_file.setLevel(file_level)
    log_file.setFormatter(FileFormatter())

    parent = logging.getLogger(ROOT_LOGGER)
    for handler in list(parent.handlers):
        parent.removeHandler(handler)
        handler.close()
    parent.setLevel(logging.DEBUG)
    parent.addHandler(console)
    parent.addHandler(log_file)
    parent.propagate = False

    _point_latest(directory, log_path.name)
    get_logger("main").info(f"Logging to {log_path}")
    return directory


def get_logger(area: str = "main") -> logging.Logger:
    """
    Logger for one component area, e.g. ``get_logger("lock.idle")``.

    Output: ``[lock.idle] 14:32:15 INFO     Idle timeout reached``
    """
    return logging.getLogger(f"{ROOT_LOGGER}.{area}")
