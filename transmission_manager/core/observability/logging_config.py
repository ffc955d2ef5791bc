"""
Logging configuration — called once at CLI start.

Every module does ``logger = logging.getLogger(__name__)`` and inherits
this setup.

Levels are resolved in precedence order:
    CLI flag  >  TM_LOG_LEVEL env var  >  WARNING (default)

Optional file output via ``--log-file`` or TM_LOG_FILE / TM_LOG_FILE_LEVEL.
The log file is kept at mode 0640: it records host paths and commands.
"""

from __future__ import annotations

import logging
import os
import sys

# WARNING level — the message only
_FMT_MINIMAL = "%(message)s"

# INFO level — timestamped
_FMT_VERBOSE = "%(asctime)s %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level — full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# File output — always full detail
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("urllib3", "charset_normalizer")

LOG_FILE_MODE = 0o640


def resolve_level(verbose: bool = False, quiet: bool = False, debug: bool = False) -> str:
    """Pick the console level from CLI flags, then the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get("TM_LOG_LEVEL", "WARNING")


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console log level name.
        log_file: Optional path to a log file (appended to).
        log_file_level: Separate level for the file. Defaults to INFO so
            the step trail is always captured.
        quiet_third_party: Keep noisy third-party loggers at WARNING
            unless we're at DEBUG level.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)

    effective_level = numeric_level
    file_error: str | None = None

    if log_file:
        file_level = _parse_level(log_file_level or "INFO")
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            # Not fatal: non-root status checks cannot open /var/log
            file_error = str(e)
        else:
            _secure(log_file)
            fh.setLevel(file_level)
            fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
            root.addHandler(fh)
            effective_level = min(effective_level, file_level)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False

    if file_error:
        logging.getLogger(__name__).debug("Cannot open log file %s: %s", log_file, file_error)


def _secure(path: str) -> None:
    try:
        os.chmod(path, LOG_FILE_MODE)
    except OSError:
        pass


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
