"""
Logging setup for edit-chroot.

The tool talks to the operator through logging: "Backing up dev to …",
"Moving keyfile from … to …" are WARNING records, so they show at the
default level with nothing but the message, the way the shell tool
printed them.  ``-v`` adds timestamps and module names, ``--debug``
adds levels and line numbers.

Level precedence:  --debug  >  -v  >  CROUTON_LOG_LEVEL  >  WARNING

CROUTON_LOG_FILE additionally writes a full-detail log, at
CROUTON_LOG_FILE_LEVEL if set, otherwise at the console level.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Mapping

LEVEL_ENV = "CROUTON_LOG_LEVEL"
FILE_ENV = "CROUTON_LOG_FILE"
FILE_LEVEL_ENV = "CROUTON_LOG_FILE_LEVEL"

# Console format per threshold; the first entry the level reaches wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s %(name)s: %(message)s", "%H:%M:%S"),
)
_CONSOLE_PLAIN = "%(message)s"

_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(
    *,
    debug: bool = False,
    verbose: bool = False,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Console level name from the CLI flags and the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    env = os.environ if environ is None else environ
    return env.get(LEVEL_ENV) or "WARNING"


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_PLAIN)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root handlers with a stderr handler and an optional file.

    Args:
        level: Console level name; unknown names fall back to WARNING.
        log_file: Also log to this file.
        log_file_level: Level for the file (default: ``level``).
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    lowest = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        lowest = min(lowest, file_level)

    root.setLevel(lowest)
    logging.raiseExceptions = False


def setup_cli_logging(
    *,
    debug: bool = False,
    verbose: bool = False,
    environ: Mapping[str, str] | None = None,
) -> None:
    """``setup_logging`` driven by the CLI flags and CROUTON_LOG_* variables."""
    env = os.environ if environ is None else environ
    setup_logging(
        resolve_level(debug=debug, verbose=verbose, environ=env),
        log_file=env.get(FILE_ENV),
        log_file_level=env.get(FILE_LEVEL_ENV),
    )


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
