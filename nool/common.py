"""
The common module is our grab bag of shared toys: the version, the base exceptions, and the logging
setup. Everything domain-specific lives in its own module.
"""

import enum
import logging
import logging.handlers
import os
import sys
from pathlib import Path

import appdirs

with (Path(__file__).parent / ".version").open("r") as fp:
    VERSION = fp.read().strip()

# Node ids are the names of the ancestor chain joined with this separator.
SEPARATOR = "/"


class NoolError(Exception):
    pass


class NoolExpectedError(NoolError):
    """These errors are printed without traceback."""

    pass


class EntryNotFoundError(NoolExpectedError):
    pass


class EntryExistsError(NoolExpectedError):
    pass


class EntryKind(enum.Enum):
    FILE = "file"
    FOLDER = "folder"


def join_id(parent_id: str, name: str) -> str:
    if not parent_id:
        return name
    return parent_id + SEPARATOR + name


def split_id(node_id: str) -> tuple[str, str]:
    """Split a node id into (parent id, leaf name). Top-level ids have an empty parent id."""
    parent_id, _, name = node_id.rpartition(SEPARATOR)
    return parent_id, name


__logging_initialized: set[str | None] = set()


def initialize_logging(logger_name: str | None = None) -> None:
    if logger_name in __logging_initialized:
        return
    __logging_initialized.add(logger_name)

    logger = logging.getLogger(logger_name)

    # appdirs by default has Unix log to $XDG_CACHE_HOME, but I'd rather write logs to $XDG_STATE_HOME.
    log_home = Path(appdirs.user_state_dir("nool"))
    if appdirs.system == "darwin":
        log_home = Path(appdirs.user_log_dir("nool"))

    # Useful for debugging the engine against real storage, since pytest captures our logging.
    log_despite_testing = os.environ.get("LOG_TEST", False)

    # Add a logging handler for stdout unless we are testing. Pytest captures logging output on its
    # own, so by default, we do not attach our own.
    if "pytest" not in sys.modules or log_despite_testing:  # pragma: no cover
        log_home.mkdir(parents=True, exist_ok=True)
        log_file = log_home / "nool.log"

        simple_formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        verbose_formatter = logging.Formatter(
            "[ts=%(asctime)s.%(msecs)03d] [pid=%(process)d] [src=%(name)s:%(lineno)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(simple_formatter if not log_despite_testing else verbose_formatter)
        logger.addHandler(stream_handler)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=20 * 1024 * 1024,
            backupCount=10,
        )
        file_handler.setFormatter(verbose_formatter)
        logger.addHandler(file_handler)
