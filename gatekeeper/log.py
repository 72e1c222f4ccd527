import logging
import os
import sys
from logging import handlers
from pathlib import Path

import coloredlogs
import sentry_sdk
from pydis_core.utils import logging as core_logging
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from gatekeeper import constants

get_logger = core_logging.get_logger

LOG_FILE = Path("logs", "gatekeeper.log")
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 7

# Library loggers that are far too chatty at DEBUG for a bot that sees every message.
NOISY_LOGGERS = ("discord", "websockets", "aiohttp.access")


def setup() -> None:
    """Install the console and file handlers and apply the configured log levels."""
    root_log = get_logger()

    if constants.FILE_LOGS:
        root_log.addHandler(_file_handler())

    _install_coloredlogs(root_log)

    root_log.setLevel(logging.DEBUG if constants.DEBUG_MODE else logging.INFO)
    for name in NOISY_LOGGERS:
        get_logger(name).setLevel(logging.INFO)

    _set_trace_loggers(constants.Bot.trace_loggers)


def _file_handler() -> logging.Handler:
    """Return a size-rotated handler writing to `LOG_FILE`."""
    LOG_FILE.parent.mkdir(exist_ok=True)
    handler = handlers.RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf8",
    )
    handler.setFormatter(core_logging.log_format)
    return handler


def _install_coloredlogs(root_log: logging.Logger) -> None:
    """Send coloured output to stdout, unless the styles or format are overridden by coloredlogs' env vars."""
    if "COLOREDLOGS_LEVEL_STYLES" not in os.environ:
        styles = dict(coloredlogs.DEFAULT_LEVEL_STYLES)
        styles.update(
            trace={"color": 246},
            debug=coloredlogs.DEFAULT_LEVEL_STYLES["info"],
            critical={"background": "red"},
        )
        coloredlogs.DEFAULT_LEVEL_STYLES = styles

    if "COLOREDLOGS_LOG_FORMAT" not in os.environ:
        coloredlogs.DEFAULT_LOG_FORMAT = core_logging.log_format._fmt

    coloredlogs.install(level=core_logging.TRACE_LEVEL, logger=root_log, stream=sys.stdout)


def setup_sentry() -> None:
    """Report warnings and errors to Sentry. Does nothing when no DSN is configured."""
    if not constants.Bot.sentry_dsn:
        get_logger(__name__).debug("No Sentry DSN configured, errors will only be logged locally.")
        return

    sentry_sdk.init(
        dsn=constants.Bot.sentry_dsn,
        integrations=[
            LoggingIntegration(level=logging.DEBUG, event_level=logging.WARNING),
            AsyncioIntegration(),
        ],
        release=f"gatekeeper@{constants.GIT_SHA}",
    )


def _set_trace_loggers(level_filter: str) -> None:
    """
    Enable TRACE logging for the loggers named in `level_filter` (the BOT_TRACE_LOGGERS setting).

    * `*` puts the root logger at TRACE, ignoring anything after it.
    * `!a,b` puts the root logger at TRACE and holds `a` and `b` back at DEBUG.
    * `a,b` puts only `a` and `b` at TRACE.
    """
    if not level_filter:
        return

    if level_filter.startswith("*"):
        get_logger().setLevel(core_logging.TRACE_LEVEL)
        return

    excluded = level_filter.startswith("!")
    names = [name for name in level_filter.lstrip("!").split(",") if name]

    if excluded:
        get_logger().setLevel(core_logging.TRACE_LEVEL)

    for name in names:
        get_logger(name).setLevel(logging.DEBUG if excluded else core_logging.TRACE_LEVEL)
