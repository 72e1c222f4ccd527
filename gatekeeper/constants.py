"""
Loads bot configuration from environment variables and `.env` files.

By default, the values defined in the classes are used, these can be overridden by an env var with the same name.

`.env` and `.env.server` files are used to populate env vars, if present.
"""
import os
from pathlib import Path

from pydantic_settings import BaseSettings


class EnvConfig(
    BaseSettings,
    env_file=(".env.server", ".env"),
    env_file_encoding = "utf-8",
    env_nested_delimiter = "__",
    extra="ignore",
):
    """Our default configuration for models that should load from .env files."""


class _Miscellaneous(EnvConfig):
    debug: bool = True
    file_logs: bool = False


Miscellaneous = _Miscellaneous()


FILE_LOGS = Miscellaneous.file_logs
DEBUG_MODE = Miscellaneous.debug


class _Bot(EnvConfig, env_prefix="bot_"):

    prefix: str = "!"
    sentry_dsn: str = ""
    # Checked in `__main__` so a missing token produces a readable fatal error instead of a validation traceback.
    token: str = ""
    trace_loggers: str = ""


Bot = _Bot()


class _Guild(EnvConfig, env_prefix="guild_"):

    # Home guild used by pydis_core to track availability. The gate itself works in every guild it is added to.
    id: int = 0


Guild = _Guild()


class _Stats(EnvConfig, env_prefix="stats_"):

    statsd_host: str = "localhost"


Stats = _Stats()


class Colours:
    """Colour codes, used for embeds and for the roles the gate creates."""

    orange: int = 0xe67e22
    soft_green: int = 0x68c290
    soft_red: int = 0xcd6d6d


class _Verification(EnvConfig, env_prefix="verification_"):

    users_file: Path = Path("users.json")

    role_name: str = "verified"
    role_colour: int = Colours.soft_green

    challenge_ttl: int = 5 * 60  # Seconds
    prompt_lifetime: int = 60  # Seconds


Verification = _Verification()


class _RateWatch(EnvConfig, env_prefix="rate_watch_"):

    role_name: str = "Stunnerr"
    role_colour: int = Colours.orange

    window: int = 60  # Seconds
    threshold: int = 2  # Messages within `window` that trip the watch


RateWatch = _RateWatch()


class _Emojis(EnvConfig, env_prefix="emojis_"):

    check_mark: str = "\u2705"
    cross_mark: str = "\u274C"
    warning: str = "\u26A0\uFE0F"
    stopwatch: str = "\u23F1\uFE0F"


Emojis = _Emojis()


# Git SHA for Sentry
GIT_SHA = os.environ.get("GIT_SHA", "development")
