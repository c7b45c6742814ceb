"""
Settings — Runtime configuration for gitfetch.

Everything the registry, fetcher and dispatcher need is carried on one
GitfetchSettings object that is built once at startup and passed in
explicitly. Values come from environment variables, optionally seeded from
a .env file in the config directory:

    XDG_CONFIG_HOME=~/.config
    GITFETCH_TIMEOUT=60
    GITFETCH_CONNECT_TIMEOUT=10
    GITFETCH_USERNAME=git
    GITFETCH_KNOWN_HOSTS=~/.ssh/known_hosts
    GITFETCH_FETCH_TAGS=true
    GITFETCH_MAX_CREDENTIAL_ROUNDS=3
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

APP_NAME = "gitfetch"
DEFAULT_WORKERS = 8


def _config_home(env: Mapping[str, str]) -> Path:
    xdg = env.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg)
    return Path(env.get("HOME", str(Path.home()))) / ".config"


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.lower() in ("true", "1", "yes")


def _as_number(env: Mapping[str, str], name: str, default, cast=int):
    raw = env.get(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a number, using {default}")
        return default


@dataclass
class GitfetchSettings:
    """Configuration for a gitfetch process."""

    config_dir: Path
    timeout_seconds: float = 60.0
    connect_timeout_seconds: float = 10.0
    default_username: str = "git"
    known_hosts: Optional[Path] = None
    fetch_tags: bool = True
    max_credential_rounds: int = 3

    @property
    def registry_file(self) -> Path:
        """Path of the JSON registry document."""
        return self.config_dir / f"{APP_NAME}.json"

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        load_env_file: bool = True,
    ) -> "GitfetchSettings":
        """Build settings from environment variables."""
        if env is None:
            config_dir = _config_home(os.environ) / APP_NAME
            env_file = config_dir / ".env"
            if load_env_file and env_file.exists():
                # Real environment wins over the file
                load_dotenv(env_file, override=False)
                logger.debug(f"Loaded {env_file}")
            env = os.environ

        config_dir = _config_home(env) / APP_NAME

        known_hosts_raw = env.get("GITFETCH_KNOWN_HOSTS")
        if known_hosts_raw:
            known_hosts = Path(known_hosts_raw).expanduser()
        else:
            home = Path(env.get("HOME", str(Path.home())))
            known_hosts = home / ".ssh" / "known_hosts"

        rounds = _as_number(env, "GITFETCH_MAX_CREDENTIAL_ROUNDS", 3)
        if rounds < 1:
            logger.warning("GITFETCH_MAX_CREDENTIAL_ROUNDS must be >= 1, using 1")
            rounds = 1

        return cls(
            config_dir=config_dir,
            timeout_seconds=_as_number(env, "GITFETCH_TIMEOUT", 60.0, float),
            connect_timeout_seconds=_as_number(
                env, "GITFETCH_CONNECT_TIMEOUT", 10.0, float
            ),
            default_username=env.get("GITFETCH_USERNAME") or "git",
            known_hosts=known_hosts,
            fetch_tags=_as_bool(env.get("GITFETCH_FETCH_TAGS"), True),
            max_credential_rounds=rounds,
        )
