"""
Credential Negotiator — Pick credentials for a transport round.

The transport presents the set of credential kinds it will accept and we
either offer one credential or decline. The only credential ever offered is
an SSH key held by the user's running ssh-agent; plaintext passwords,
custom SSH credentials and the transport default are always declined.

Each call is independent: nothing from a previous round influences the
next one.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import AbstractSet, Any, Mapping, Optional

import pygit2

logger = logging.getLogger(__name__)


class CredentialKind(str, Enum):
    """Credential kinds a transport may accept."""
    USERPASS_PLAINTEXT = "userpass_plaintext"
    SSH_KEY = "ssh_key"
    SSH_CUSTOM = "ssh_custom"
    DEFAULT = "default"


@dataclass(frozen=True)
class CredentialOffer:
    """Credentials offered for one negotiation round."""

    kind: CredentialKind
    username: str
    payload: Any = None


class SshAgent:
    """
    The user's running ssh-agent, reached through SSH_AUTH_SOCK.

    Keys are listed with `ssh-add -L`; the agent is usable only when it
    answers with at least one public key.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None, timeout: float = 5.0):
        self._env = env
        self.timeout = timeout

    @property
    def socket(self) -> Optional[str]:
        env = self._env if self._env is not None else os.environ
        return env.get("SSH_AUTH_SOCK") or None

    def has_keys(self) -> bool:
        """Return True if the agent is reachable and holds at least one key."""
        sock = self.socket
        if not sock:
            logger.debug("[auth] SSH_AUTH_SOCK not set, no agent")
            return False

        env = dict(self._env if self._env is not None else os.environ)
        env["SSH_AUTH_SOCK"] = sock

        try:
            result = subprocess.run(
                ["ssh-add", "-L"],
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            logger.debug("[auth] ssh-add not installed")
            return False
        except subprocess.TimeoutExpired:
            logger.warning(f"[auth] ssh-agent at {sock} did not answer")
            return False

        # 1 = agent has no identities, 2 = cannot connect to agent
        if result.returncode != 0:
            logger.debug(f"[auth] ssh-add -L exited {result.returncode}")
            return False

        keys = [line for line in result.stdout.splitlines() if line.strip()]
        return len(keys) > 0


def negotiate(
    url: str,
    username_hint: str,
    allowed: AbstractSet[CredentialKind],
    agent: Optional[SshAgent] = None,
) -> Optional[CredentialOffer]:
    """
    Choose credentials for one round.

    Args:
        url: Remote URL being connected to
        username_hint: Principal to authenticate as
        allowed: Credential kinds the transport accepts this round
        agent: ssh-agent to source keys from (defaults to the environment's)

    Returns:
        A CredentialOffer, or None to decline
    """
    if CredentialKind.USERPASS_PLAINTEXT in allowed:
        logger.info(f"[auth] {url}: plaintext credentials requested, declining")
        return None

    if CredentialKind.SSH_KEY in allowed:
        agent = agent or SshAgent()
        if not agent.has_keys():
            logger.warning(f"[auth] {url}: no usable key in ssh-agent, declining")
            return None
        logger.debug(f"[auth] {url}: offering ssh-agent key for {username_hint}")
        return CredentialOffer(
            kind=CredentialKind.SSH_KEY,
            username=username_hint,
            payload=pygit2.KeypairFromAgent(username_hint),
        )

    if CredentialKind.SSH_CUSTOM in allowed:
        logger.info(f"[auth] {url}: custom SSH credentials unsupported, declining")
        return None

    if CredentialKind.DEFAULT in allowed:
        logger.info(f"[auth] {url}: default credentials unsupported, declining")
        return None

    logger.info(f"[auth] {url}: no supported credential kind offered, declining")
    return None
