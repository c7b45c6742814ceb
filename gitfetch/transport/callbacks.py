"""
Fetch Callbacks — Bind trust verification and credential negotiation into
a pygit2 fetch.

libgit2 calls these synchronously from inside Remote.fetch(): the
certificate check once per handshake, the credential hook zero or more times
per connection, and the progress hook while objects arrive. Raising from any
of them aborts the fetch; pygit2 re-raises the exception from fetch().

One FetchCallbacks instance is created per fetch call. It holds only what
that connection needs: the round counter and the last abort reason.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Set

import pygit2
from pygit2.enums import CredentialType

from ..errors import (
    CredentialsDeclined,
    CredentialsExhausted,
    FetchAborted,
    FetchCancelled,
    TrustRejected,
)
from ..trust.credentials import CredentialKind, SshAgent, negotiate
from ..trust.verifier import TrustDecision, verify_certificate
from .probe import TrustProbe, parse_remote_url

logger = logging.getLogger(__name__)

_KIND_FLAGS = {
    CredentialKind.USERPASS_PLAINTEXT: CredentialType.USERPASS_PLAINTEXT,
    CredentialKind.SSH_KEY: CredentialType.SSH_KEY,
    CredentialKind.SSH_CUSTOM: CredentialType.SSH_CUSTOM,
    CredentialKind.DEFAULT: CredentialType.DEFAULT,
}


def allowed_kinds(allowed_types) -> Set[CredentialKind]:
    """Translate libgit2's allowed-type bit set into CredentialKinds."""
    bits = int(allowed_types)
    return {kind for kind, flag in _KIND_FLAGS.items() if bits & int(flag)}


class FetchCallbacks(pygit2.RemoteCallbacks):
    """pygit2 callbacks for one fetch of one remote."""

    def __init__(
        self,
        url: str,
        username: str,
        probe: TrustProbe,
        cancel: Optional[threading.Event] = None,
        max_credential_rounds: int = 3,
        agent: Optional[SshAgent] = None,
        verify: Callable = verify_certificate,
        choose_credentials: Callable = negotiate,
    ):
        super().__init__()
        self.url = url
        self.endpoint = parse_remote_url(url)
        self.username = self.endpoint.username or username
        self.probe = probe
        self.cancel = cancel
        self.max_credential_rounds = max_credential_rounds
        self.agent = agent
        self._verify = verify
        self._choose_credentials = choose_credentials

        self.trust_decision: Optional[TrustDecision] = None
        self.credential_rounds = 0
        self.abort_error: Optional[FetchAborted] = None

    def _abort(self, error: FetchAborted) -> FetchAborted:
        self.abort_error = error
        return error

    def certificate_check(self, certificate, valid, host) -> bool:
        if isinstance(host, bytes):
            host = host.decode("utf-8", "replace")

        material = self.probe.present(self.endpoint, host, bool(valid))
        self.trust_decision = self._verify(host, material)

        if self.trust_decision != TrustDecision.ACCEPT:
            raise self._abort(TrustRejected(f"{host}: endpoint identity not trusted"))
        return True

    def credentials(self, url, username_from_url, allowed_types):
        self.credential_rounds += 1
        if self.credential_rounds > self.max_credential_rounds:
            raise self._abort(
                CredentialsExhausted(
                    f"{url}: no credential accepted after {self.max_credential_rounds} rounds"
                )
            )

        allowed = allowed_kinds(allowed_types)
        username = username_from_url or self.username
        offer = self._choose_credentials(url, username, allowed, agent=self.agent)
        if offer is None:
            kinds = ", ".join(sorted(k.value for k in allowed)) or "none"
            raise self._abort(CredentialsDeclined(f"{url}: declined credential kinds [{kinds}]"))

        logger.debug(
            f"[auth] {url}: round {self.credential_rounds}, offering {offer.kind.value}"
        )
        return offer.payload

    def transfer_progress(self, stats) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise self._abort(FetchCancelled(f"{self.url}: transfer cancelled"))

    def sideband_progress(self, string) -> None:
        logger.debug(f"[fetch] remote: {string.strip()}")
