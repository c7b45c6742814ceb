"""
Tests for the transport layer: remote URL parsing, the trust probe, and the
pygit2 callbacks that wire the verifier and negotiator into a fetch.

All OpenSSH helpers and network access are mocked.
"""

import base64
import hashlib
import subprocess
import threading
from unittest import mock

import pygit2
import pytest
from pygit2.enums import CredentialType

from gitfetch.errors import CredentialsDeclined, CredentialsExhausted, FetchCancelled, TrustRejected
from gitfetch.transport.callbacks import FetchCallbacks, allowed_kinds
from gitfetch.transport.probe import (
    RemoteEndpoint,
    TrustProbe,
    _parse_key_lines,
    parse_remote_url,
)
from gitfetch.trust.credentials import CredentialKind, SshAgent
from gitfetch.trust.verifier import HostKey, TrustDecision

KEY_A = b"\x00\x00\x00\x0bssh-ed25519\x00\x00\x00\x20" + bytes(range(32))
KEY_B = b"\x00\x00\x00\x0bssh-ed25519\x00\x00\x00\x20" + bytes(range(1, 33))


def _b64(blob: bytes) -> str:
    return base64.b64encode(blob).decode("ascii")


def _completed(stdout: str = "", returncode: int = 0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr="")


# ---------------------------------------------------------------------------
# parse_remote_url()
# ---------------------------------------------------------------------------

class TestParseRemoteUrl:

    @pytest.mark.parametrize("url, expected", [
        ("https://github.com/org/repo.git", RemoteEndpoint("https", "github.com", None, None)),
        ("https://user@git.example.com:8443/r.git", RemoteEndpoint("https", "git.example.com", 8443, "user")),
        ("ssh://git@example.com:2222/r.git", RemoteEndpoint("ssh", "example.com", 2222, "git")),
        ("git+ssh://example.com/r.git", RemoteEndpoint("ssh", "example.com", None, None)),
        ("git@github.com:org/repo.git", RemoteEndpoint("ssh", "github.com", None, "git")),
        ("example.com:repo.git", RemoteEndpoint("ssh", "example.com", None, None)),
        ("/srv/git/repo.git", RemoteEndpoint("file")),
        ("file:///srv/git/repo.git", RemoteEndpoint("file", None, None, None)),
        ("C:\\repos\\thing", RemoteEndpoint("file")),
    ])
    def test_parse(self, url, expected):
        assert parse_remote_url(url) == expected

    def test_known_hosts_name(self):
        assert RemoteEndpoint("ssh", "example.com").known_hosts_name == "example.com"
        assert RemoteEndpoint("ssh", "example.com", 22).known_hosts_name == "example.com"
        assert RemoteEndpoint("ssh", "example.com", 2222).known_hosts_name == "[example.com]:2222"


# ---------------------------------------------------------------------------
# TrustProbe
# ---------------------------------------------------------------------------

class TestTrustProbe:

    def test_parse_key_lines(self):
        output = "\n".join([
            "# example.com:22 SSH-2.0-OpenSSH_9.6",
            f"example.com ssh-ed25519 {_b64(KEY_A)}",
            "@cert-authority *.example.com ssh-rsa AAAA",
            "example.com ssh-rsa !!!notbase64!!!",
            "short line",
            "",
        ])
        assert _parse_key_lines(output) == [("ssh-ed25519", KEY_A)]

    def test_pinned_host_key_fingerprints(self, tmp_path):
        known_hosts = tmp_path / "known_hosts"
        known_hosts.write_text("placeholder\n")
        probe = TrustProbe(known_hosts=known_hosts, timeout=1)

        with mock.patch("gitfetch.transport.probe._run") as run:
            run.side_effect = [
                _completed(f"example.com ssh-ed25519 {_b64(KEY_A)}\n"),
                _completed(
                    "# Host example.com found: line 1\n"
                    f"example.com ssh-ed25519 {_b64(KEY_A)}\n"
                ),
            ]
            material = probe.host_key(RemoteEndpoint("ssh", "example.com"))

        assert material == HostKey(
            key=KEY_A,
            md5=hashlib.md5(KEY_A).digest(),
            sha1=hashlib.sha1(KEY_A).digest(),
        )
        keyscan_cmd = run.call_args_list[0].args[0]
        keygen_cmd = run.call_args_list[1].args[0]
        assert keyscan_cmd[0] == "ssh-keyscan"
        assert keygen_cmd[:3] == ["ssh-keygen", "-F", "example.com"]

    def test_changed_host_key_carries_old_fingerprints(self, tmp_path):
        """The server now presents KEY_B, known_hosts pins KEY_A."""
        known_hosts = tmp_path / "known_hosts"
        known_hosts.write_text("placeholder\n")
        probe = TrustProbe(known_hosts=known_hosts, timeout=1)

        with mock.patch("gitfetch.transport.probe._run") as run:
            run.side_effect = [
                _completed(f"example.com ssh-ed25519 {_b64(KEY_B)}\n"),
                _completed(f"example.com ssh-ed25519 {_b64(KEY_A)}\n"),
            ]
            material = probe.host_key(RemoteEndpoint("ssh", "example.com"))

        assert material.key == KEY_B
        assert material.md5 == hashlib.md5(KEY_A).digest()

    def test_unknown_host_has_no_fingerprints(self):
        probe = TrustProbe(known_hosts=None, timeout=1)
        with mock.patch("gitfetch.transport.probe._run") as run:
            run.return_value = _completed(f"example.com ssh-ed25519 {_b64(KEY_A)}\n")
            material = probe.host_key(RemoteEndpoint("ssh", "example.com"))

        assert material == HostKey(key=KEY_A)

    def test_keyscan_failure(self):
        probe = TrustProbe(known_hosts=None, timeout=1)
        with mock.patch("gitfetch.transport.probe._run", side_effect=FileNotFoundError):
            assert probe.host_key(RemoteEndpoint("ssh", "example.com")) is None

    def test_non_default_port_passed_to_keyscan(self):
        probe = TrustProbe(known_hosts=None, timeout=1)
        with mock.patch("gitfetch.transport.probe._run") as run:
            run.return_value = _completed("")
            probe.host_key(RemoteEndpoint("ssh", "example.com", 2222))

        cmd = run.call_args.args[0]
        assert cmd[cmd.index("-p") + 1] == "2222"

    def test_file_scheme_presents_nothing(self):
        probe = TrustProbe()
        assert probe.present(RemoteEndpoint("file"), "localhost", True) is None

    def test_tls_unreachable(self):
        probe = TrustProbe(timeout=1)
        with mock.patch(
            "gitfetch.transport.probe.ssl.get_server_certificate",
            side_effect=OSError("connection refused"),
        ):
            assert probe.present(RemoteEndpoint("https", "example.com"), "example.com", True) is None

    def test_tls_garbage_certificate(self):
        """An unparseable peer certificate presents nothing."""
        probe = TrustProbe(timeout=1)
        garbage = "-----BEGIN CERTIFICATE-----\nbm90IGEgY2VydGlmaWNhdGU=\n-----END CERTIFICATE-----\n"
        with mock.patch(
            "gitfetch.transport.probe.ssl.get_server_certificate",
            return_value=garbage,
        ):
            assert probe.present(RemoteEndpoint("https", "example.com"), "example.com", True) is None

    def test_garbage_certificate_rejected_by_callbacks(self):
        """A malformed certificate ends in a trust rejection, not a crash."""
        callbacks = FetchCallbacks(
            url="https://example.com/repo.git",
            username="git",
            probe=TrustProbe(timeout=1),
        )
        garbage = "-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n"
        with mock.patch(
            "gitfetch.transport.probe.ssl.get_server_certificate",
            return_value=garbage,
        ):
            with pytest.raises(TrustRejected):
                callbacks.certificate_check(None, True, b"example.com")
        assert isinstance(callbacks.abort_error, TrustRejected)


# ---------------------------------------------------------------------------
# FetchCallbacks
# ---------------------------------------------------------------------------

def make_callbacks(
    url="ssh://git@example.com/repo.git",
    material=None,
    decision=TrustDecision.ACCEPT,
    agent_keys=True,
    cancel=None,
    rounds=3,
):
    probe = mock.Mock(spec=TrustProbe)
    probe.present.return_value = material
    agent = mock.Mock(spec=SshAgent)
    agent.has_keys.return_value = agent_keys
    verify = mock.Mock(return_value=decision)
    callbacks = FetchCallbacks(
        url=url,
        username="fallback",
        probe=probe,
        cancel=cancel,
        max_credential_rounds=rounds,
        agent=agent,
        verify=verify,
    )
    return callbacks, probe, verify


class TestFetchCallbacks:

    def test_allowed_kinds_translation(self):
        bits = CredentialType.SSH_KEY | CredentialType.USERPASS_PLAINTEXT
        assert allowed_kinds(bits) == {CredentialKind.SSH_KEY, CredentialKind.USERPASS_PLAINTEXT}
        assert allowed_kinds(CredentialType.SSH_INTERACTIVE) == set()

    def test_username_from_url_preferred(self):
        callbacks, _, _ = make_callbacks(url="ssh://deploy@example.com/r.git")
        assert callbacks.username == "deploy"
        callbacks, _, _ = make_callbacks(url="https://example.com/r.git")
        assert callbacks.username == "fallback"

    def test_certificate_accepted(self):
        material = HostKey(key=KEY_A)
        callbacks, probe, verify = make_callbacks(material=material)

        assert callbacks.certificate_check(None, False, b"example.com") is True
        probe.present.assert_called_once_with(callbacks.endpoint, "example.com", False)
        verify.assert_called_once_with("example.com", material)
        assert callbacks.trust_decision == TrustDecision.ACCEPT

    def test_certificate_rejected(self):
        callbacks, _, _ = make_callbacks(decision=TrustDecision.REJECT)

        with pytest.raises(TrustRejected):
            callbacks.certificate_check(None, True, b"example.com")
        assert isinstance(callbacks.abort_error, TrustRejected)

    def test_every_handshake_reverified(self):
        callbacks, probe, verify = make_callbacks()
        callbacks.certificate_check(None, True, b"example.com")
        callbacks.certificate_check(None, True, b"example.com")
        assert probe.present.call_count == 2
        assert verify.call_count == 2

    def test_credentials_offer_agent_key(self):
        callbacks, _, _ = make_callbacks()
        credential = callbacks.credentials("ssh://example.com/r", "git", CredentialType.SSH_KEY)
        assert isinstance(credential, pygit2.KeypairFromAgent)
        assert callbacks.credential_rounds == 1

    def test_credentials_declined_for_plaintext(self):
        callbacks, _, _ = make_callbacks()
        with pytest.raises(CredentialsDeclined):
            callbacks.credentials("https://example.com/r", None, CredentialType.USERPASS_PLAINTEXT)
        assert isinstance(callbacks.abort_error, CredentialsDeclined)

    def test_credentials_declined_without_agent(self):
        callbacks, _, _ = make_callbacks(agent_keys=False)
        with pytest.raises(CredentialsDeclined):
            callbacks.credentials("ssh://example.com/r", "git", CredentialType.SSH_KEY)

    def test_credential_rounds_bounded(self):
        callbacks, _, _ = make_callbacks(rounds=2)
        callbacks.credentials("ssh://example.com/r", "git", CredentialType.SSH_KEY)
        callbacks.credentials("ssh://example.com/r", "git", CredentialType.SSH_KEY)

        with pytest.raises(CredentialsExhausted):
            callbacks.credentials("ssh://example.com/r", "git", CredentialType.SSH_KEY)

    def test_transfer_progress_cancelled(self):
        cancel = threading.Event()
        callbacks, _, _ = make_callbacks(cancel=cancel)

        callbacks.transfer_progress(mock.Mock())
        cancel.set()
        with pytest.raises(FetchCancelled):
            callbacks.transfer_progress(mock.Mock())
