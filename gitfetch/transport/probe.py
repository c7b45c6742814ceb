"""
Trust Probe — Obtain the identity a remote presents.

libgit2 (through pygit2) tells the certificate callback only the hostname
and whether it validated the chain itself. The probe fills in the rest for
the verifier:

- HTTPS: the peer certificate, read from a TLS handshake with the host.
- SSH: the host key blob, read with ssh-keyscan, together with the MD5 and
  SHA-1 fingerprints of the key pinned for that host in known_hosts
  (looked up with ssh-keygen -F, which understands hashed entries).

A host with no pinned key advertises no fingerprint, which the verifier
rejects.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
import re
import ssl
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import urlsplit

from cryptography import x509

from ..trust.verifier import HostKey, X509Certificate

logger = logging.getLogger(__name__)

# user@host:path, but not a Windows drive letter like C:\repo
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/\\]{2,}):(?P<path>.*)$")

SSH_SCHEMES = ("ssh", "git+ssh", "ssh+git")
TLS_SCHEMES = ("https",)

Material = Union[X509Certificate, HostKey, None]


@dataclass(frozen=True)
class RemoteEndpoint:
    """Where a remote URL points."""

    scheme: str
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None

    @property
    def is_ssh(self) -> bool:
        return self.scheme == "ssh"

    @property
    def is_tls(self) -> bool:
        return self.scheme in TLS_SCHEMES

    @property
    def known_hosts_name(self) -> str:
        """Host as written in known_hosts ("[host]:port" for non-default ports)."""
        if self.port and self.port != 22:
            return f"[{self.host}]:{self.port}"
        return self.host or ""


def parse_remote_url(url: str) -> RemoteEndpoint:
    """
    Parse a git remote URL.

    Handles scheme URLs (https://, ssh://, file://) and scp-like SSH
    addresses (git@example.com:org/repo.git). Bare paths are "file".
    """
    if "://" in url:
        parts = urlsplit(url)
        scheme = parts.scheme.lower()
        if scheme in SSH_SCHEMES:
            scheme = "ssh"
        try:
            port = parts.port
        except ValueError:
            port = None
        return RemoteEndpoint(
            scheme=scheme,
            host=parts.hostname,
            port=port,
            username=parts.username,
        )

    match = _SCP_LIKE.match(url)
    if match:
        return RemoteEndpoint(
            scheme="ssh",
            host=match.group("host"),
            username=match.group("user"),
        )

    return RemoteEndpoint(scheme="file")


def _run(cmd: List[str], timeout: float) -> subprocess.CompletedProcess:
    """Run an OpenSSH helper and capture its output."""
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
    )


def _parse_key_lines(output: str) -> List[Tuple[str, bytes]]:
    """Parse "host keytype base64 [comment]" lines into (keytype, blob)."""
    keys = []
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("@"):
            continue
        fields = line.split()
        if len(fields) < 3:
            continue
        try:
            blob = base64.b64decode(fields[2], validate=True)
        except (binascii.Error, ValueError):
            logger.debug(f"[trust] Ignoring malformed key line: {line[:60]}")
            continue
        keys.append((fields[1], blob))
    return keys


class TrustProbe:
    """Reads presented certificates and host keys for the verifier."""

    def __init__(self, known_hosts: Optional[Path] = None, timeout: float = 10.0):
        self.known_hosts = known_hosts
        self.timeout = timeout

    def present(self, endpoint: RemoteEndpoint, host: str, chain_valid: bool) -> Material:
        """
        Return the material presented by host for this endpoint.

        Returns None for transports we cannot read an identity from; the
        verifier rejects None.
        """
        if endpoint.is_tls:
            return self.tls_certificate(host, endpoint.port or 443, chain_valid)
        if endpoint.is_ssh:
            probe_endpoint = RemoteEndpoint(
                scheme="ssh", host=host, port=endpoint.port, username=endpoint.username
            )
            return self.host_key(probe_endpoint)

        logger.warning(f"[trust] {host}: no trust probe for scheme {endpoint.scheme!r}")
        return None

    def tls_certificate(self, host: str, port: int, chain_valid: bool) -> Optional[X509Certificate]:
        try:
            pem = ssl.get_server_certificate((host, port), timeout=self.timeout)
        except (OSError, ssl.SSLError) as e:
            logger.warning(f"[trust] {host}:{port}: cannot read certificate: {e}")
            return None

        try:
            certificate = x509.load_pem_x509_certificate(pem.encode("ascii"))
        except ValueError as e:
            # UnicodeEncodeError is a ValueError too
            logger.warning(f"[trust] {host}:{port}: unparseable certificate: {e}")
            return None
        return X509Certificate(certificate=certificate, chain_valid=chain_valid)

    def host_key(self, endpoint: RemoteEndpoint) -> Optional[HostKey]:
        scanned = self.scan_host_keys(endpoint)
        if not scanned:
            logger.warning(f"[trust] {endpoint.host}: no host key presented")
            return None

        pinned = self.pinned_host_keys(endpoint)

        # Present the key whose type is pinned; otherwise the first one scanned
        for key_type, blob in scanned:
            if key_type in pinned:
                known = pinned[key_type]
                return HostKey(
                    key=blob,
                    md5=hashlib.md5(known).digest(),
                    sha1=hashlib.sha1(known).digest(),
                )

        logger.warning(
            f"[trust] {endpoint.known_hosts_name}: host not in known_hosts"
        )
        return HostKey(key=scanned[0][1])

    def scan_host_keys(self, endpoint: RemoteEndpoint) -> List[Tuple[str, bytes]]:
        """Host keys the server presents, via ssh-keyscan."""
        cmd = ["ssh-keyscan", "-T", str(max(1, int(self.timeout)))]
        if endpoint.port:
            cmd += ["-p", str(endpoint.port)]
        cmd.append(endpoint.host or "")

        try:
            result = _run(cmd, timeout=self.timeout + 5)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[trust] ssh-keyscan {endpoint.host} failed: {e}")
            return []

        return _parse_key_lines(result.stdout)

    def pinned_host_keys(self, endpoint: RemoteEndpoint) -> Dict[str, bytes]:
        """Keys pinned for the endpoint in known_hosts, by key type."""
        if self.known_hosts is None or not self.known_hosts.exists():
            return {}

        cmd = ["ssh-keygen", "-F", endpoint.known_hosts_name, "-f", str(self.known_hosts)]
        try:
            result = _run(cmd, timeout=self.timeout)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[trust] ssh-keygen -F {endpoint.known_hosts_name} failed: {e}")
            return {}

        if result.returncode != 0:
            return {}

        pinned: Dict[str, bytes] = {}
        for key_type, blob in _parse_key_lines(result.stdout):
            pinned.setdefault(key_type, blob)
        return pinned
