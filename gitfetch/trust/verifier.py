"""
Trust Verifier — Decide whether a remote endpoint's identity is acceptable.

Called once per connection attempt from inside the transport handshake.
Nothing is cached: every fetch re-verifies from scratch.

Two kinds of presented material are understood:

- X509Certificate (HTTPS): accepted iff the certificate matches the
  hostname under RFC 6125 rules and the transport validated its chain.
- HostKey (SSH): accepted iff an advertised MD5 or SHA-1 fingerprint
  equals the digest of the presented key blob over its full length.

Anything else is rejected.
"""

from __future__ import annotations

import hashlib
import hmac
import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from cryptography import x509
from service_identity import CertificateError, VerificationError
from service_identity.cryptography import (
    verify_certificate_hostname,
    verify_certificate_ip_address,
)

logger = logging.getLogger(__name__)


class TrustDecision(str, Enum):
    """Outcome of a trust check."""
    ACCEPT = "accept"
    REJECT = "reject"


@dataclass(frozen=True)
class X509Certificate:
    """A TLS peer certificate as presented during the handshake."""

    certificate: x509.Certificate
    chain_valid: bool = True


@dataclass(frozen=True)
class HostKey:
    """
    An SSH host key as presented during the handshake.

    key is the public key in SSH wire encoding. md5 / sha1 are the
    fingerprints advertised for this host, when there are any.
    """

    key: bytes
    md5: Optional[bytes] = None
    sha1: Optional[bytes] = None


def digests_match(advertised: bytes, computed: bytes) -> bool:
    """Exact equality over the full digest length; any length difference fails."""
    if len(advertised) != len(computed):
        return False
    return hmac.compare_digest(advertised, computed)


def verify_certificate(hostname: str, material: Any) -> TrustDecision:
    """
    Decide whether the material presented for hostname is trusted.

    Args:
        hostname: Host the transport is connecting to
        material: X509Certificate, HostKey, or anything else (rejected)

    Returns:
        TrustDecision.ACCEPT or TrustDecision.REJECT
    """
    if isinstance(material, X509Certificate):
        return _verify_x509(hostname, material)
    if isinstance(material, HostKey):
        return _verify_host_key(hostname, material)

    logger.warning(
        f"[trust] {hostname}: unsupported certificate kind "
        f"{type(material).__name__}, rejecting"
    )
    return TrustDecision.REJECT


def _verify_x509(hostname: str, material: X509Certificate) -> TrustDecision:
    if not material.chain_valid:
        logger.warning(f"[trust] {hostname}: certificate chain did not validate")
        return TrustDecision.REJECT

    try:
        try:
            address = ipaddress.ip_address(hostname)
        except ValueError:
            verify_certificate_hostname(material.certificate, hostname)
        else:
            verify_certificate_ip_address(material.certificate, str(address))
    except (VerificationError, CertificateError, ValueError) as e:
        logger.warning(f"[trust] {hostname}: certificate does not match host: {e}")
        return TrustDecision.REJECT

    logger.debug(f"[trust] {hostname}: certificate accepted")
    return TrustDecision.ACCEPT


def _verify_host_key(hostname: str, material: HostKey) -> TrustDecision:
    if material.md5 is None and material.sha1 is None:
        logger.warning(f"[trust] {hostname}: no host key fingerprint advertised")
        return TrustDecision.REJECT

    if material.md5 is not None:
        computed = hashlib.md5(material.key).digest()
        if digests_match(material.md5, computed):
            logger.debug(f"[trust] {hostname}: host key accepted (MD5)")
            return TrustDecision.ACCEPT

    if material.sha1 is not None:
        computed = hashlib.sha1(material.key).digest()
        if digests_match(material.sha1, computed):
            logger.debug(f"[trust] {hostname}: host key accepted (SHA-1)")
            return TrustDecision.ACCEPT

    logger.warning(f"[trust] {hostname}: host key fingerprint mismatch")
    return TrustDecision.REJECT
