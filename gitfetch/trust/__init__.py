"""
Trust Module — Endpoint verification and credential negotiation.
"""

from .credentials import CredentialKind, CredentialOffer, SshAgent, negotiate
from .verifier import HostKey, TrustDecision, X509Certificate, digests_match, verify_certificate

__all__ = [
    "CredentialKind",
    "CredentialOffer",
    "HostKey",
    "SshAgent",
    "TrustDecision",
    "X509Certificate",
    "digests_match",
    "negotiate",
    "verify_certificate",
]
