"""
Transport — pygit2 callbacks and the trust probe that feeds them.
"""

from .callbacks import FetchCallbacks, allowed_kinds
from .probe import RemoteEndpoint, TrustProbe, parse_remote_url

__all__ = [
    "FetchCallbacks",
    "RemoteEndpoint",
    "TrustProbe",
    "allowed_kinds",
    "parse_remote_url",
]
