"""
Identity component - visitor fingerprints and session segments.
"""

from ._impl import (
    IdentityConfig,
    IdentityResolver,
    create_identity_resolver,
    derive_fingerprint,
    hash_ip,
    is_session_open,
    segment_session_id,
)
from .component import run_resolve_session, run_resolve_visitor
from .models import (
    IdentityError,
    ResolveSessionInput,
    ResolveSessionOutput,
    ResolveVisitorInput,
    ResolveVisitorOutput,
)

__all__ = [
    # Entry points
    "run_resolve_session",
    "run_resolve_visitor",
    # Models
    "IdentityError",
    "ResolveSessionInput",
    "ResolveSessionOutput",
    "ResolveVisitorInput",
    "ResolveVisitorOutput",
    # Service
    "IdentityConfig",
    "IdentityResolver",
    "create_identity_resolver",
    "derive_fingerprint",
    "hash_ip",
    "is_session_open",
    "segment_session_id",
]
