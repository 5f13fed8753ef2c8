"""
Identity component - privacy-preserving visitor and session resolution.

Invariants:
- I1: Raw IPs are never stored; only salted hashes feed the fingerprint
- I2: At most one Visitor per (website, fingerprint)
- I3: Session ids are unique per website
- I4: Unknown or inactive websites resolve to a not_found result, not an exception
"""

from __future__ import annotations

from privacymetrics.core.errors import WebsiteNotFoundError

from ._impl import IdentityConfig, IdentityResolver
from .models import (
    IdentityError,
    ResolveSessionInput,
    ResolveSessionOutput,
    ResolveVisitorInput,
    ResolveVisitorOutput,
)
from .ports import TrackingStorePort


def run_resolve_visitor(
    inp: ResolveVisitorInput,
    *,
    store: TrackingStorePort,
    config: IdentityConfig,
) -> ResolveVisitorOutput:
    """
    Resolve the visitor for one beacon in its own transaction.

    Returns:
        ResolveVisitorOutput; a not_found error when the website is
        unknown or inactive.
    """
    resolver = IdentityResolver(config)
    with store.unit_of_work() as uow:
        try:
            visitor = resolver.resolve_visitor(
                uow,
                website_id=inp.website_id,
                client_ip=inp.client_ip,
                visitor_token=inp.visitor_token,
                seen_at=inp.seen_at,
                page_view_increment=inp.page_view_increment,
                country=inp.country,
                region=inp.region,
                language=inp.language,
            )
        except WebsiteNotFoundError:
            return ResolveVisitorOutput(
                visitor=None,
                errors=[IdentityError(code="not_found", message="Website not found", field_name="website_id")],
                success=False,
            )
        uow.commit()
    return ResolveVisitorOutput(visitor=visitor)


def run_resolve_session(
    inp: ResolveSessionInput,
    *,
    store: TrackingStorePort,
    config: IdentityConfig,
) -> ResolveSessionOutput:
    resolver = IdentityResolver(config)
    with store.unit_of_work() as uow:
        session = resolver.resolve_session(
            uow,
            website_id=inp.website_id,
            visitor_id=inp.visitor_id,
            client_session_id=inp.client_session_id,
            event_at=inp.event_at,
            page_increment=inp.page_increment,
            duration_increment=inp.duration_increment,
            device_type=inp.device_type,
        )
        uow.commit()
    return ResolveSessionOutput(session=session)
